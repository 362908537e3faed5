from pydantic import BaseModel, ConfigDict, Field, field_validator
from datetime import datetime
from uuid import UUID
from typing import Optional, List, Dict, Any, Literal, Union


class UserResponse(BaseModel):
    id: UUID
    created_at: datetime
    email: str
    name: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    avatar_url: Optional[str] = None
    sex: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    measurement_preference: str = "metric"
    subscription_tier: str = "free"
    strava_id: Optional[int] = None
    strava_connected_at: Optional[datetime] = None
    last_strava_sync: Optional[datetime] = None
    strava_follower_count: Optional[int] = None
    strava_friend_count: Optional[int] = None
    ftp: Optional[int] = None
    weight: Optional[float] = None
    strava_premium: bool = False
    is_strava_connected: bool = False

    model_config = ConfigDict(from_attributes=True)


class UserUpdate(BaseModel):
    """Fields a user may change on their own profile"""
    name: Optional[str] = None
    measurement_preference: Optional[str] = None

    @field_validator("measurement_preference")
    @classmethod
    def check_measurement_preference(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and v not in ("metric", "imperial"):
            raise ValueError("measurement_preference must be 'metric' or 'imperial'")
        return v


class GearSummary(BaseModel):
    id: UUID
    name: Optional[str] = None
    type: str
    brand: Optional[str] = None
    model: Optional[str] = None
    distance: float = 0

    model_config = ConfigDict(from_attributes=True)


class ActivityCreate(BaseModel):
    """Manually logged activity"""
    name: str
    type: str
    sport_type: Optional[str] = None
    start_date: datetime
    start_date_local: Optional[datetime] = None  # defaults to start_date
    timezone: Optional[str] = None
    distance: float = Field(0, ge=0)  # meters
    moving_time: int = Field(0, ge=0)  # seconds
    elapsed_time: Optional[int] = Field(None, ge=0)  # defaults to moving_time
    total_elevation_gain: float = Field(0, ge=0)
    description: Optional[str] = None
    average_heartrate: Optional[float] = None
    max_heartrate: Optional[float] = None
    average_watts: Optional[float] = None
    calories: Optional[float] = None
    trainer: bool = False
    commute: bool = False
    source: Literal["manual"] = "manual"  # strava rows only arrive through sync
    gear_id: Optional[UUID] = None


class ActivityResponse(BaseModel):
    id: UUID
    source: str
    strava_id: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    type: str
    sport_type: Optional[str] = None
    workout_type: Optional[int] = None
    start_date: datetime
    start_date_local: datetime
    timezone: Optional[str] = None
    distance: float
    moving_time: int
    elapsed_time: int
    total_elevation_gain: float
    elev_high: Optional[float] = None
    elev_low: Optional[float] = None
    average_speed: Optional[float] = None
    max_speed: Optional[float] = None
    has_heartrate: bool = False
    average_heartrate: Optional[float] = None
    max_heartrate: Optional[float] = None
    average_watts: Optional[float] = None
    max_watts: Optional[float] = None
    weighted_average_watts: Optional[float] = None
    kilojoules: Optional[float] = None
    average_cadence: Optional[float] = None
    average_temp: Optional[float] = None
    calories: Optional[float] = None
    suffer_score: Optional[float] = None
    start_lat: Optional[float] = None
    start_lng: Optional[float] = None
    location_city: Optional[str] = None
    location_country: Optional[str] = None
    summary_polyline: Optional[str] = None
    kudos_count: int = 0
    comment_count: int = 0
    achievement_count: int = 0
    pr_count: int = 0
    trainer: bool = False
    commute: bool = False
    manual: bool = False
    private: bool = False
    device_name: Optional[str] = None
    segment_effort_count: int = 0
    has_streams: bool = False
    ai_summary: Optional[str] = None
    ai_summary_generated_at: Optional[datetime] = None
    gear: Optional[GearSummary] = None

    model_config = ConfigDict(from_attributes=True)


class ActivityDetailResponse(ActivityResponse):
    """Single activity including the provider payloads"""
    splits_metric: Optional[List[Dict[str, Any]]] = None
    splits_standard: Optional[List[Dict[str, Any]]] = None
    laps: Optional[List[Dict[str, Any]]] = None
    best_efforts: Optional[List[Dict[str, Any]]] = None
    segment_efforts: Optional[List[Dict[str, Any]]] = None
    streams: Optional[Dict[str, Any]] = None


class ActivityListResponse(BaseModel):
    activities: List[ActivityResponse]
    total: int
    limit: int
    offset: int


class SyncResponse(BaseModel):
    success: bool
    message: str
    full_sync: bool
    synced: int
    updated: int
    skipped: int
    errors: int
    processed: int
    has_more: bool
    batch_limit: Union[int, str, None] = None
    last_activity_date: Optional[str] = None


class AchievementCheckRequest(BaseModel):
    activity_id: Optional[UUID] = None


class AIGenerateRequest(BaseModel):
    type: str
    style: Optional[str] = None
    activity_id: Optional[UUID] = None


class AIStyleRequest(BaseModel):
    style: Optional[str] = None


class AISummaryRequest(BaseModel):
    activity_id: UUID

