from sqlalchemy import Column, Integer, BigInteger, Boolean, Float, DateTime, ForeignKey, Text, Uuid, JSON, Index, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func
from core.database import Base
import uuid

# JSONB on Postgres, plain JSON elsewhere (sqlite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


class User(Base):
    __tablename__ = "user"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
    email = Column(Text, unique=True, nullable=False)
    name = Column(Text, nullable=True)
    first_name = Column(Text, nullable=True)
    last_name = Column(Text, nullable=True)
    avatar_url = Column(Text, nullable=True)
    sex = Column(Text, nullable=True)
    city = Column(Text, nullable=True)
    state = Column(Text, nullable=True)
    country = Column(Text, nullable=True)
    measurement_preference = Column(Text, default="metric", nullable=False)  # 'metric' | 'imperial'
    subscription_tier = Column(Text, default="free", nullable=False)  # 'free' | 'premium'

    # Strava link
    strava_id = Column(BigInteger, unique=True, nullable=True)
    strava_access_token = Column(Text, nullable=True)  # Encrypted
    strava_refresh_token = Column(Text, nullable=True)  # Encrypted
    strava_token_expires_at = Column(DateTime(timezone=True), nullable=True)
    strava_connected_at = Column(DateTime(timezone=True), nullable=True)
    strava_scope = Column(Text, nullable=True)
    last_strava_sync = Column(DateTime(timezone=True), nullable=True)

    # Cached Strava profile
    strava_follower_count = Column(Integer, nullable=True)
    strava_friend_count = Column(Integer, nullable=True)
    ftp = Column(Integer, nullable=True)
    weight = Column(Float, nullable=True)  # kg
    strava_premium = Column(Boolean, default=False, nullable=False)
    strava_summit = Column(Boolean, default=False, nullable=False)
    strava_created_at = Column(DateTime(timezone=True), nullable=True)

    activities = relationship("Activity", back_populates="user", cascade="all, delete-orphan", lazy="dynamic")
    gear = relationship("Gear", back_populates="user", cascade="all, delete-orphan")
    athlete_stats = relationship("AthleteStats", back_populates="user", uselist=False, cascade="all, delete-orphan")
    achievements = relationship("UserAchievement", back_populates="user", cascade="all, delete-orphan")

    @property
    def is_strava_connected(self) -> bool:
        return bool(self.strava_access_token)

    @property
    def is_premium(self) -> bool:
        return self.subscription_tier == "premium"


class Gear(Base):
    """Bikes and shoes, upserted by Strava gear id."""
    __tablename__ = "gear"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("user.id", ondelete="CASCADE"), nullable=False)
    strava_id = Column(Text, unique=True, nullable=False)
    name = Column(Text, nullable=True)
    brand = Column(Text, nullable=True)
    model = Column(Text, nullable=True)
    description = Column(Text, nullable=True)
    type = Column(Text, nullable=False)  # 'bike' | 'shoe'
    frame_type = Column(Integer, nullable=True)
    distance = Column(Float, default=0, nullable=False)  # meters
    primary = Column(Boolean, default=False, nullable=False)
    retired = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    user = relationship("User", back_populates="gear")

    __table_args__ = (
        Index("ix_gear_user_id", "user_id"),
    )


class Activity(Base):
    __tablename__ = "activity"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("user.id", ondelete="CASCADE"), nullable=False)
    source = Column(Text, default="strava", nullable=False)  # 'strava' | 'manual'
    strava_id = Column(Text, nullable=True)
    upload_id = Column(Text, nullable=True)
    external_id = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    name = Column(Text, nullable=True)
    description = Column(Text, nullable=True)
    type = Column(Text, nullable=False)
    sport_type = Column(Text, nullable=True)
    workout_type = Column(Integer, nullable=True)

    start_date = Column(DateTime(timezone=True), nullable=False)
    # Wall-clock time at the activity location, stored without offset
    start_date_local = Column(DateTime(timezone=False), nullable=False)
    timezone = Column(Text, nullable=True)

    distance = Column(Float, default=0, nullable=False)  # meters
    moving_time = Column(Integer, default=0, nullable=False)  # seconds
    elapsed_time = Column(Integer, default=0, nullable=False)  # seconds
    total_elevation_gain = Column(Float, default=0, nullable=False)
    elev_high = Column(Float, nullable=True)
    elev_low = Column(Float, nullable=True)
    average_speed = Column(Float, nullable=True)  # m/s
    max_speed = Column(Float, nullable=True)

    has_heartrate = Column(Boolean, default=False, nullable=False)
    average_heartrate = Column(Float, nullable=True)
    max_heartrate = Column(Float, nullable=True)
    average_watts = Column(Float, nullable=True)
    max_watts = Column(Float, nullable=True)
    weighted_average_watts = Column(Float, nullable=True)
    device_watts = Column(Boolean, default=False, nullable=False)
    kilojoules = Column(Float, nullable=True)
    average_cadence = Column(Float, nullable=True)
    average_temp = Column(Float, nullable=True)
    calories = Column(Float, nullable=True)
    suffer_score = Column(Float, nullable=True)

    start_lat = Column(Float, nullable=True)
    start_lng = Column(Float, nullable=True)
    end_lat = Column(Float, nullable=True)
    end_lng = Column(Float, nullable=True)
    location_city = Column(Text, nullable=True)
    location_state = Column(Text, nullable=True)
    location_country = Column(Text, nullable=True)
    summary_polyline = Column(Text, nullable=True)

    kudos_count = Column(Integer, default=0, nullable=False)
    comment_count = Column(Integer, default=0, nullable=False)
    photo_count = Column(Integer, default=0, nullable=False)
    total_photo_count = Column(Integer, default=0, nullable=False)
    athlete_count = Column(Integer, default=1, nullable=False)
    has_kudoed = Column(Boolean, default=False, nullable=False)
    achievement_count = Column(Integer, default=0, nullable=False)
    pr_count = Column(Integer, default=0, nullable=False)

    trainer = Column(Boolean, default=False, nullable=False)
    commute = Column(Boolean, default=False, nullable=False)
    manual = Column(Boolean, default=False, nullable=False)
    private = Column(Boolean, default=False, nullable=False)
    flagged = Column(Boolean, default=False, nullable=False)
    hide_from_home = Column(Boolean, default=False, nullable=False)

    device_name = Column(Text, nullable=True)
    embed_token = Column(Text, nullable=True)
    gear_id = Column(Uuid, ForeignKey("gear.id", ondelete="SET NULL"), nullable=True)

    # Opaque provider payloads
    splits_metric = Column(JSONType, nullable=True)
    splits_standard = Column(JSONType, nullable=True)
    laps = Column(JSONType, nullable=True)
    best_efforts = Column(JSONType, nullable=True)
    segment_efforts = Column(JSONType, nullable=True)
    segment_effort_count = Column(Integer, default=0, nullable=False)
    streams = Column(JSONType, nullable=True)
    has_streams = Column(Boolean, default=False, nullable=False)
    # Strava answered the detail / streams request (possibly with nothing)
    details_fetched_at = Column(DateTime(timezone=True), nullable=True)
    streams_checked_at = Column(DateTime(timezone=True), nullable=True)

    ai_summary = Column(Text, nullable=True)
    ai_summary_generated_at = Column(DateTime(timezone=True), nullable=True)

    user = relationship("User", back_populates="activities")
    gear = relationship("Gear", lazy="joined")

    __table_args__ = (
        UniqueConstraint("user_id", "source", "strava_id", name="uq_activity_user_source_strava_id"),
        Index("ix_activity_user_start_date", "user_id", "start_date"),
    )


class AthleteStats(Base):
    """Strava's own aggregate totals for the athlete, replaced on every refresh."""
    __tablename__ = "athlete_stats"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("user.id", ondelete="CASCADE"), unique=True, nullable=False)
    biggest_ride_distance = Column(Float, nullable=True)
    biggest_climb_elevation_gain = Column(Float, nullable=True)
    # {"ride": {...}, "run": {...}, "swim": {...}} per window
    recent_totals = Column(JSONType, nullable=True)
    ytd_totals = Column(JSONType, nullable=True)
    all_totals = Column(JSONType, nullable=True)
    last_updated = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    user = relationship("User", back_populates="athlete_stats")


class Achievement(Base):
    __tablename__ = "achievement"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    code = Column(Text, unique=True, nullable=False)
    name = Column(Text, nullable=False)
    description = Column(Text, nullable=False)
    icon = Column(Text, nullable=True)
    category = Column(Text, nullable=False)  # milestone | quirky | streak | couchproof
    tier = Column(Text, nullable=False)  # bronze | silver | gold
    requirement_type = Column(Text, nullable=False)
    requirement_value = Column(Float, nullable=False)
    sort_order = Column(Integer, default=0, nullable=False)


class UserAchievement(Base):
    """Unlock record. Rows are only ever inserted."""
    __tablename__ = "user_achievement"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("user.id", ondelete="CASCADE"), nullable=False)
    achievement_id = Column(Uuid, ForeignKey("achievement.id", ondelete="CASCADE"), nullable=False)
    activity_id = Column(Uuid, ForeignKey("activity.id", ondelete="SET NULL"), nullable=True)
    unlocked_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    notified = Column(Boolean, default=False, nullable=False)

    user = relationship("User", back_populates="achievements")
    achievement = relationship("Achievement", lazy="joined")
    activity = relationship("Activity")

    __table_args__ = (
        UniqueConstraint("user_id", "achievement_id", name="uq_user_achievement"),
    )


class AIGeneration(Base):
    """Generated text kept for repetition checks and history."""
    __tablename__ = "ai_generation"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("user.id", ondelete="CASCADE"), nullable=False)
    type = Column(Text, nullable=False)  # roast | hype | narrative | personality | summary
    style = Column(Text, nullable=True)
    content = Column(Text, nullable=False)
    prompt = Column(Text, nullable=True)
    key_phrases = Column(JSONType, nullable=False, default=list)
    data_points = Column(JSONType, nullable=False, default=list)
    model = Column(Text, nullable=True)
    tokens_used = Column(Integer, nullable=True)
    activity_id = Column(Uuid, ForeignKey("activity.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("ix_ai_generation_user_type_created", "user_id", "type", "created_at"),
    )


class PersonalityProfile(Base):
    __tablename__ = "personality_profile"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("user.id", ondelete="CASCADE"), unique=True, nullable=False)
    profile_summary = Column(Text, nullable=True)
    strengths = Column(JSONType, nullable=True)
    growth_areas = Column(JSONType, nullable=True)
    fun_facts = Column(JSONType, nullable=True)
    spirit_animal = Column(Text, nullable=True)
    spirit_animal_emoji = Column(Text, nullable=True)
    spirit_animal_reason = Column(Text, nullable=True)
    compatibility = Column(JSONType, nullable=True)
    generated_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
