"""
Roast, hype, narrative, personality and activity-summary generation.

Every generation follows the same loop:

1. Load the user's recent generations of that type.
2. Build the prompt with an avoidance block listing their phrases.
3. Ask the model for a candidate.
4. If the candidate is more than SIMILARITY_THRESHOLD similar to any recent
   generation, ask again (at most MAX_REGENERATIONS extra times).
5. Persist and return the first candidate that passes. If none passes,
   raise AIRepetitionError and persist nothing.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from models import Activity, AIGeneration, PersonalityProfile, User
from services import ai_config, ai_prompts
from services.ai_avoidance import (
    build_avoidance_context,
    get_recent_generations,
    is_too_similar,
    max_similarity,
    save_generation,
)
from services.ai_client import GenerationResult, generate_and_parse
from services.rich_stats import calculate_rich_stats
from services.activity_queries import load_recent_activities, load_user_gear

logger = logging.getLogger(__name__)

SUMMARY_HISTORY_LIMIT = 30
NEW_GEAR_DAYS = 14
USUAL_THRESHOLD = 3


class AIRepetitionError(Exception):
    """Every candidate was too close to something the user already got."""

    def __init__(self, generation_type: str, similarity: float):
        self.generation_type = generation_type
        self.similarity = similarity
        super().__init__(
            f"Could not produce a fresh {generation_type} "
            f"(best candidate {similarity:.0%} similar to a recent one)"
        )


def _utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def load_user_stats(db: Session, user: User, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Rich stats over the user's most recent activities, the input to every prompt."""
    activities = load_recent_activities(db, user.id)
    return calculate_rich_stats(activities, user, load_user_gear(db, user.id), now=now)


def _generate_unique(
    db: Session,
    user: User,
    generation_type: str,
    build_prompt: Callable[[str], str],
    *,
    style: Optional[str] = None,
    activity_id=None,
    max_tokens: Optional[int] = None,
) -> Tuple[AIGeneration, GenerationResult]:
    recent = get_recent_generations(db, user.id, generation_type)
    avoidance = build_avoidance_context(recent[: ai_config.AVOIDANCE_PROMPT_LOOKBACK])
    prompt = build_prompt(avoidance)
    system_prompt = ai_prompts.SYSTEM_PROMPTS[generation_type]

    for attempt in range(ai_config.MAX_REGENERATIONS + 1):
        result = generate_and_parse(generation_type, system_prompt, prompt, max_tokens=max_tokens)
        if not is_too_similar(result.content, recent):
            break
        logger.info(
            f"Regenerating {generation_type}",
            extra={"extra_fields": {"user_id": str(user.id), "attempt": attempt + 1}},
        )
    else:
        raise AIRepetitionError(generation_type, max_similarity(result.content, recent))

    generation = save_generation(
        db,
        user.id,
        generation_type,
        result.content,
        prompt=prompt,
        style=style,
        activity_id=activity_id,
        key_phrases=result.key_phrases,
        data_points=result.data_points,
        tokens_used=result.tokens_used,
        model=result.model,
    )
    logger.info(
        f"AI {generation_type} generated",
        extra={"extra_fields": {
            "user_id": str(user.id),
            "generation_id": str(generation.id),
            "tokens_used": result.tokens_used,
            "model": result.model,
        }},
    )
    return generation, result


def _response(generation: AIGeneration, result: GenerationResult, style: str) -> Dict[str, Any]:
    return {
        "content": result.content,
        "style": style,
        "key_phrases": result.key_phrases,
        "data_points": result.data_points,
        "generation_id": str(generation.id),
    }


def generate_roast(db: Session, user: User, stats: Dict[str, Any], style: Optional[str] = None) -> Dict[str, Any]:
    generation, result = _generate_unique(
        db, user, "roast",
        lambda avoidance: ai_prompts.build_roast_prompt(stats, style, avoidance),
        style=style,
    )
    return _response(generation, result, style or "default")


def generate_hype(db: Session, user: User, stats: Dict[str, Any], style: Optional[str] = None) -> Dict[str, Any]:
    generation, result = _generate_unique(
        db, user, "hype",
        lambda avoidance: ai_prompts.build_hype_prompt(stats, style, avoidance),
        style=style,
    )
    return _response(generation, result, style or "default")


def generate_narrative(
    db: Session,
    user: User,
    stats: Dict[str, Any],
    activity: Optional[Activity] = None,
) -> Dict[str, Any]:
    details = None
    if activity is not None:
        details = {
            "name": activity.name,
            "type": activity.type,
            "date": (activity.start_date_local or activity.start_date).date().isoformat(),
            "distance": activity.distance,
            "moving_time": activity.moving_time,
            "elevation": activity.total_elevation_gain,
            "kudos_count": activity.kudos_count,
        }
    generation, result = _generate_unique(
        db, user, "narrative",
        lambda avoidance: ai_prompts.build_narrative_prompt(stats, details, avoidance),
        activity_id=activity.id if activity is not None else None,
        max_tokens=ai_config.NARRATIVE_MAX_TOKENS,
    )
    return _response(generation, result, "narrative")


def _str_list(value) -> List[str]:
    return [str(v) for v in value] if isinstance(value, list) else []


def generate_personality(db: Session, user: User, stats: Dict[str, Any]) -> Dict[str, Any]:
    """Generate a profile and store it as the user's current PersonalityProfile."""
    generation, result = _generate_unique(
        db, user, "personality",
        lambda avoidance: ai_prompts.build_personality_prompt(stats, avoidance),
        max_tokens=ai_config.PERSONALITY_MAX_TOKENS,
    )
    raw = result.raw

    profile = db.query(PersonalityProfile).filter(PersonalityProfile.user_id == user.id).first()
    if profile is None:
        profile = PersonalityProfile(user_id=user.id)
        db.add(profile)
    profile.profile_summary = raw.get("profileSummary") or result.content
    profile.strengths = _str_list(raw.get("strengths"))
    profile.growth_areas = _str_list(raw.get("growthAreas"))
    profile.fun_facts = _str_list(raw.get("funFacts"))
    profile.spirit_animal = raw.get("spiritAnimal")
    profile.spirit_animal_emoji = raw.get("spiritAnimalEmoji")
    profile.spirit_animal_reason = raw.get("spiritAnimalReason")
    profile.compatibility = raw.get("compatibility")
    profile.generated_at = datetime.now(timezone.utc)
    db.commit()

    return {
        "profile_summary": profile.profile_summary,
        "strengths": profile.strengths,
        "growth_areas": profile.growth_areas,
        "fun_facts": profile.fun_facts,
        "spirit_animal": profile.spirit_animal,
        "spirit_animal_emoji": profile.spirit_animal_emoji,
        "spirit_animal_reason": profile.spirit_animal_reason,
        "compatibility": profile.compatibility,
        "content": result.content,
        "generation_id": str(generation.id),
    }


def summary_time_of_day(hour: int) -> str:
    if 5 <= hour < 9:
        return "early_morning"
    if 9 <= hour < 12:
        return "morning"
    if 12 <= hour < 14:
        return "midday"
    if 14 <= hour < 17:
        return "afternoon"
    if 17 <= hour < 20:
        return "evening"
    return "night"


def build_summary_context(activity, history: Sequence) -> Dict[str, Any]:
    """
    How this activity compares with the user's other recent activities of
    the same type: usual distance and duration, familiar or new place and
    time of day, and whether the gear is new.
    """
    count = len(history)
    start = activity.start_date_local or activity.start_date
    time_of_day = summary_time_of_day(start.hour)

    city = activity.location_city
    same_city = sum(1 for a in history if city and a.location_city == city)
    same_time = sum(
        1 for a in history
        if summary_time_of_day((a.start_date_local or a.start_date).hour) == time_of_day
    )

    context: Dict[str, Any] = {
        "average_distance": sum(a.distance or 0 for a in history) / count if count else None,
        "average_time": sum(a.moving_time or 0 for a in history) / count if count else None,
        "is_new_location": bool(city) and same_city == 0,
        "is_usual_location": same_city >= USUAL_THRESHOLD,
        "location_visit_count": same_city,
        "time_of_day": time_of_day,
        "is_new_time_of_day": same_time == 0,
        "is_usual_time": same_time >= USUAL_THRESHOLD,
        "gear": None,
    }

    gear = activity.gear
    if gear is not None:
        uses = sum(1 for a in history if a.gear_id == activity.gear_id)
        added = _utc(gear.created_at)
        started = _utc(activity.start_date)
        context["gear"] = {
            "name": gear.name,
            "type": gear.type,
            "total_distance": gear.distance or 0,
            "is_new": bool(added and started) and (started - added) <= timedelta(days=NEW_GEAR_DAYS),
            "is_first_use": uses == 0,
            "usage_count": uses,
        }
    return context


def generate_activity_summary(db: Session, user: User, activity: Activity) -> Dict[str, Any]:
    """
    Summary for one activity, generated once and then served from the
    activity row.
    """
    if activity.ai_summary:
        return {
            "content": activity.ai_summary,
            "cached": True,
            "generated_at": activity.ai_summary_generated_at,
        }

    history = (
        db.query(Activity)
        .filter(Activity.user_id == user.id, Activity.type == activity.type, Activity.id != activity.id)
        .order_by(Activity.start_date.desc())
        .limit(SUMMARY_HISTORY_LIMIT)
        .all()
    )
    context = build_summary_context(activity, history)

    generation, result = _generate_unique(
        db, user, "summary",
        lambda avoidance: ai_prompts.build_summary_prompt(activity, context) + avoidance,
        activity_id=activity.id,
        max_tokens=ai_config.SUMMARY_MAX_TOKENS,
    )

    activity.ai_summary = result.content
    activity.ai_summary_generated_at = datetime.now(timezone.utc)
    db.commit()

    return {
        "content": result.content,
        "cached": False,
        "generation_id": str(generation.id),
        "generated_at": activity.ai_summary_generated_at,
    }
