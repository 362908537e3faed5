"""
Repetition avoidance and usage accounting for AI generations.

Recent generations of the same type are fed back into the prompt as
"do not reuse" context, and every candidate is compared against them with
a word-level Jaccard score before it is accepted.
"""
import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from models import AIGeneration, User
from services import ai_config

logger = logging.getLogger(__name__)

MAX_AVOID_PHRASES = 15
MAX_AVOID_DATA_POINTS = 10
MAX_AVOID_EXCERPTS = 3
EXCERPT_CHARS = 100

_NON_WORD_RE = re.compile(r"[^\w\s]")


def get_recent_generations(
    db: Session,
    user_id: UUID,
    generation_type: str,
    limit: int = ai_config.AVOIDANCE_LOOKBACK,
) -> List[AIGeneration]:
    return (
        db.query(AIGeneration)
        .filter(AIGeneration.user_id == user_id, AIGeneration.type == generation_type)
        .order_by(AIGeneration.created_at.desc())
        .limit(limit)
        .all()
    )


def _unique(items) -> List[str]:
    seen = []
    for item in items:
        if item and item not in seen:
            seen.append(item)
    return seen


def build_avoidance_context(generations: Sequence[AIGeneration]) -> str:
    """Prompt block listing phrases, data points and excerpts to steer away from."""
    if not generations:
        return ""

    phrases = _unique(p for g in generations for p in (g.key_phrases or []))
    data_points = _unique(d for g in generations for d in (g.data_points or []))
    styles = _unique(g.style for g in generations)
    excerpts = [
        f'"{g.content[:EXCERPT_CHARS]}{"..." if len(g.content) > EXCERPT_CHARS else ""}"'
        for g in generations
        if g.content
    ]

    parts = ["", "=== REPETITION AVOIDANCE ===", "Do NOT reuse these elements from recent generations:", ""]
    if phrases:
        parts.append("Phrases to avoid:")
        parts += [f'- "{p}"' for p in phrases[:MAX_AVOID_PHRASES]]
        parts.append("")
    if data_points:
        parts.append("Recently referenced data points (pick others):")
        parts += [f"- {d}" for d in data_points[:MAX_AVOID_DATA_POINTS]]
        parts.append("")
    if styles:
        parts.append(f"Recent styles: {', '.join(styles)}")
        parts.append("")
    if excerpts:
        parts.append("Recent excerpts (avoid similar themes):")
        parts += excerpts[:MAX_AVOID_EXCERPTS]
        parts.append("")
    parts.append("Find new angles, new phrases and new data points.")
    parts.append("============================")
    return "\n".join(parts) + "\n"


def _words(text: str) -> set:
    normalized = _NON_WORD_RE.sub("", (text or "").lower())
    return {w for w in normalized.split() if len(w) > 3}


def calculate_similarity(text1: str, text2: str) -> float:
    """Jaccard similarity of the words longer than three characters, 0..1."""
    words1 = _words(text1)
    words2 = _words(text2)
    if not words1 or not words2:
        return 0.0
    return len(words1 & words2) / len(words1 | words2)


def max_similarity(content: str, generations: Sequence[AIGeneration]) -> float:
    return max((calculate_similarity(content, g.content) for g in generations), default=0.0)


def is_too_similar(
    content: str,
    generations: Sequence[AIGeneration],
    threshold: float = ai_config.SIMILARITY_THRESHOLD,
) -> bool:
    for generation in generations:
        similarity = calculate_similarity(content, generation.content)
        if similarity > threshold:
            logger.warning(f"Content {similarity:.0%} similar to generation {generation.id}")
            return True
    return False


def save_generation(
    db: Session,
    user_id: UUID,
    generation_type: str,
    content: str,
    *,
    prompt: Optional[str] = None,
    style: Optional[str] = None,
    activity_id: Optional[UUID] = None,
    key_phrases: Optional[List[str]] = None,
    data_points: Optional[List[str]] = None,
    tokens_used: Optional[int] = None,
    model: Optional[str] = None,
) -> AIGeneration:
    generation = AIGeneration(
        user_id=user_id,
        type=generation_type,
        style=style,
        content=content,
        prompt=prompt,
        key_phrases=list(key_phrases or []),
        data_points=list(data_points or []),
        tokens_used=tokens_used,
        model=model,
        activity_id=activity_id,
        created_at=datetime.now(timezone.utc),
    )
    db.add(generation)
    db.commit()
    db.refresh(generation)
    return generation


def _start_of_day(now: datetime) -> datetime:
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def get_today_generation_count(db: Session, user_id: UUID, now: Optional[datetime] = None) -> int:
    now = now or datetime.now(timezone.utc)
    return (
        db.query(func.count(AIGeneration.id))
        .filter(AIGeneration.user_id == user_id, AIGeneration.created_at >= _start_of_day(now))
        .scalar()
        or 0
    )


def check_credits(db: Session, user: User, now: Optional[datetime] = None) -> Dict[str, int]:
    """Daily allowance, reset at UTC midnight."""
    limit = ai_config.daily_credit_limit(user.is_premium)
    used = get_today_generation_count(db, user.id, now)
    remaining = max(0, limit - used)
    return {"has_credits": remaining > 0, "remaining": remaining, "limit": limit, "used": limit - remaining}


def get_generation_stats(db: Session, user_id: UUID, now: Optional[datetime] = None) -> Dict:
    now = now or datetime.now(timezone.utc)

    def count_since(since: Optional[datetime]) -> int:
        q = db.query(func.count(AIGeneration.id)).filter(AIGeneration.user_id == user_id)
        if since is not None:
            q = q.filter(AIGeneration.created_at >= since)
        return q.scalar() or 0

    by_type = dict(
        db.query(AIGeneration.type, func.count(AIGeneration.id))
        .filter(AIGeneration.user_id == user_id)
        .group_by(AIGeneration.type)
        .all()
    )
    return {
        "total": count_since(None),
        "today": count_since(_start_of_day(now)),
        "this_week": count_since(now - timedelta(days=7)),
        "this_month": count_since(now - timedelta(days=30)),
        "by_type": by_type,
    }
