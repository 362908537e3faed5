"""
AI generation settings.

Provider credentials and model names come from core.config; the tuning
knobs below are product decisions and live with the code.
"""
from core.config import settings

GENERATION_TYPES = ("roast", "hype", "narrative", "personality", "summary")
# Types a user can request through /api/ai/generate
REQUESTABLE_TYPES = ("roast", "hype", "narrative", "personality")

MAX_TOKENS = 500
NARRATIVE_MAX_TOKENS = 600
PERSONALITY_MAX_TOKENS = 1000
SUMMARY_MAX_TOKENS = 300

TEMPERATURE = {
    "roast": 0.9,
    "hype": 0.8,
    "narrative": 0.7,
    "personality": 0.6,
    "summary": 0.6,
}
DEFAULT_TEMPERATURE = 0.7

DAILY_CREDITS_FREE = 3
DAILY_CREDITS_PREMIUM = 50

AVOIDANCE_LOOKBACK = 10
AVOIDANCE_PROMPT_LOOKBACK = 5
SIMILARITY_THRESHOLD = 0.7
MAX_REGENERATIONS = 2


def provider() -> str:
    return (settings.AI_PROVIDER or "anthropic").lower()


def model_name() -> str:
    return settings.ANTHROPIC_MODEL if provider() == "anthropic" else settings.OPENAI_MODEL


def daily_credit_limit(is_premium: bool) -> int:
    return DAILY_CREDITS_PREMIUM if is_premium else DAILY_CREDITS_FREE
