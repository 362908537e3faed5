"""
LLM client wrapper.

One call shape for both providers: system prompt + user prompt in, text
out. Anthropic uses messages.create; OpenAI uses chat.completions with a
JSON response format. Provider failures surface as AIGenerationError so
routers only deal with one exception type.
"""
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import anthropic
import openai
from anthropic import Anthropic
from openai import OpenAI

from core.config import settings
from services import ai_config

logger = logging.getLogger(__name__)

_FENCED_JSON_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")

_anthropic_client: Optional[Anthropic] = None
_openai_client: Optional[OpenAI] = None


class AIGenerationError(Exception):
    """The provider could not produce text."""


@dataclass
class GenerationResult:
    content: str
    key_phrases: List[str] = field(default_factory=list)
    data_points: List[str] = field(default_factory=list)
    tokens_used: int = 0
    model: Optional[str] = None
    provider: Optional[str] = None
    # Whole parsed JSON object (personality fields live here)
    raw: Dict[str, Any] = field(default_factory=dict)


def get_anthropic_client() -> Anthropic:
    global _anthropic_client
    if _anthropic_client is None:
        if not settings.ANTHROPIC_API_KEY:
            raise AIGenerationError("ANTHROPIC_API_KEY is not configured")
        _anthropic_client = Anthropic(api_key=settings.ANTHROPIC_API_KEY)
    return _anthropic_client


def get_openai_client() -> OpenAI:
    global _openai_client
    if _openai_client is None:
        if not settings.OPENAI_API_KEY:
            raise AIGenerationError("OPENAI_API_KEY is not configured")
        _openai_client = OpenAI(api_key=settings.OPENAI_API_KEY)
    return _openai_client


def _generate_with_anthropic(system_prompt: str, user_prompt: str, temperature: float, max_tokens: int):
    client = get_anthropic_client()
    model = settings.ANTHROPIC_MODEL
    try:
        response = client.messages.create(
            model=model,
            max_tokens=max_tokens,
            temperature=temperature,
            system=system_prompt,
            messages=[{"role": "user", "content": user_prompt}],
        )
    except anthropic.APIError as e:
        logger.error(f"Anthropic generation failed: {e}")
        raise AIGenerationError(f"Failed to generate with Anthropic: {e}") from e

    block = response.content[0] if response.content else None
    if block is None or block.type != "text":
        raise AIGenerationError("Unexpected response type from Anthropic")

    tokens = response.usage.input_tokens + response.usage.output_tokens if response.usage else 0
    return block.text, tokens, model


def _generate_with_openai(system_prompt: str, user_prompt: str, temperature: float, max_tokens: int):
    client = get_openai_client()
    model = settings.OPENAI_MODEL
    try:
        response = client.chat.completions.create(
            model=model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            temperature=temperature,
            max_tokens=max_tokens,
            response_format={"type": "json_object"},
        )
    except openai.OpenAIError as e:
        logger.error(f"OpenAI generation failed: {e}")
        raise AIGenerationError(f"Failed to generate with OpenAI: {e}") from e

    content = response.choices[0].message.content if response.choices else None
    if not content:
        raise AIGenerationError("No content in OpenAI response")

    tokens = response.usage.total_tokens if response.usage else 0
    return content, tokens, model


def generate_text(
    generation_type: str,
    system_prompt: str,
    user_prompt: str,
    temperature: Optional[float] = None,
    max_tokens: Optional[int] = None,
):
    """Returns (text, tokens_used, model)."""
    if temperature is None:
        temperature = ai_config.TEMPERATURE.get(generation_type, ai_config.DEFAULT_TEMPERATURE)
    max_tokens = max_tokens or ai_config.MAX_TOKENS

    provider = ai_config.provider()
    if provider == "anthropic":
        return _generate_with_anthropic(system_prompt, user_prompt, temperature, max_tokens)
    if provider == "openai":
        return _generate_with_openai(system_prompt, user_prompt, temperature, max_tokens)
    raise AIGenerationError(f"Unknown AI provider: {provider}")


def _load_object(text: str) -> Optional[Dict[str, Any]]:
    try:
        parsed = json.loads(text)
    except (TypeError, ValueError):
        return None
    return parsed if isinstance(parsed, dict) else None


def _as_str_list(value) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(v) for v in value if v is not None]


def parse_generation(text: str) -> Dict[str, Any]:
    """
    Model output -> {"content", "key_phrases", "data_points", "raw"}.

    Tries plain JSON, then a fenced ```json block, then gives back the raw
    text as content.
    """
    parsed = _load_object(text)
    if parsed is None:
        match = _FENCED_JSON_RE.search(text or "")
        if match:
            parsed = _load_object(match.group(1))

    if parsed is None:
        logger.warning("AI response was not JSON, using raw text")
        return {"content": (text or "").strip(), "key_phrases": [], "data_points": [], "raw": {}}

    return {
        "content": str(parsed.get("content") or text).strip(),
        "key_phrases": _as_str_list(parsed.get("keyPhrasesUsed", parsed.get("key_phrases"))),
        "data_points": _as_str_list(parsed.get("dataPointsReferenced", parsed.get("data_points"))),
        "raw": parsed,
    }


def generate_and_parse(
    generation_type: str,
    system_prompt: str,
    user_prompt: str,
    temperature: Optional[float] = None,
    max_tokens: Optional[int] = None,
) -> GenerationResult:
    text, tokens, model = generate_text(generation_type, system_prompt, user_prompt, temperature, max_tokens)
    parsed = parse_generation(text)
    if not parsed["content"]:
        raise AIGenerationError("Empty response from AI provider")
    return GenerationResult(
        content=parsed["content"],
        key_phrases=parsed["key_phrases"],
        data_points=parsed["data_points"],
        tokens_used=tokens or 0,
        model=model,
        provider=ai_config.provider(),
        raw=parsed["raw"],
    )


def get_provider_info() -> Dict[str, Any]:
    provider = ai_config.provider()
    key = settings.ANTHROPIC_API_KEY if provider == "anthropic" else settings.OPENAI_API_KEY
    return {"provider": provider, "model": ai_config.model_name(), "configured": bool(key)}
