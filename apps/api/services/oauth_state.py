"""
Signed `state` for the Strava connect round-trip.

Token format is `<payload>.<signature>`, both unpadded base64url; the
signature is HMAC-SHA256 over the encoded payload with SECRET_KEY. The
payload records where the browser returns to and, when a signed-in user
started the flow, which account Strava gets linked to.
"""
from __future__ import annotations

import base64
import hashlib
import hmac
import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from core.config import settings

DEFAULT_RETURN_TO = "/dashboard"


@dataclass(frozen=True)
class ConnectState:
    return_to: str = DEFAULT_RETURN_TO
    user_id: Optional[str] = None


def _encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def _decode(text: str) -> bytes:
    return base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))


def _signature(payload: str) -> str:
    digest = hmac.new(settings.SECRET_KEY.encode("utf-8"), payload.encode("utf-8"), hashlib.sha256).digest()
    return _encode(digest)


def _now() -> int:
    return int(datetime.now(timezone.utc).timestamp())


def is_safe_return_path(path: Any) -> bool:
    """Same-site absolute paths only; '//host' would be an open redirect."""
    return isinstance(path, str) and path.startswith("/") and not path.startswith("//")


def create_oauth_state(data: Dict[str, Any]) -> str:
    body = json.dumps({**data, "iat": _now()}, separators=(",", ":"), sort_keys=True)
    payload = _encode(body.encode("utf-8"))
    return f"{payload}.{_signature(payload)}"


def verify_oauth_state(token: str, *, ttl_s: Optional[int] = None) -> Optional[Dict[str, Any]]:
    """Payload of a well-signed, unexpired token; None for anything else."""
    payload, _, sig = (token or "").partition(".")
    if not payload or not sig or not hmac.compare_digest(sig.encode("utf-8"), _signature(payload).encode("utf-8")):
        return None
    try:
        data = json.loads(_decode(payload))
        issued_at = int(data["iat"])
    except (ValueError, TypeError, KeyError):
        return None

    ttl = settings.OAUTH_STATE_TTL_S if ttl_s is None else ttl_s
    if ttl > 0 and _now() - issued_at > ttl:
        return None
    return data


def build_connect_state(user_id: Optional[str], return_to: str = DEFAULT_RETURN_TO) -> str:
    return create_oauth_state({"user_id": user_id, "return_to": return_to})


def read_connect_state(token: str) -> Optional[ConnectState]:
    data = verify_oauth_state(token)
    if data is None:
        return None
    return_to = data.get("return_to")
    return ConnectState(
        return_to=return_to if is_safe_return_path(return_to) else DEFAULT_RETURN_TO,
        user_id=data.get("user_id"),
    )
