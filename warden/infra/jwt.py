"""Access tokens for Warden's authenticated and admin routes.

HS256 over `settings.secret_key`. A token names the user (`sub`), the roles
that gate `/admin/*` (`roles`) and optionally a session (`sid`).
"""

from __future__ import annotations

import time
from typing import Any, Dict, Iterable, Optional

import jwt
from jwt import InvalidTokenError

from warden.settings import settings

ISSUER = "warden-api"
AUDIENCE = "warden-clients"
ALGORITHM = "HS256"
ACCESS_TTL_SECONDS = 900
LEEWAY_SECONDS = 5


def encode_access(
    subject: str,
    *,
    roles: Iterable[str] = (),
    session_id: Optional[str] = None,
    ttl_seconds: int = ACCESS_TTL_SECONDS,
) -> str:
    now = int(time.time())
    body: Dict[str, Any] = {
        "iss": ISSUER,
        "aud": AUDIENCE,
        "sub": str(subject),
        "roles": sorted({str(role) for role in roles}),
        "iat": now,
        "exp": now + ttl_seconds,
    }
    if session_id:
        body["sid"] = session_id
    return jwt.encode(body, settings.secret_key, algorithm=ALGORITHM)


def decode_access(token: str) -> Dict[str, Any]:
    """Validate signature, issuer, audience and expiry.

    Raises jwt.InvalidTokenError subclasses on failure, including a missing
    subject or a `roles` claim that is neither a list nor a string.
    """
    payload = jwt.decode(
        token,
        settings.secret_key,
        algorithms=[ALGORITHM],
        audience=AUDIENCE,
        issuer=ISSUER,
        leeway=LEEWAY_SECONDS,
        options={"require": ["exp", "iat", "iss", "aud", "sub"]},
    )
    if not str(payload.get("sub") or "").strip():
        raise InvalidTokenError("missing_claim:sub")
    roles = payload.get("roles", [])
    if not isinstance(roles, (list, str)):
        raise InvalidTokenError("invalid_claim:roles")
    return payload
