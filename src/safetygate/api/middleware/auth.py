"""
Bearer key authentication and actor resolution.

Usage:
    Set API_KEY in the environment:  API_KEY=your-secret-key
    Clients pass:                    Authorization: Bearer your-secret-key
                                     X-Actor: dr.meyer     (who is acting)

Every rule change and override records an actor. Authentication itself is
owned by the surrounding platform; this gateway only checks the shared key
and takes the acting clinician or author from X-Actor, falling back to a
stable id derived from the key.

Security:
    - In production (ENV=production), API_KEY is REQUIRED. Startup fails
      without it unless AUTH_DISABLED=true is set explicitly.
    - In development (default), auth is optional.
    - Key comparison uses hmac.compare_digest.
"""

import hashlib
import hmac
import logging
import os
from dataclasses import dataclass

from fastapi import Header, HTTPException, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ...validators import MAX_TITLE_LENGTH

logger = logging.getLogger(__name__)

security_scheme = HTTPBearer(auto_error=False)

ANONYMOUS_ACTOR = "anon"


@dataclass
class AuthContext:
    """Who is calling.

    Attributes:
        api_key: The raw API key (None if auth is disabled).
        user_id: 16 hex chars of the key's SHA-256, or "anon".
        actor: Name recorded in audit trails (X-Actor, else user_id).
    """

    api_key: str | None = None
    user_id: str = ANONYMOUS_ACTOR
    actor: str = ANONYMOUS_ACTOR


def get_api_key() -> str | None:
    """Load API key from environment. Returns None if auth is disabled."""
    return os.environ.get("API_KEY", "").strip() or None


def _is_production() -> bool:
    env = os.environ.get("ENV", os.environ.get("ENVIRONMENT", "development"))
    return env.lower() in ("production", "prod", "staging")


def _auth_explicitly_disabled() -> bool:
    return os.environ.get("AUTH_DISABLED", "").lower() in ("true", "1", "yes")


def check_production_auth() -> None:
    """Call on startup: refuse to run unauthenticated in production."""
    if _is_production():
        if get_api_key() is None:
            if _auth_explicitly_disabled():
                logger.warning(
                    "[Auth] AUTH_DISABLED=true in production. "
                    "Rule changes and overrides are unauthenticated."
                )
            else:
                raise RuntimeError(
                    "API_KEY is required in production mode. "
                    "Set API_KEY in the environment, or set AUTH_DISABLED=true "
                    "to explicitly disable auth (not recommended)."
                )
    elif get_api_key() is None:
        logger.info("[Auth] No API_KEY set (dev mode). Endpoints are unauthenticated.")


def _resolve_actor(x_actor: str | None, fallback: str) -> str:
    actor = (x_actor or "").strip()
    if not actor:
        return fallback
    if len(actor) > MAX_TITLE_LENGTH:
        raise HTTPException(status_code=400, detail="X-Actor header too long")
    return actor


async def verify_api_key(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Security(security_scheme),
    x_actor: str | None = Header(None),
) -> AuthContext:
    """Verify the bearer key and resolve the acting user."""
    expected_key = get_api_key()

    if expected_key is None:
        return AuthContext(actor=_resolve_actor(x_actor, ANONYMOUS_ACTOR))

    client_host = request.client.host if request.client else "unknown"
    if credentials is None:
        logger.warning(f"[Auth] Missing credentials from {client_host}")
        raise HTTPException(status_code=401, detail="Missing API key")

    if not hmac.compare_digest(credentials.credentials, expected_key):
        logger.warning(f"[Auth] Invalid API key from {client_host}")
        raise HTTPException(status_code=403, detail="Invalid API key")

    key = credentials.credentials
    user_id = hashlib.sha256(key.encode()).hexdigest()[:16]
    return AuthContext(api_key=key, user_id=user_id, actor=_resolve_actor(x_actor, user_id))
