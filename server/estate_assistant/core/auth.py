from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import jwt  # PyJWT
from fastapi import Depends, HTTPException, Request

from estate_assistant.config import Settings, get_settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Actor:
    """An authenticated end user, resolved from a Supabase access token."""

    user_id: str
    email: Optional[str] = None
    access_token: Optional[str] = None
    claims: Optional[Dict[str, Any]] = None


def bearer_token(request: Request) -> Optional[str]:
    auth = request.headers.get("authorization") or request.headers.get("Authorization")
    if not auth or not auth.lower().startswith("bearer "):
        return None
    token = auth.split(" ", 1)[1].strip()
    return token or None


def verify_access_token(token: str, secret: Optional[str], audience: Optional[str] = "authenticated") -> Optional[Actor]:
    """
    Verify a Supabase access token (HS256, signed with the project JWT secret).
    - Returns an Actor whose user_id is the `sub` claim.
    - Returns None when no secret is configured or the token is invalid/expired,
      so a missing secret never breaks startup.
    """
    if not secret:
        return None
    try:
        options = {"require": ["sub"]}
        if audience:
            payload = jwt.decode(token, secret, algorithms=["HS256"], audience=audience, options=options)
        else:
            options["verify_aud"] = False
            payload = jwt.decode(token, secret, algorithms=["HS256"], options=options)
    except jwt.PyJWTError as e:
        logger.info("Rejected access token: %s", e)
        return None
    if not isinstance(payload, dict) or not payload.get("sub"):
        return None
    return Actor(user_id=str(payload["sub"]), email=payload.get("email"), access_token=token, claims=payload)


def get_optional_actor(request: Request, settings: Settings = Depends(get_settings)) -> Optional[Actor]:
    """Resolve the actor for this request, or None for anonymous callers."""
    token = bearer_token(request)
    if not token:
        return None
    return verify_access_token(token, settings.supabase_jwt_secret, settings.supabase_jwt_audience)


def get_current_actor(actor: Optional[Actor] = Depends(get_optional_actor)) -> Actor:
    if actor is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return actor
