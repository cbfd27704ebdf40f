"""API key authentication, current-user lookup and role checks."""

from __future__ import annotations

import os

from sqlalchemy import select
from sqlalchemy.orm import Session
from starlette.requests import Request

from visaflow.errors import UnauthorizedError
from visaflow.models import UserProfile

# When VISAFLOW_API_KEYS is empty or unset, we default to a single dev key (dev-only, not for production).
_DEFAULT_DEV_KEYS = {"dev": "dev_key"}

ROLE_ADMIN = "admin"
ROLE_CLIENT = "client"


def parse_api_keys_env() -> dict[str, str]:
    """Parse VISAFLOW_API_KEYS into key -> user_id.
    Format: 'user1:key1,user2:key2'."""
    raw = os.environ.get("VISAFLOW_API_KEYS", "").strip()
    key_to_user: dict[str, str] = {}
    for part in raw.split(","):
        part = part.strip()
        if ":" not in part:
            continue
        user_id, _, key = part.partition(":")
        user_id, key = user_id.strip(), key.strip()
        if user_id and key:
            key_to_user[key] = user_id
    if not key_to_user:
        return {v: k for k, v in _DEFAULT_DEV_KEYS.items()}
    return key_to_user


def require_api_key(request: Request) -> str:
    """Validate X-API-Key header; bind the user id as audit actor and return it.
    Raises 401 if header missing or key invalid."""
    from fastapi import HTTPException

    from visaflow.audit_context import set_actor

    api_key = request.headers.get("X-API-Key")
    if not api_key:
        raise HTTPException(status_code=401, detail="Missing X-API-Key")
    user_id = parse_api_keys_env().get(api_key)
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid API key")
    set_actor(user_id)
    return user_id


def get_current_user_profile(session: Session, user_id: str | None) -> UserProfile:
    """Return the active profile for user_id or raise UnauthorizedError."""
    if not user_id:
        raise UnauthorizedError("Authentication required")
    profile = session.execute(
        select(UserProfile).where(UserProfile.user_id == user_id)
    ).scalar_one_or_none()
    if profile is None or not profile.is_active:
        raise UnauthorizedError(
            "User profile not found. Please contact an administrator to set up your profile."
        )
    return profile


def require_admin(session: Session, user_id: str | None) -> UserProfile:
    """Return the admin profile for user_id or raise UnauthorizedError."""
    profile = get_current_user_profile(session, user_id)
    if profile.role != ROLE_ADMIN:
        raise UnauthorizedError("Access denied: This operation requires administrator privileges")
    return profile
