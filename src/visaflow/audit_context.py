"""Request context: correlation_id and acting user id (CLI run or API request)."""

from __future__ import annotations

import uuid
from contextvars import ContextVar

_correlation_id: ContextVar[str | None] = ContextVar("visaflow_correlation_id", default=None)
_actor: ContextVar[str | None] = ContextVar("visaflow_actor", default=None)

SYSTEM_ACTOR = "system"


def set_audit_context(correlation_id: str | None, actor: str | None = None) -> None:
    """Set correlation_id and actor for the current context."""
    _correlation_id.set(correlation_id)
    _actor.set(actor)


def set_actor(actor: str) -> None:
    """Set only the actor (after API key auth). Leaves correlation_id unchanged."""
    _actor.set(actor)


def get_correlation_id() -> str:
    """Return current correlation_id, generating and storing one if not set."""
    cid = _correlation_id.get()
    if cid is None:
        cid = str(uuid.uuid4())
        _correlation_id.set(cid)
    return cid


def get_actor() -> str:
    act = _actor.get()
    return act if act is not None else SYSTEM_ACTOR
