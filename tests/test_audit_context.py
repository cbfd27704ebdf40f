"""Tests for audit context (correlation_id and actor traceability)."""

from visaflow.audit_context import (
    SYSTEM_ACTOR,
    get_actor,
    get_correlation_id,
    set_actor,
    set_audit_context,
)


def test_set_and_get_context() -> None:
    set_audit_context("corr-123", "admin-1")
    assert get_correlation_id() == "corr-123"
    assert get_actor() == "admin-1"


def test_get_correlation_id_generated_when_unset() -> None:
    """When correlation_id is not set, get_correlation_id returns a generated UUID."""
    set_audit_context(None, "system")
    cid = get_correlation_id()
    assert len(cid) == 36
    assert cid.count("-") == 4
    assert get_correlation_id() == cid


def test_get_actor_default_system_when_unset() -> None:
    set_audit_context("x", None)
    assert get_actor() == SYSTEM_ACTOR


def test_set_actor_keeps_correlation_id() -> None:
    """API key auth binds the actor after the middleware set the correlation id."""
    set_audit_context("req-456", None)
    set_actor("client-1")
    assert get_correlation_id() == "req-456"
    assert get_actor() == "client-1"
