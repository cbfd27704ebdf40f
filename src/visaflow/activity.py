"""Activity log producer: entries are queued on the session and written after commit.

Writes happen in a separate session once the caller's transaction has
committed. A failure to write is logged and dropped; it never reaches the
caller and is not retried. A rollback discards whatever was queued.
"""

from __future__ import annotations

from logging import getLogger
from typing import Any

from sqlalchemy import event, select
from sqlalchemy.orm import Session, SessionTransaction, sessionmaker

from visaflow.audit_context import get_correlation_id
from visaflow.models import ActivityLog

logger = getLogger(__name__)

_PENDING_KEY = "pending_activity"


def log_activity(
    session: Session,
    user_id: str,
    action: str,
    entity_type: str,
    entity_id: str | int,
    details: dict[str, Any] | None = None,
) -> None:
    """Queue an activity entry to be written once `session` commits."""
    session.info.setdefault(_PENDING_KEY, []).append(
        {
            "user_id": user_id,
            "action": action,
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "details_json": details,
            "correlation_id": get_correlation_id(),
        }
    )


def activity_mark(session: Session) -> int:
    """Return the current queue length, for use with discard_activity_since()."""
    return len(session.info.get(_PENDING_KEY, []))


def discard_activity_since(session: Session, mark: int) -> None:
    """Drop entries queued after `mark` (e.g. when a savepoint rolled back)."""
    pending = session.info.get(_PENDING_KEY)
    if pending is not None:
        del pending[mark:]


def pending_activity(session: Session) -> list[dict[str, Any]]:
    return list(session.info.get(_PENDING_KEY, []))


def _write_entries(factory: sessionmaker[Session], entries: list[dict[str, Any]]) -> None:
    writer = factory()
    try:
        for entry in entries:
            writer.add(ActivityLog(**entry))
        writer.commit()
    except Exception:
        writer.rollback()
        logger.exception("Dropped %d activity log entries after commit", len(entries))
    finally:
        writer.close()


def install_activity_hooks(factory: sessionmaker[Session]) -> None:
    """Attach the after-commit writer and end-of-transaction cleanup to sessions made by `factory`."""

    def _after_commit(session: Session) -> None:
        entries = session.info.pop(_PENDING_KEY, None)
        if entries:
            _write_entries(factory, entries)

    def _after_transaction_end(session: Session, transaction: SessionTransaction) -> None:
        # Savepoint rollbacks are handled by discard_activity_since().
        if transaction.parent is None:
            session.info.pop(_PENDING_KEY, None)

    event.listen(factory, "after_commit", _after_commit)
    event.listen(factory, "after_transaction_end", _after_transaction_end)


def list_activity(
    session: Session,
    *,
    entity_type: str | None = None,
    entity_id: str | int | None = None,
    action: str | None = None,
    user_id: str | None = None,
    limit: int = 100,
) -> list[ActivityLog]:
    """Most recent activity first, with optional filters."""
    stmt = select(ActivityLog).order_by(ActivityLog.id.desc()).limit(limit)
    if entity_type is not None:
        stmt = stmt.where(ActivityLog.entity_type == entity_type)
    if entity_id is not None:
        stmt = stmt.where(ActivityLog.entity_id == str(entity_id))
    if action is not None:
        stmt = stmt.where(ActivityLog.action == action)
    if user_id is not None:
        stmt = stmt.where(ActivityLog.user_id == user_id)
    return list(session.execute(stmt).scalars().all())
