"""Ledger-backed runner for data migrations."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import UTC, datetime
from logging import getLogger
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from visaflow.migrations.backfill import (
    archive_collective_process_status,
    backfill_active_history,
    backfill_case_status_ids,
)
from visaflow.migrations.renumber import renumber_order_numbers
from visaflow.migrations.seed import seed_case_statuses
from visaflow.models import DataMigration

logger = getLogger(__name__)


@dataclass(frozen=True)
class Migration:
    """A named, row-idempotent data change. `apply` returns per-row counters."""

    migration_id: str
    description: str
    apply: Callable[[Session], dict[str, int]]


MIGRATIONS: tuple[Migration, ...] = (
    Migration("0001_seed_case_statuses", "Insert missing catalog entries", seed_case_statuses),
    Migration(
        "0002_backfill_case_status_ids",
        "Link legacy status strings to catalog entries",
        backfill_case_status_ids,
    ),
    Migration(
        "0003_backfill_active_history",
        "Create an active history row for cases without one",
        backfill_active_history,
    ),
    Migration(
        "0004_archive_collective_process_status",
        "Archive and clear the removed collective process status",
        archive_collective_process_status,
    ),
    Migration(
        "0005_renumber_order_numbers",
        "Apply the current sequence positions",
        renumber_order_numbers,
    ),
)


def get_migration(migration_id: str) -> Migration:
    for m in MIGRATIONS:
        if m.migration_id == migration_id:
            return m
    raise ValueError(f"Unknown migration: {migration_id}")


def applied_migrations(session: Session) -> dict[str, DataMigration]:
    rows = session.execute(select(DataMigration)).scalars().all()
    return {r.migration_id: r for r in rows}


def run_migrations(
    session: Session, ids: Iterable[str] | None = None, force: bool = False
) -> list[dict[str, Any]]:
    """Apply registered migrations in order and record them in the ledger.

    Migrations already in the ledger are skipped unless `force` is set. Pass
    `ids` to restrict the run; they still execute in registry order.
    """
    if ids is not None:
        wanted = {get_migration(i).migration_id for i in ids}
        selected = [m for m in MIGRATIONS if m.migration_id in wanted]
    else:
        selected = list(MIGRATIONS)
    ledger = applied_migrations(session)
    results: list[dict[str, Any]] = []
    for migration in selected:
        entry = ledger.get(migration.migration_id)
        if entry is not None and not force:
            logger.info("Migration %s already applied at %s", migration.migration_id, entry.applied_at)
            results.append({"migration_id": migration.migration_id, "status": "skipped", "summary": None})
            continue
        logger.info("Running migration %s: %s", migration.migration_id, migration.description)
        summary = migration.apply(session)
        now = datetime.now(UTC)
        if entry is None:
            session.add(
                DataMigration(migration_id=migration.migration_id, applied_at=now, summary_json=summary)
            )
        else:
            entry.applied_at = now
            entry.summary_json = summary
        session.flush()
        logger.info("Migration %s done: %s", migration.migration_id, summary)
        results.append({"migration_id": migration.migration_id, "status": "applied", "summary": summary})
    return results
