"""Backfills from the free-text status era to catalog references."""

from __future__ import annotations

from datetime import UTC, datetime
from logging import getLogger

from sqlalchemy import select
from sqlalchemy.orm import Session

from visaflow.audit_context import SYSTEM_ACTOR, get_correlation_id
from visaflow.models import (
    ActivityLog,
    CaseStatus,
    CollectiveProcess,
    IndividualProcess,
    IndividualProcessStatus,
)

logger = getLogger(__name__)

DEFAULT_CODE = "em_preparacao"

# Legacy free-text statuses (lowercased) to catalog codes.
LEGACY_STATUS_MAPPING: dict[str, str] = {
    "pending_documents": "em_preparacao",
    "pending": "em_preparacao",
    "draft": "em_preparacao",
    "preparation": "em_preparacao",
    "in_progress": "em_tramite",
    "processing": "em_tramite",
    "submitted": "encaminhado_analise",
    "under_review": "encaminhado_analise",
    "review": "encaminhado_analise",
    "awaiting_publication": "diario_oficial",
    "approved": "deferido",
    "granted": "deferido",
    "completed": "deferido",
    "cancelled": "pedido_cancelado",
    "rejected": "pedido_cancelado",
    "denied": "pedido_cancelado",
}

_PROGRESS_EVERY = 100


class StatusResolver:
    """Legacy value -> CaseStatus, by mapping, then code, then display name, then default."""

    def __init__(self, session: Session) -> None:
        statuses = session.execute(select(CaseStatus)).scalars().all()
        self.by_code = {s.code: s for s in statuses}
        self.by_name = {s.name.casefold(): s for s in statuses}
        self.unmapped: dict[str, int] = {}

    def resolve(self, value: str | None) -> CaseStatus | None:
        if not value:
            return self.by_code.get(DEFAULT_CODE)
        key = value.strip().lower()
        mapped = LEGACY_STATUS_MAPPING.get(key)
        if mapped and mapped in self.by_code:
            return self.by_code[mapped]
        if key in self.by_code:
            return self.by_code[key]
        if value.strip().casefold() in self.by_name:
            return self.by_name[value.strip().casefold()]
        self.unmapped[value] = self.unmapped.get(value, 0) + 1
        return self.by_code.get(DEFAULT_CODE)


def backfill_case_status_ids(session: Session) -> dict[str, int]:
    """Point cases and history rows without a catalog reference at the mapped entry."""
    resolver = StatusResolver(session)
    if DEFAULT_CODE not in resolver.by_code:
        logger.warning("Catalog has no %s entry; run 0001_seed_case_statuses first", DEFAULT_CODE)
    counts = {"cases_updated": 0, "cases_skipped": 0, "history_updated": 0, "history_skipped": 0}
    now = datetime.now(UTC)

    for case in session.execute(select(IndividualProcess)).scalars():
        if case.case_status_id is not None:
            counts["cases_skipped"] += 1
            continue
        status = resolver.resolve(case.status)
        if status is None:
            logger.warning("No case status for individual process %s (%r)", case.id, case.status)
            counts["cases_skipped"] += 1
            continue
        case.case_status_id = status.id
        case.updated_at = now
        counts["cases_updated"] += 1
        if counts["cases_updated"] % _PROGRESS_EVERY == 0:
            logger.info("Progress: %d individual processes updated", counts["cases_updated"])

    for row in session.execute(select(IndividualProcessStatus)).scalars():
        if row.case_status_id is not None:
            counts["history_skipped"] += 1
            continue
        status = resolver.resolve(row.status_name)
        if status is None:
            counts["history_skipped"] += 1
            continue
        row.case_status_id = status.id
        counts["history_updated"] += 1

    for value, n in sorted(resolver.unmapped.items()):
        logger.warning("Unmapped legacy status %r on %d rows; used %s", value, n, DEFAULT_CODE)
    session.flush()
    logger.info(
        "Backfill: %d cases and %d history rows linked to the catalog",
        counts["cases_updated"],
        counts["history_updated"],
    )
    return counts


def backfill_active_history(session: Session) -> dict[str, int]:
    """Give every case that has a catalog status an active history row."""
    with_active = set(
        session.execute(
            select(IndividualProcessStatus.individual_process_id).where(
                IndividualProcessStatus.is_active.is_(True)
            )
        )
        .scalars()
        .all()
    )
    stmt = select(IndividualProcess).where(IndividualProcess.case_status_id.is_not(None))
    created = 0
    skipped = 0
    for case in session.execute(stmt).scalars():
        if case.id in with_active:
            skipped += 1
            continue
        status = session.get(CaseStatus, case.case_status_id)
        if status is None:
            logger.warning(
                "Individual process %s references missing case status %s",
                case.id,
                case.case_status_id,
            )
            skipped += 1
            continue
        started = case.date_process or (case.created_at.date().isoformat() if case.created_at else None)
        now = datetime.now(UTC)
        session.add(
            IndividualProcessStatus(
                individual_process_id=case.id,
                case_status_id=status.id,
                status_name=status.name,
                date=started,
                is_active=True,
                notes="Backfilled from case status",
                fillable_fields=status.fillable_fields,
                changed_by=SYSTEM_ACTOR,
                changed_at=now,
                created_at=now,
            )
        )
        created += 1
    session.flush()
    logger.info("Active history rows: %d created, %d cases already had one", created, skipped)
    return {"created": created, "skipped": skipped}


def archive_collective_process_status(session: Session) -> dict[str, int]:
    """Move the removed collective-process status into the activity log and clear it.

    The archive entry is written in the same transaction as the clear, so a
    status is never dropped without its copy.
    """
    archived = 0
    skipped = 0
    for collective in session.execute(select(CollectiveProcess)).scalars():
        if collective.status is None:
            skipped += 1
            continue
        session.add(
            ActivityLog(
                user_id=SYSTEM_ACTOR,
                action="migration_archived",
                entity_type="collectiveProcess",
                entity_id=str(collective.id),
                details_json={
                    "status": collective.status,
                    "completed_at": collective.completed_at.isoformat()
                    if collective.completed_at
                    else None,
                    "reason": "Collective process status is computed from its cases",
                },
                correlation_id=get_correlation_id(),
            )
        )
        collective.status = None
        archived += 1
    session.flush()
    logger.info("Collective processes: %d statuses archived, %d had none", archived, skipped)
    return {"archived": archived, "skipped": skipped}
