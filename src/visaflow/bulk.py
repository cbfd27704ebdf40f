"""Admin bulk operations: people import, case creation and status update.

Every item runs in its own savepoint. An item that fails is rolled back alone
and reported in `failed`; the others are kept. One activity entry is queued per
success, plus a `*_completed` summary for the whole call.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import UTC, datetime
from logging import getLogger
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from visaflow.activity import activity_mark, discard_activity_since, log_activity
from visaflow.auth import require_admin
from visaflow.catalog import get_case_status_by_code, get_case_status_or_404, load_transition_table
from visaflow.errors import ConflictError, NotFoundError, ValidationFailedError, WorkflowError
from visaflow.migrations.backfill import StatusResolver
from visaflow.models import CollectiveProcess, IndividualProcess, Person
from visaflow.status_history import get_case_or_404, record_status
from visaflow.transitions import TransitionTable, validate_status_transition

logger = getLogger(__name__)


def _failure_reason(exc: Exception) -> tuple[str, str]:
    """(kind, message) for a per-item failure."""
    if isinstance(exc, WorkflowError):
        return exc.kind, exc.message
    if isinstance(exc, StaleDataError):
        return ConflictError.kind, "Case was modified concurrently"
    if isinstance(exc, IntegrityError):
        return ConflictError.kind, "Constraint violated"
    raise exc


def _import_person(session: Session, data: Mapping[str, Any]) -> Person:
    full_name = (data.get("full_name") or "").strip()
    if not full_name:
        raise ValidationFailedError("full_name is required")
    email = (data.get("email") or "").strip().lower() or None
    cpf = (data.get("cpf") or "").strip() or None
    if email and session.execute(select(Person.id).where(Person.email == email)).first():
        raise ConflictError(f"Email {email} already exists")
    if cpf and session.execute(select(Person.id).where(Person.cpf == cpf)).first():
        raise ConflictError(f"CPF {cpf} already exists")
    now = datetime.now(UTC)
    person = Person(
        full_name=full_name,
        email=email,
        cpf=cpf,
        birth_date=data.get("birth_date") or None,
        nationality=data.get("nationality") or None,
        phone_number=data.get("phone_number") or None,
        marital_status=data.get("marital_status") or None,
        notes="Imported via bulk import",
        created_at=now,
        updated_at=now,
    )
    session.add(person)
    session.flush()
    return person


def bulk_import_people(
    session: Session, actor: str, rows: Iterable[Mapping[str, Any]]
) -> dict[str, Any]:
    """Create people from import rows; duplicates by email or CPF are reported per row."""
    require_admin(session, actor)
    rows = list(rows)
    successful: list[int] = []
    failed: list[dict[str, Any]] = []
    for index, data in enumerate(rows, start=1):
        mark = activity_mark(session)
        try:
            with session.begin_nested():
                person = _import_person(session, data)
                log_activity(
                    session,
                    actor,
                    "bulk_import_person",
                    "people",
                    person.id,
                    {"import_index": index},
                )
            successful.append(person.id)
        except (WorkflowError, IntegrityError) as e:
            discard_activity_since(session, mark)
            kind, message = _failure_reason(e)
            failed.append(
                {"index": index, "name": data.get("full_name") or "", "reason": message, "kind": kind}
            )
    logger.info("Bulk import: %d created, %d failed", len(successful), len(failed))
    log_activity(
        session,
        actor,
        "bulk_import_people_completed",
        "people",
        "bulk",
        {"total_processed": len(rows), "successful": len(successful), "failed": len(failed)},
    )
    return {"successful": successful, "failed": failed, "total_processed": len(rows)}


def bulk_create_individual_processes(
    session: Session,
    actor: str,
    collective_process_id: int,
    person_ids: Iterable[int],
    case_status_id: int,
    deadline_date: str | None = None,
) -> dict[str, Any]:
    """Open one case per person in a collective process, each with an initial active status."""
    require_admin(session, actor)
    collective = session.get(CollectiveProcess, collective_process_id)
    if collective is None:
        raise NotFoundError("Collective process not found")
    status = get_case_status_or_404(session, case_status_id)
    person_ids = list(person_ids)

    successful: list[int] = []
    failed: list[dict[str, Any]] = []
    for person_id in person_ids:
        mark = activity_mark(session)
        try:
            with session.begin_nested():
                person = session.get(Person, person_id)
                if person is None:
                    raise NotFoundError("Person not found")
                duplicate = session.execute(
                    select(IndividualProcess.id)
                    .where(IndividualProcess.collective_process_id == collective_process_id)
                    .where(IndividualProcess.person_id == person_id)
                ).first()
                if duplicate:
                    raise ConflictError(f"{person.full_name} is already in this collective process")
                now = datetime.now(UTC)
                case = IndividualProcess(
                    collective_process_id=collective_process_id,
                    person_id=person_id,
                    deadline_date=deadline_date,
                    is_active=True,
                    created_at=now,
                    updated_at=now,
                )
                session.add(case)
                session.flush()
                record_status(
                    session, actor, case, status, notes="Initial status on bulk creation"
                )
                log_activity(
                    session,
                    actor,
                    "bulk_create_individual_process",
                    "individualProcesses",
                    case.id,
                    {
                        "person_id": person_id,
                        "collective_process_id": collective_process_id,
                        "case_status_id": status.id,
                        "case_status_name": status.name,
                    },
                )
            successful.append(case.id)
        except (WorkflowError, IntegrityError) as e:
            discard_activity_since(session, mark)
            kind, message = _failure_reason(e)
            failed.append({"person_id": person_id, "reason": message, "kind": kind})
    logger.info(
        "Bulk create in collective process %s: %d created, %d failed",
        collective_process_id,
        len(successful),
        len(failed),
    )
    log_activity(
        session,
        actor,
        "bulk_create_individual_processes_completed",
        "individualProcesses",
        "bulk",
        {
            "collective_process_id": collective_process_id,
            "total_processed": len(person_ids),
            "successful": len(successful),
            "failed": len(failed),
        },
    )
    return {"successful": successful, "failed": failed, "total_processed": len(person_ids)}


def bulk_update_status(
    session: Session,
    actor: str,
    case_ids: Iterable[int],
    code: str,
    reason: str | None = None,
    table: TransitionTable | None = None,
) -> dict[str, Any]:
    """Move many cases to `code`, checking each case's own current status.

    An unknown target code aborts the whole call; everything else is a
    per-case failure.
    """
    require_admin(session, actor)
    target = get_case_status_by_code(session, code)
    if target is None:
        raise NotFoundError(f'Case status "{code}" not found')
    if table is None:
        table = load_transition_table(session)
    case_ids = list(case_ids)
    legacy: StatusResolver | None = None

    successful: list[int] = []
    failed: list[dict[str, Any]] = []
    for case_id in case_ids:
        mark = activity_mark(session)
        try:
            with session.begin_nested():
                case = get_case_or_404(session, case_id)
                previous = case.case_status
                previous_id = case.case_status_id
                if previous is None and case.status:
                    # Not backfilled yet: check against what the legacy string maps to.
                    if legacy is None:
                        legacy = StatusResolver(session)
                    previous = legacy.resolve(case.status)
                previous_code = previous.code if previous is not None else None
                validate_status_transition(previous_code, code, table)
                record_status(session, actor, case, target, notes=reason or "Bulk status update")
                log_activity(
                    session,
                    actor,
                    "bulk_update_status",
                    "individualProcesses",
                    case_id,
                    {
                        "previous_case_status_id": previous_id,
                        "previous_status": previous_code,
                        "new_case_status_id": target.id,
                        "new_status": code,
                        "reason": reason,
                    },
                )
            successful.append(case_id)
        except (WorkflowError, IntegrityError, StaleDataError) as e:
            discard_activity_since(session, mark)
            kind, message = _failure_reason(e)
            failed.append({"id": case_id, "reason": f"{kind}: {message}", "kind": kind})
    if failed:
        logger.warning("Bulk status update to %s: %d of %d failed", code, len(failed), len(case_ids))
    log_activity(
        session,
        actor,
        "bulk_update_status_completed",
        "individualProcesses",
        "bulk",
        {
            "new_status": code,
            "total_processed": len(case_ids),
            "successful": len(successful),
            "failed": len(failed),
        },
    )
    return {"successful": successful, "failed": failed, "total_processed": len(case_ids)}
