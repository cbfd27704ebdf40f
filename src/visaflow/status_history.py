"""Per-case status history: the active status slot and its append-only log.

A case holds at most one active history row. Making a row active
deactivates every other active row of the same case, inserts or promotes the
new one, and patches the case's `case_status_id` and legacy `status` in the
same transaction. The case row carries a version counter, so two writers
racing on the same case cannot both commit; the partial unique index on
active rows backs this at the database level.
"""

from __future__ import annotations

import re
from datetime import UTC, datetime
from logging import getLogger
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from visaflow.activity import log_activity
from visaflow.auth import ROLE_CLIENT, get_current_user_profile, require_admin
from visaflow.catalog import get_case_status_by_code, get_case_status_or_404, load_transition_table
from visaflow.errors import (
    IllegalStateDeletionError,
    NotFoundError,
    UnauthorizedError,
    ValidationFailedError,
)
from visaflow.models import (
    CaseStatus,
    CollectiveProcess,
    IndividualProcess,
    IndividualProcessStatus,
    UserProfile,
)
from visaflow.transitions import TransitionTable, validate_status_transition

logger = getLogger(__name__)

# Individual-process columns a status may capture.
FILLABLE_CASE_FIELDS = frozenset(
    {
        "protocol_number",
        "rnm_number",
        "rnm_deadline",
        "dou_number",
        "dou_section",
        "dou_page",
        "dou_date",
        "mre_office_number",
        "appointment_date_time",
        "deadline_date",
    }
)

# Entering this status stamps the case's date_process.
PREPARATION_CODE = "em_preparacao"

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def _today() -> str:
    return datetime.now(UTC).date().isoformat()


def _check_date(value: str | None) -> None:
    if value is not None and not _DATE_RE.match(value):
        raise ValidationFailedError("Invalid date format. Expected YYYY-MM-DD")


def get_case_or_404(session: Session, case_id: int) -> IndividualProcess:
    case = session.get(IndividualProcess, case_id)
    if case is None:
        raise NotFoundError("Individual process not found")
    return case


def get_status_row_or_404(session: Session, status_id: int) -> IndividualProcessStatus:
    row = session.get(IndividualProcessStatus, status_id)
    if row is None:
        raise NotFoundError("Status record not found")
    return row


def _check_case_access(session: Session, profile: UserProfile, case: IndividualProcess) -> None:
    """Clients may only read cases of their own company's collective processes."""
    if profile.role != ROLE_CLIENT:
        return
    if profile.company_id is None:
        raise UnauthorizedError("Client user must have a company assignment")
    if case.collective_process_id is None:
        raise UnauthorizedError("Access denied: Process does not belong to your company")
    collective = session.get(CollectiveProcess, case.collective_process_id)
    if collective is None or collective.company_id != profile.company_id:
        raise UnauthorizedError("Access denied: Process does not belong to your company")


def get_readable_case(session: Session, actor: str, case_id: int) -> IndividualProcess:
    profile = get_current_user_profile(session, actor)
    case = get_case_or_404(session, case_id)
    _check_case_access(session, profile, case)
    return case


def get_readable_collective(session: Session, actor: str, collective_id: int) -> CollectiveProcess:
    profile = get_current_user_profile(session, actor)
    collective = session.get(CollectiveProcess, collective_id)
    if collective is None:
        raise NotFoundError("Collective process not found")
    if profile.role == ROLE_CLIENT and (
        profile.company_id is None or collective.company_id != profile.company_id
    ):
        raise UnauthorizedError("Access denied: Process does not belong to your company")
    return collective


def _user_summaries(session: Session, user_ids: set[str]) -> dict[str, dict[str, str]]:
    if not user_ids:
        return {}
    rows = session.execute(select(UserProfile).where(UserProfile.user_id.in_(user_ids))).scalars()
    return {p.user_id: {"full_name": p.full_name, "email": p.email} for p in rows}


def _case_status_dict(status: CaseStatus | None) -> dict[str, Any] | None:
    if status is None:
        return None
    return {
        "id": status.id,
        "code": status.code,
        "name": status.name,
        "name_en": status.name_en,
        "category": status.category,
        "color": status.color,
        "order_number": status.order_number,
        "sort_order": status.sort_order,
        "fillable_fields": status.fillable_fields,
        "is_active": status.is_active,
    }


def _row_dict(
    row: IndividualProcessStatus,
    users: dict[str, dict[str, str]],
    with_case_status: bool = False,
) -> dict[str, Any]:
    out: dict[str, Any] = {
        "id": row.id,
        "individual_process_id": row.individual_process_id,
        "case_status_id": row.case_status_id,
        "status_name": row.status_name,
        "date": row.date,
        "is_active": row.is_active,
        "notes": row.notes,
        "fillable_fields": row.fillable_fields,
        "filled_fields_data": row.filled_fields_data,
        "changed_by": row.changed_by,
        "changed_at": row.changed_at,
        "created_at": row.created_at,
        "changed_by_user": users.get(row.changed_by),
    }
    if with_case_status:
        out["case_status"] = _case_status_dict(row.case_status)
    return out


def _rows_for_case(
    session: Session, case_id: int, by_changed_at: bool = False
) -> list[IndividualProcessStatus]:
    stmt = select(IndividualProcessStatus).where(
        IndividualProcessStatus.individual_process_id == case_id
    )
    if by_changed_at:
        stmt = stmt.order_by(IndividualProcessStatus.changed_at, IndividualProcessStatus.id)
    else:
        stmt = stmt.order_by(IndividualProcessStatus.id)
    return list(session.execute(stmt).scalars().all())


def _active_rows(session: Session, case_id: int) -> list[IndividualProcessStatus]:
    stmt = (
        select(IndividualProcessStatus)
        .where(IndividualProcessStatus.individual_process_id == case_id)
        .where(IndividualProcessStatus.is_active.is_(True))
    )
    return list(session.execute(stmt).scalars().all())


def list_statuses(session: Session, actor: str, case_id: int) -> list[dict[str, Any]]:
    """All history rows of a case, with the acting user's name and email."""
    get_readable_case(session, actor, case_id)
    rows = _rows_for_case(session, case_id)
    users = _user_summaries(session, {r.changed_by for r in rows})
    return [_row_dict(r, users) for r in rows]


def get_active_status(session: Session, actor: str, case_id: int) -> dict[str, Any] | None:
    get_readable_case(session, actor, case_id)
    rows = _active_rows(session, case_id)
    if not rows:
        return None
    row = max(rows, key=lambda r: r.id)
    return _row_dict(row, _user_summaries(session, {row.changed_by}))


def get_status_history(session: Session, actor: str, case_id: int) -> list[dict[str, Any]]:
    """History oldest first, each row enriched with user and full catalog entry."""
    get_readable_case(session, actor, case_id)
    rows = _rows_for_case(session, case_id, by_changed_at=True)
    users = _user_summaries(session, {r.changed_by for r in rows})
    return [_row_dict(r, users, with_case_status=True) for r in rows]


def resolve_case_status(
    session: Session, case_status_id: int | None = None, status_name: str | None = None
) -> CaseStatus:
    """Catalog entry by id, else by code, else by display name."""
    if case_status_id is not None:
        return get_case_status_or_404(session, case_status_id)
    if not status_name:
        raise ValidationFailedError("Provide case_status_id or status_name")
    status = get_case_status_by_code(session, status_name)
    if status is None:
        status = (
            session.execute(select(CaseStatus).where(CaseStatus.name == status_name))
            .scalars()
            .first()
        )
    if status is None:
        raise NotFoundError(f'Case status "{status_name}" not found')
    return status


def _deactivate_active_rows(
    session: Session, case_id: int, keep_id: int | None = None
) -> list[int]:
    """Deactivate every active row of the case except keep_id; return their ids."""
    rows = [r for r in _active_rows(session, case_id) if r.id != keep_id]
    if len(rows) > 1:
        logger.warning(
            "Individual process %s had %d active statuses; deactivating all", case_id, len(rows)
        )
    for row in rows:
        row.is_active = False
    if rows:
        session.flush()
    return [r.id for r in rows]


def _check_filled_fields(data: dict[str, Any] | None, fillable: list[str] | None) -> None:
    if not data:
        return
    allowed = set(fillable or [])
    invalid = sorted(k for k in data if k not in allowed)
    if invalid:
        raise ValidationFailedError(
            f"Cannot fill fields that are not configured as fillable: {', '.join(invalid)}"
        )
    unknown = sorted(k for k in data if k not in FILLABLE_CASE_FIELDS)
    if unknown:
        raise ValidationFailedError(f"Invalid field names: {', '.join(unknown)}")


def _point_case_at(case: IndividualProcess, status: CaseStatus) -> None:
    case.case_status = status
    case.case_status_id = status.id
    case.status = status.code
    case.updated_at = datetime.now(UTC)


def record_status(
    session: Session,
    actor: str,
    case: IndividualProcess,
    status: CaseStatus,
    *,
    notes: str | None = None,
    is_active: bool = True,
    date: str | None = None,
    filled_fields: dict[str, Any] | None = None,
) -> tuple[IndividualProcessStatus, list[int]]:
    """Write a history row for `case`; when active, sweep the old active rows and repoint the case.

    Returns the new row and the ids of the rows it deactivated. Callers check
    permissions and log the activity.
    """
    _check_date(date)
    _check_filled_fields(filled_fields, status.fillable_fields)
    status_date = date or _today()
    now = datetime.now(UTC)

    deactivated: list[int] = []
    if is_active:
        deactivated = _deactivate_active_rows(session, case.id)

    row = IndividualProcessStatus(
        individual_process_id=case.id,
        case_status_id=status.id,
        status_name=status.name,
        date=status_date,
        is_active=is_active,
        notes=notes,
        fillable_fields=status.fillable_fields,
        filled_fields_data=filled_fields or None,
        changed_by=actor,
        changed_at=now,
        created_at=now,
    )
    session.add(row)

    if filled_fields:
        for key, value in filled_fields.items():
            setattr(case, key, value)
        case.updated_at = now
    if is_active:
        _point_case_at(case, status)
        if status.code == PREPARATION_CODE:
            case.date_process = status_date
    session.flush()
    return row, deactivated


def add_status(
    session: Session,
    actor: str,
    case_id: int,
    *,
    case_status_id: int | None = None,
    status_name: str | None = None,
    notes: str | None = None,
    is_active: bool = True,
    date: str | None = None,
    filled_fields: dict[str, Any] | None = None,
) -> IndividualProcessStatus:
    """Append a status row to a case (admin only). No transition check; see change_status()."""
    require_admin(session, actor)
    case = get_case_or_404(session, case_id)
    status = resolve_case_status(session, case_status_id, status_name)
    row, deactivated = record_status(
        session,
        actor,
        case,
        status,
        notes=notes,
        is_active=is_active,
        date=date,
        filled_fields=filled_fields,
    )
    log_activity(
        session,
        actor,
        "status_added",
        "individualProcessStatus",
        row.id,
        {
            "individual_process_id": case_id,
            "case_status_id": status.id,
            "case_status_name": status.name,
            "date": row.date,
            "is_active": is_active,
            "deactivated_status_ids": deactivated,
        },
    )
    return row


def change_status(
    session: Session,
    actor: str,
    case_id: int,
    code: str,
    *,
    notes: str | None = None,
    date: str | None = None,
    filled_fields: dict[str, Any] | None = None,
    table: TransitionTable | None = None,
) -> IndividualProcessStatus:
    """Move a case to `code` after checking the transition from its current status."""
    require_admin(session, actor)
    case = get_case_or_404(session, case_id)
    target = get_case_status_by_code(session, code)
    if target is None:
        raise NotFoundError(f'Case status "{code}" not found')
    current = case.case_status.code if case.case_status is not None else None
    if table is None:
        table = load_transition_table(session)
    validate_status_transition(current, code, table)
    return add_status(
        session,
        actor,
        case_id,
        case_status_id=target.id,
        notes=notes,
        date=date,
        filled_fields=filled_fields,
    )


def update_status(
    session: Session,
    actor: str,
    status_id: int,
    *,
    case_status_id: int | None = None,
    status_name: str | None = None,
    notes: str | None = None,
    is_active: bool | None = None,
    date: str | None = None,
) -> IndividualProcessStatus:
    """Edit a history row in place (admin only). Promoting it to active sweeps its siblings."""
    require_admin(session, actor)
    row = get_status_row_or_404(session, status_id)
    _check_date(date)
    new_status = get_case_status_or_404(session, case_status_id) if case_status_id else None

    old_values: dict[str, Any] = {}
    new_values: dict[str, Any] = {}

    def _set(field: str, value: Any) -> None:
        old_values[field] = getattr(row, field)
        new_values[field] = value
        setattr(row, field, value)

    if is_active is True and not row.is_active:
        _deactivate_active_rows(session, row.individual_process_id, keep_id=row.id)
    if new_status is not None:
        _set("case_status_id", new_status.id)
        row.case_status = new_status
        _set("status_name", new_status.name)
        row.fillable_fields = new_status.fillable_fields
    elif status_name is not None:
        _set("status_name", status_name)
    if date is not None:
        _set("date", date)
    if notes is not None:
        _set("notes", notes)
    if is_active is not None:
        _set("is_active", is_active)
    session.flush()

    case = get_case_or_404(session, row.individual_process_id)
    if row.is_active and (is_active is True or new_status is not None):
        current = new_status or row.case_status
        if current is not None:
            _point_case_at(case, current)
    elif row.is_active and status_name is not None:
        case.status = status_name
        case.updated_at = datetime.now(UTC)
    if date is not None and row.case_status is not None and row.case_status.code == PREPARATION_CODE:
        case.date_process = date
    session.flush()

    log_activity(
        session,
        actor,
        "status_updated",
        "individualProcessStatus",
        status_id,
        {
            "individual_process_id": row.individual_process_id,
            "old_values": old_values,
            "new_values": new_values,
        },
    )
    return row


def delete_status(session: Session, actor: str, status_id: int) -> dict[str, Any]:
    """Delete a superseded history row (admin only). The active row cannot be deleted."""
    require_admin(session, actor)
    row = get_status_row_or_404(session, status_id)
    if row.is_active:
        raise IllegalStateDeletionError(
            "Cannot delete the active status. Add or activate another status first."
        )
    case = get_case_or_404(session, row.individual_process_id)
    cleared: list[str] = []
    for key, value in (row.filled_fields_data or {}).items():
        # Only undo values this row still owns on the case.
        if key in FILLABLE_CASE_FIELDS and getattr(case, key) == value:
            setattr(case, key, None)
            cleared.append(key)
    if cleared:
        case.updated_at = datetime.now(UTC)
    case_id = row.individual_process_id
    status_name = row.status_name
    session.delete(row)
    session.flush()
    log_activity(
        session,
        actor,
        "status_deleted",
        "individualProcessStatus",
        status_id,
        {"individual_process_id": case_id, "status_name": status_name, "cleared_fields": cleared},
    )
    return {"success": True, "cleared_fields": cleared}


def _effective_fillable(session: Session, row: IndividualProcessStatus) -> list[str]:
    if row.fillable_fields:
        return list(row.fillable_fields)
    if row.case_status is not None and row.case_status.fillable_fields:
        return list(row.case_status.fillable_fields)
    return []


def get_fillable_fields(session: Session, actor: str, status_id: int) -> dict[str, Any]:
    """Fillable field names for a history row with current values (row data wins)."""
    row = get_status_row_or_404(session, status_id)
    get_readable_case(session, actor, row.individual_process_id)
    case = get_case_or_404(session, row.individual_process_id)
    fillable = _effective_fillable(session, row)
    current = {
        name: getattr(case, name)
        for name in fillable
        if name in FILLABLE_CASE_FIELDS and getattr(case, name) not in (None, "")
    }
    return {"fillable_fields": fillable, "filled_fields_data": {**current, **(row.filled_fields_data or {})}}


def save_filled_fields(
    session: Session, actor: str, status_id: int, data: dict[str, Any]
) -> dict[str, Any]:
    """Store captured values on the row and copy them to the case (admin or owning client)."""
    row = get_status_row_or_404(session, status_id)
    case = get_readable_case(session, actor, row.individual_process_id)
    _check_filled_fields(data, _effective_fillable(session, row))
    row.filled_fields_data = {**(row.filled_fields_data or {}), **data}
    for key, value in data.items():
        setattr(case, key, value)
    if data:
        case.updated_at = datetime.now(UTC)
    session.flush()
    log_activity(
        session,
        actor,
        "filled_fields_saved",
        "individualProcessStatus",
        status_id,
        {"filled_fields": sorted(data)},
    )
    return {"success": True}


def update_fillable_fields(
    session: Session, actor: str, status_id: int, fields: list[str] | None
) -> IndividualProcessStatus:
    """Replace a history row's own fillable field list (admin only).

    None clears the override so the row falls back to its catalog entry.
    """
    require_admin(session, actor)
    row = get_status_row_or_404(session, status_id)
    if fields is not None:
        unknown = sorted(set(fields) - FILLABLE_CASE_FIELDS)
        if unknown:
            raise ValidationFailedError(f"Invalid field names: {', '.join(unknown)}")
    row.fillable_fields = list(fields) if fields is not None else None
    session.flush()
    log_activity(
        session,
        actor,
        "fillable_fields_updated",
        "individualProcessStatus",
        status_id,
        {"fillable_fields": row.fillable_fields},
    )
    return row
