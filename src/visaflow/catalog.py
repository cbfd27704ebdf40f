"""CaseStatus catalog: queries and admin mutations."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import UTC, datetime
from logging import getLogger
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from visaflow.activity import log_activity
from visaflow.auth import require_admin
from visaflow.errors import (
    ConflictError,
    InUseError,
    NotFoundError,
    ValidationFailedError,
    WorkflowError,
)
from visaflow.models import CaseStatus, IndividualProcess
from visaflow.transitions import TransitionTable, build_transition_table

logger = getLogger(__name__)

_UPDATABLE_FIELDS = (
    "name",
    "name_en",
    "code",
    "description",
    "category",
    "color",
    "sort_order",
    "order_number",
    "fillable_fields",
    "allowed_next_codes",
    "is_active",
)

# Columns a patch may leave out but never clear.
_REQUIRED_FIELDS = frozenset({"name", "code", "sort_order", "is_active"})


def list_case_statuses(session: Session, include_inactive: bool = False) -> list[CaseStatus]:
    stmt = select(CaseStatus).order_by(CaseStatus.sort_order, CaseStatus.id)
    if not include_inactive:
        stmt = stmt.where(CaseStatus.is_active.is_(True))
    return list(session.execute(stmt).scalars().all())


def list_active_case_statuses(session: Session) -> list[CaseStatus]:
    return list_case_statuses(session, include_inactive=False)


def get_case_status(session: Session, status_id: int) -> CaseStatus | None:
    return session.get(CaseStatus, status_id)


def get_case_status_by_code(session: Session, code: str) -> CaseStatus | None:
    return session.execute(select(CaseStatus).where(CaseStatus.code == code)).scalars().first()


def get_case_statuses_by_category(session: Session, category: str) -> list[CaseStatus]:
    stmt = (
        select(CaseStatus)
        .where(CaseStatus.category == category)
        .order_by(CaseStatus.sort_order, CaseStatus.id)
    )
    return list(session.execute(stmt).scalars().all())


def get_case_status_by_order_number(session: Session, order_number: int) -> CaseStatus | None:
    stmt = select(CaseStatus).where(CaseStatus.order_number == order_number)
    return session.execute(stmt).scalars().first()


def get_next_status_by_order_number(
    session: Session, current_order_number: int | None
) -> CaseStatus | None:
    """Active entry with the smallest order_number greater than the current one.

    Statuses without a sequence position have no next status, so None in gives
    None out.
    """
    if current_order_number is None:
        return None
    stmt = (
        select(CaseStatus)
        .where(CaseStatus.is_active.is_(True))
        .where(CaseStatus.order_number.is_not(None))
        .where(CaseStatus.order_number > current_order_number)
        .order_by(CaseStatus.order_number)
        .limit(1)
    )
    return session.execute(stmt).scalars().first()


def load_transition_table(
    session: Session, overrides: Mapping[str, Iterable[str]] | None = None
) -> TransitionTable:
    """Transition table for the current catalog, with `workflow.transitions` overrides."""
    return build_transition_table(list_case_statuses(session, include_inactive=True), overrides)


def get_case_status_or_404(session: Session, status_id: int) -> CaseStatus:
    status = session.get(CaseStatus, status_id)
    if status is None:
        raise NotFoundError("Case status not found")
    return status


def is_case_status_in_use(session: Session, status_id: int) -> bool:
    stmt = select(IndividualProcess.id).where(IndividualProcess.case_status_id == status_id).limit(1)
    return session.execute(stmt).first() is not None


def count_cases_by_status(session: Session) -> dict[int, int]:
    stmt = (
        select(IndividualProcess.case_status_id, func.count(IndividualProcess.id))
        .where(IndividualProcess.case_status_id.is_not(None))
        .group_by(IndividualProcess.case_status_id)
    )
    return {row[0]: row[1] for row in session.execute(stmt).all()}


def _ensure_code_free(session: Session, code: str) -> None:
    if get_case_status_by_code(session, code) is not None:
        raise ConflictError(f'Case status with code "{code}" already exists')


def _ensure_order_number_free(
    session: Session, order_number: int | None, exclude_id: int | None = None
) -> None:
    if order_number is None:
        return
    holder = get_case_status_by_order_number(session, order_number)
    if holder is not None and holder.id != exclude_id:
        raise ConflictError(
            f'Order number {order_number} is already used by case status "{holder.code}"'
        )


def create_case_status(
    session: Session,
    actor: str,
    *,
    name: str,
    code: str,
    sort_order: int,
    name_en: str | None = None,
    description: str | None = None,
    category: str | None = None,
    color: str | None = None,
    order_number: int | None = None,
    fillable_fields: list[str] | None = None,
    allowed_next_codes: list[str] | None = None,
) -> CaseStatus:
    """Create a catalog entry (admin only)."""
    require_admin(session, actor)
    _ensure_code_free(session, code)
    _ensure_order_number_free(session, order_number)
    now = datetime.now(UTC)
    status = CaseStatus(
        name=name,
        name_en=name_en,
        code=code,
        description=description,
        category=category,
        color=color,
        sort_order=sort_order,
        order_number=order_number,
        fillable_fields=fillable_fields,
        allowed_next_codes=allowed_next_codes,
        is_active=True,
        created_at=now,
        updated_at=now,
    )
    session.add(status)
    session.flush()
    log_activity(
        session, actor, "case_status_created", "caseStatus", status.id, {"code": code}
    )
    return status


def update_case_status(session: Session, actor: str, status_id: int, **fields: Any) -> CaseStatus:
    """Patch a catalog entry (admin only). Only keyword arguments passed are applied."""
    require_admin(session, actor)
    unknown = set(fields) - set(_UPDATABLE_FIELDS)
    if unknown:
        raise WorkflowError(f"Unknown case status fields: {sorted(unknown)}")
    nulled = sorted(k for k in _REQUIRED_FIELDS if k in fields and fields[k] is None)
    if nulled:
        raise ValidationFailedError(f"Case status fields cannot be null: {nulled}")
    status = get_case_status_or_404(session, status_id)

    new_code = fields.get("code")
    if new_code is not None and new_code != status.code:
        if is_case_status_in_use(session, status_id):
            raise InUseError("Cannot change code of case status that is in use")
        _ensure_code_free(session, new_code)
    if "order_number" in fields and fields["order_number"] != status.order_number:
        _ensure_order_number_free(session, fields["order_number"], exclude_id=status_id)
    if fields.get("is_active") is False and status.is_active:
        if is_case_status_in_use(session, status_id):
            raise InUseError("Cannot deactivate case status that is in use")

    changes: dict[str, Any] = {}
    for key, value in fields.items():
        if getattr(status, key) != value:
            changes[key] = {"old": getattr(status, key), "new": value}
            setattr(status, key, value)
    status.updated_at = datetime.now(UTC)
    session.flush()
    log_activity(session, actor, "case_status_updated", "caseStatus", status_id, changes or None)
    return status


def remove_case_status(session: Session, actor: str, status_id: int) -> CaseStatus:
    """Soft delete (admin only): refuses while any case references the entry."""
    require_admin(session, actor)
    status = get_case_status_or_404(session, status_id)
    if is_case_status_in_use(session, status_id):
        raise InUseError("Cannot delete case status that is in use. You can deactivate it instead.")
    status.is_active = False
    status.updated_at = datetime.now(UTC)
    session.flush()
    log_activity(session, actor, "case_status_removed", "caseStatus", status_id, {"code": status.code})
    return status


def toggle_case_status_active(
    session: Session, actor: str, status_id: int, is_active: bool
) -> CaseStatus:
    require_admin(session, actor)
    status = get_case_status_or_404(session, status_id)
    if not is_active and is_case_status_in_use(session, status_id):
        raise InUseError("Cannot deactivate case status that is in use")
    status.is_active = is_active
    status.updated_at = datetime.now(UTC)
    session.flush()
    log_activity(
        session,
        actor,
        "case_status_toggled",
        "caseStatus",
        status_id,
        {"is_active": is_active},
    )
    return status


def reorder_case_statuses(
    session: Session, actor: str, updates: Iterable[tuple[int, int]]
) -> dict[str, Any]:
    """Apply (id, sort_order) pairs as independent patches.

    Each patch runs in its own savepoint; a missing id is reported in `failed`
    and the patches before and after it still apply.
    """
    require_admin(session, actor)
    updated: list[int] = []
    failed: list[dict[str, Any]] = []
    for status_id, sort_order in updates:
        try:
            with session.begin_nested():
                status = get_case_status_or_404(session, status_id)
                status.sort_order = sort_order
                status.updated_at = datetime.now(UTC)
                session.flush()
            updated.append(status_id)
        except WorkflowError as e:
            failed.append({"id": status_id, "reason": e.message})
    if failed:
        logger.warning("Reorder left %d case statuses unchanged", len(failed))
    log_activity(
        session,
        actor,
        "case_statuses_reordered",
        "caseStatus",
        "bulk",
        {"updated": len(updated), "failed": len(failed)},
    )
    return {"updated": updated, "failed": failed}
