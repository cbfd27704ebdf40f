"""Individual process status router: history, active status and status changes."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from visaflow import status_history
from visaflow.activity import list_activity
from visaflow.auth import require_api_key
from visaflow.catalog import load_transition_table
from visaflow.config import get_config, get_transition_overrides
from visaflow.db import session_scope
from visaflow.schemas import (
    ActivityResponse,
    CollectiveStatusResponse,
    FillableFieldsResponse,
    FillableFieldsUpdateRequest,
    FilledFieldsRequest,
    StatusAddRequest,
    StatusChangeRequest,
    StatusRecordResponse,
    StatusUpdateRequest,
)
from visaflow.status_summary import calculate_collective_status
from visaflow.transitions import TransitionTable

process_statuses_router = APIRouter(tags=["individual-process-statuses"])


def configured_transition_table(session: Session) -> TransitionTable:
    """Static table, then workflow.transitions from config, then catalog allowed_next_codes."""
    return load_transition_table(session, get_transition_overrides(get_config()))


def _record(row: Any) -> StatusRecordResponse:
    return StatusRecordResponse.model_validate(row)


@process_statuses_router.get(
    "/individual-processes/{case_id}/statuses", response_model=list[StatusRecordResponse]
)
def list_statuses(case_id: int, actor: str = Depends(require_api_key)) -> list[StatusRecordResponse]:
    with session_scope() as session:
        return [_record(r) for r in status_history.list_statuses(session, actor, case_id)]


@process_statuses_router.get(
    "/individual-processes/{case_id}/statuses/active", response_model=StatusRecordResponse | None
)
def get_active_status(
    case_id: int, actor: str = Depends(require_api_key)
) -> StatusRecordResponse | None:
    with session_scope() as session:
        row = status_history.get_active_status(session, actor, case_id)
        return _record(row) if row is not None else None


@process_statuses_router.get(
    "/individual-processes/{case_id}/history", response_model=list[StatusRecordResponse]
)
def get_status_history(
    case_id: int, actor: str = Depends(require_api_key)
) -> list[StatusRecordResponse]:
    """History oldest first with catalog details."""
    with session_scope() as session:
        return [_record(r) for r in status_history.get_status_history(session, actor, case_id)]


@process_statuses_router.post(
    "/individual-processes/{case_id}/statuses",
    response_model=StatusRecordResponse,
    status_code=201,
)
def add_status(
    case_id: int, body: StatusAddRequest, actor: str = Depends(require_api_key)
) -> StatusRecordResponse:
    """Admin override: record a status without checking the transition."""
    with session_scope() as session:
        row = status_history.add_status(session, actor, case_id, **body.model_dump())
        return _record(row)


@process_statuses_router.patch(
    "/individual-processes/{case_id}/status", response_model=StatusRecordResponse
)
def change_status(
    case_id: int, body: StatusChangeRequest, actor: str = Depends(require_api_key)
) -> StatusRecordResponse:
    """Move a case to a new status; 422 if the transition is not allowed."""
    with session_scope() as session:
        row = status_history.change_status(
            session,
            actor,
            case_id,
            body.code,
            notes=body.notes,
            date=body.date,
            filled_fields=body.filled_fields,
            table=configured_transition_table(session),
        )
        return _record(row)


@process_statuses_router.patch("/statuses/{status_id}", response_model=StatusRecordResponse)
def update_status(
    status_id: int, body: StatusUpdateRequest, actor: str = Depends(require_api_key)
) -> StatusRecordResponse:
    with session_scope() as session:
        row = status_history.update_status(
            session, actor, status_id, **body.model_dump(exclude_unset=True)
        )
        return _record(row)


@process_statuses_router.delete("/statuses/{status_id}")
def delete_status(status_id: int, actor: str = Depends(require_api_key)) -> dict[str, Any]:
    """Delete a superseded history row; 409 for the active one."""
    with session_scope() as session:
        return status_history.delete_status(session, actor, status_id)


@process_statuses_router.get(
    "/statuses/{status_id}/fillable-fields", response_model=FillableFieldsResponse
)
def get_fillable_fields(
    status_id: int, actor: str = Depends(require_api_key)
) -> FillableFieldsResponse:
    with session_scope() as session:
        return FillableFieldsResponse.model_validate(
            status_history.get_fillable_fields(session, actor, status_id)
        )


@process_statuses_router.patch(
    "/statuses/{status_id}/fillable-fields", response_model=StatusRecordResponse
)
def update_fillable_fields(
    status_id: int, body: FillableFieldsUpdateRequest, actor: str = Depends(require_api_key)
) -> StatusRecordResponse:
    """Set which case fields this history row captures (admin only)."""
    with session_scope() as session:
        row = status_history.update_fillable_fields(
            session, actor, status_id, body.fillable_fields
        )
        return _record(row)


@process_statuses_router.put("/statuses/{status_id}/fillable-fields")
def save_filled_fields(
    status_id: int, body: FilledFieldsRequest, actor: str = Depends(require_api_key)
) -> dict[str, Any]:
    with session_scope() as session:
        return status_history.save_filled_fields(session, actor, status_id, body.data)


@process_statuses_router.get(
    "/collective-processes/{collective_process_id}/status-summary",
    response_model=CollectiveStatusResponse,
)
def collective_status_summary(
    collective_process_id: int,
    locale: str = Query("pt", pattern="^(pt|en)$"),
    actor: str = Depends(require_api_key),
) -> CollectiveStatusResponse:
    """Status of a collective process computed from its cases."""
    with session_scope() as session:
        collective = status_history.get_readable_collective(session, actor, collective_process_id)
        summary = calculate_collective_status(collective.individual_processes, locale)
        return CollectiveStatusResponse(collective_process_id=collective_process_id, **summary)


@process_statuses_router.get(
    "/individual-processes/{case_id}/activity", response_model=list[ActivityResponse]
)
def case_activity(
    case_id: int,
    limit: int = Query(100, ge=1, le=1000),
    actor: str = Depends(require_api_key),
) -> list[ActivityResponse]:
    """Activity recorded against a case (bulk changes included)."""
    with session_scope() as session:
        status_history.get_readable_case(session, actor, case_id)
        rows = list_activity(
            session, entity_type="individualProcesses", entity_id=case_id, limit=limit
        )
        return [ActivityResponse.model_validate(r) for r in rows]
