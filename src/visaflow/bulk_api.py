"""Bulk operations router: /bulk endpoints (admin only)."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from visaflow import bulk
from visaflow.auth import require_api_key
from visaflow.catalog import get_case_status_by_code
from visaflow.config import get_config, get_default_status_code
from visaflow.db import session_scope
from visaflow.errors import NotFoundError
from visaflow.process_statuses_api import configured_transition_table
from visaflow.schemas import (
    BulkCreateProcessesRequest,
    BulkImportPeopleRequest,
    BulkResult,
    BulkUpdateStatusRequest,
)

bulk_router = APIRouter(prefix="/bulk", tags=["bulk"])


@bulk_router.post("/people", response_model=BulkResult)
def bulk_import_people(
    body: BulkImportPeopleRequest, actor: str = Depends(require_api_key)
) -> BulkResult:
    with session_scope() as session:
        result = bulk.bulk_import_people(session, actor, [p.model_dump() for p in body.people])
        return BulkResult.model_validate(result)


@bulk_router.post("/individual-processes", response_model=BulkResult)
def bulk_create_individual_processes(
    body: BulkCreateProcessesRequest, actor: str = Depends(require_api_key)
) -> BulkResult:
    with session_scope() as session:
        case_status_id = body.case_status_id
        if case_status_id is None:
            code = get_default_status_code(get_config())
            default = get_case_status_by_code(session, code)
            if default is None:
                raise NotFoundError(f'Default case status "{code}" not found')
            case_status_id = default.id
        result = bulk.bulk_create_individual_processes(
            session,
            actor,
            body.collective_process_id,
            body.person_ids,
            case_status_id,
            deadline_date=body.deadline_date,
        )
        return BulkResult.model_validate(result)


@bulk_router.post("/individual-processes/status", response_model=BulkResult)
def bulk_update_status(
    body: BulkUpdateStatusRequest, actor: str = Depends(require_api_key)
) -> BulkResult:
    """Per-case transition check; failures are reported, not raised."""
    with session_scope() as session:
        result = bulk.bulk_update_status(
            session,
            actor,
            body.individual_process_ids,
            body.code,
            reason=body.reason,
            table=configured_transition_table(session),
        )
        return BulkResult.model_validate(result)
