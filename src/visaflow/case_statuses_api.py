"""Case status catalog router: /case-statuses endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query

from visaflow import catalog
from visaflow.auth import require_api_key
from visaflow.db import session_scope
from visaflow.errors import NotFoundError
from visaflow.schemas import (
    CaseStatusCreateRequest,
    CaseStatusReorderRequest,
    CaseStatusResponse,
    CaseStatusToggleRequest,
    CaseStatusUpdateRequest,
    ReorderResponse,
)

case_statuses_router = APIRouter(tags=["case-statuses"])


@case_statuses_router.get("/case-statuses", response_model=list[CaseStatusResponse])
def list_case_statuses(
    include_inactive: bool = Query(False),
    category: str | None = Query(None),
    _actor: str = Depends(require_api_key),
) -> list[CaseStatusResponse]:
    """Catalog ordered by sort_order; inactive entries only when asked for."""
    with session_scope() as session:
        if category is not None:
            rows = catalog.get_case_statuses_by_category(session, category)
            if not include_inactive:
                rows = [r for r in rows if r.is_active]
        else:
            rows = catalog.list_case_statuses(session, include_inactive=include_inactive)
        return [CaseStatusResponse.model_validate(r) for r in rows]


@case_statuses_router.get("/case-statuses/by-code/{code}", response_model=CaseStatusResponse)
def get_case_status_by_code(code: str, _actor: str = Depends(require_api_key)) -> CaseStatusResponse:
    with session_scope() as session:
        status = catalog.get_case_status_by_code(session, code)
        if status is None:
            raise NotFoundError(f'Case status "{code}" not found')
        return CaseStatusResponse.model_validate(status)


@case_statuses_router.get(
    "/case-statuses/by-order/{order_number}", response_model=CaseStatusResponse
)
def get_case_status_by_order_number(
    order_number: int, _actor: str = Depends(require_api_key)
) -> CaseStatusResponse:
    with session_scope() as session:
        status = catalog.get_case_status_by_order_number(session, order_number)
        if status is None:
            raise NotFoundError(f"No case status with order number {order_number}")
        return CaseStatusResponse.model_validate(status)


@case_statuses_router.get(
    "/case-statuses/next/{order_number}", response_model=CaseStatusResponse | None
)
def get_next_case_status(
    order_number: int, _actor: str = Depends(require_api_key)
) -> CaseStatusResponse | None:
    """Next active status in the sequence after order_number, or null at the end."""
    with session_scope() as session:
        status = catalog.get_next_status_by_order_number(session, order_number)
        return CaseStatusResponse.model_validate(status) if status is not None else None


@case_statuses_router.get("/case-statuses/usage")
def case_status_usage(_actor: str = Depends(require_api_key)) -> dict[str, Any]:
    """Number of cases per catalog entry id."""
    with session_scope() as session:
        counts = catalog.count_cases_by_status(session)
        return {"counts": {str(k): v for k, v in counts.items()}}


@case_statuses_router.get("/case-statuses/{status_id}", response_model=CaseStatusResponse)
def get_case_status(status_id: int, _actor: str = Depends(require_api_key)) -> CaseStatusResponse:
    with session_scope() as session:
        return CaseStatusResponse.model_validate(catalog.get_case_status_or_404(session, status_id))


@case_statuses_router.post("/case-statuses", response_model=CaseStatusResponse, status_code=201)
def create_case_status(
    body: CaseStatusCreateRequest, actor: str = Depends(require_api_key)
) -> CaseStatusResponse:
    with session_scope() as session:
        status = catalog.create_case_status(session, actor, **body.model_dump())
        return CaseStatusResponse.model_validate(status)


@case_statuses_router.patch("/case-statuses/{status_id}", response_model=CaseStatusResponse)
def update_case_status(
    status_id: int, body: CaseStatusUpdateRequest, actor: str = Depends(require_api_key)
) -> CaseStatusResponse:
    """Partial update; fields left out of the body are not touched."""
    with session_scope() as session:
        status = catalog.update_case_status(
            session, actor, status_id, **body.model_dump(exclude_unset=True)
        )
        return CaseStatusResponse.model_validate(status)


@case_statuses_router.delete("/case-statuses/{status_id}", response_model=CaseStatusResponse)
def remove_case_status(status_id: int, actor: str = Depends(require_api_key)) -> CaseStatusResponse:
    """Soft delete; refused while any case uses the entry."""
    with session_scope() as session:
        return CaseStatusResponse.model_validate(
            catalog.remove_case_status(session, actor, status_id)
        )


@case_statuses_router.post("/case-statuses/{status_id}/toggle", response_model=CaseStatusResponse)
def toggle_case_status(
    status_id: int, body: CaseStatusToggleRequest, actor: str = Depends(require_api_key)
) -> CaseStatusResponse:
    with session_scope() as session:
        status = catalog.toggle_case_status_active(session, actor, status_id, body.is_active)
        return CaseStatusResponse.model_validate(status)


@case_statuses_router.post("/case-statuses/reorder", response_model=ReorderResponse)
def reorder_case_statuses(
    body: CaseStatusReorderRequest, actor: str = Depends(require_api_key)
) -> ReorderResponse:
    with session_scope() as session:
        result = catalog.reorder_case_statuses(
            session, actor, [(u.id, u.sort_order) for u in body.updates]
        )
        return ReorderResponse.model_validate(result)
