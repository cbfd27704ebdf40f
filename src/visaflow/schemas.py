"""Pydantic v2 schemas for API and validation."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

_DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"
_COLOR_PATTERN = r"^#[0-9A-Fa-f]{6}$"
CASE_STATUS_CATEGORIES = frozenset(
    {"preparation", "in_progress", "review", "approved", "completed", "cancelled"}
)


def _check_fillable(v: list[str] | None) -> list[str] | None:
    from visaflow.status_history import FILLABLE_CASE_FIELDS

    if v is None:
        return v
    unknown = sorted(set(v) - FILLABLE_CASE_FIELDS)
    if unknown:
        raise ValueError(f"unknown fillable fields: {unknown}")
    return v


def _check_category(v: str | None) -> str | None:
    if v is not None and v not in CASE_STATUS_CATEGORIES:
        raise ValueError(f"category must be one of {sorted(CASE_STATUS_CATEGORIES)}")
    return v


# --- Case status catalog ---
class CaseStatusCreateRequest(BaseModel):
    """Body for POST /case-statuses."""

    name: str = Field(..., min_length=1, max_length=255)
    code: str = Field(..., min_length=1, max_length=64, pattern=r"^[a-z0-9_]+$")
    sort_order: int
    name_en: str | None = None
    description: str | None = None
    category: str | None = None
    color: str | None = Field(None, pattern=_COLOR_PATTERN)
    order_number: int | None = Field(None, ge=1)
    fillable_fields: list[str] | None = None
    allowed_next_codes: list[str] | None = None

    @field_validator("category")
    @classmethod
    def category_enum(cls, v: str | None) -> str | None:
        return _check_category(v)

    @field_validator("fillable_fields")
    @classmethod
    def fillable_known(cls, v: list[str] | None) -> list[str] | None:
        return _check_fillable(v)


class CaseStatusUpdateRequest(BaseModel):
    """Body for PATCH /case-statuses/{id}. Only provided fields are updated."""

    name: str | None = Field(None, min_length=1, max_length=255)
    code: str | None = Field(None, min_length=1, max_length=64, pattern=r"^[a-z0-9_]+$")
    sort_order: int | None = None
    name_en: str | None = None
    description: str | None = None
    category: str | None = None
    color: str | None = Field(None, pattern=_COLOR_PATTERN)
    order_number: int | None = Field(None, ge=1)
    fillable_fields: list[str] | None = None
    allowed_next_codes: list[str] | None = None
    is_active: bool | None = None

    @field_validator("category")
    @classmethod
    def category_enum(cls, v: str | None) -> str | None:
        return _check_category(v)

    @field_validator("fillable_fields")
    @classmethod
    def fillable_known(cls, v: list[str] | None) -> list[str] | None:
        return _check_fillable(v)

    @model_validator(mode="after")
    def required_not_cleared(self) -> CaseStatusUpdateRequest:
        nulled = sorted(
            f for f in ("name", "code", "sort_order", "is_active")
            if f in self.model_fields_set and getattr(self, f) is None
        )
        if nulled:
            raise ValueError(f"fields cannot be null: {nulled}")
        return self


class CaseStatusToggleRequest(BaseModel):
    is_active: bool


class ReorderItem(BaseModel):
    id: int
    sort_order: int


class CaseStatusReorderRequest(BaseModel):
    """Body for POST /case-statuses/reorder."""

    updates: list[ReorderItem] = Field(..., min_length=1)


class CaseStatusResponse(BaseModel):
    id: int
    code: str
    name: str
    name_en: str | None
    description: str | None
    category: str | None
    color: str | None
    sort_order: int
    order_number: int | None
    fillable_fields: list[str] | None
    allowed_next_codes: list[str] | None
    is_active: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class CaseStatusSummary(BaseModel):
    id: int
    code: str
    name: str
    name_en: str | None = None
    category: str | None = None
    color: str | None = None
    order_number: int | None = None
    sort_order: int
    fillable_fields: list[str] | None = None
    is_active: bool

    model_config = {"from_attributes": True}


class ReorderFailure(BaseModel):
    id: int
    reason: str


class ReorderResponse(BaseModel):
    updated: list[int]
    failed: list[ReorderFailure]


# --- Status history ---
class UserSummary(BaseModel):
    full_name: str
    email: str

    model_config = {"from_attributes": True}


class StatusRecordResponse(BaseModel):
    id: int
    individual_process_id: int
    case_status_id: int | None
    status_name: str
    date: str | None
    is_active: bool
    notes: str | None
    fillable_fields: list[str] | None
    filled_fields_data: dict[str, Any] | None
    changed_by: str
    changed_at: datetime
    created_at: datetime
    changed_by_user: UserSummary | None = None
    case_status: CaseStatusSummary | None = None

    model_config = {"from_attributes": True}


class StatusAddRequest(BaseModel):
    """Body for POST /individual-processes/{id}/statuses. Identify the status by id or name/code."""

    case_status_id: int | None = None
    status_name: str | None = None
    notes: str | None = None
    is_active: bool = True
    date: str | None = Field(None, pattern=_DATE_PATTERN)
    filled_fields: dict[str, Any] | None = None

    @model_validator(mode="after")
    def status_given(self) -> StatusAddRequest:
        if self.case_status_id is None and not self.status_name:
            raise ValueError("provide case_status_id or status_name")
        return self


class StatusUpdateRequest(BaseModel):
    """Body for PATCH /statuses/{id}. Only provided fields are updated."""

    case_status_id: int | None = None
    status_name: str | None = None
    notes: str | None = None
    is_active: bool | None = None
    date: str | None = Field(None, pattern=_DATE_PATTERN)


class StatusChangeRequest(BaseModel):
    """Body for PATCH /individual-processes/{id}/status."""

    code: str
    notes: str | None = None
    date: str | None = Field(None, pattern=_DATE_PATTERN)
    filled_fields: dict[str, Any] | None = None


class FillableFieldsResponse(BaseModel):
    fillable_fields: list[str]
    filled_fields_data: dict[str, Any]


class FilledFieldsRequest(BaseModel):
    data: dict[str, Any]


class FillableFieldsUpdateRequest(BaseModel):
    """Body for PATCH /statuses/{id}/fillable-fields. null falls back to the catalog entry."""

    fillable_fields: list[str] | None

    @field_validator("fillable_fields")
    @classmethod
    def fillable_known(cls, v: list[str] | None) -> list[str] | None:
        return _check_fillable(v)


# --- Bulk ---
class PersonImportRow(BaseModel):
    full_name: str = Field(..., min_length=1)
    email: str | None = None
    cpf: str | None = None
    birth_date: str | None = Field(None, pattern=_DATE_PATTERN)
    nationality: str | None = None
    phone_number: str | None = None
    marital_status: str | None = None


class BulkImportPeopleRequest(BaseModel):
    people: list[PersonImportRow]


class BulkCreateProcessesRequest(BaseModel):
    collective_process_id: int
    person_ids: list[int]
    # Omitted: workflow.default_status_code from config.
    case_status_id: int | None = None
    deadline_date: str | None = Field(None, pattern=_DATE_PATTERN)


class BulkUpdateStatusRequest(BaseModel):
    individual_process_ids: list[int]
    code: str
    reason: str | None = None


class BulkResult(BaseModel):
    """Per-item outcome of a bulk operation; failure entries keep their item key."""

    successful: list[int]
    failed: list[dict[str, Any]]
    total_processed: int


# --- Collective status ---
class StatusBreakdownItem(BaseModel):
    case_status_id: int
    case_status_name: str
    case_status_name_en: str | None
    color: str | None
    count: int


class CollectiveStatusResponse(BaseModel):
    collective_process_id: int
    display_text: str
    display_text_pt: str
    display_text_en: str
    breakdown: list[StatusBreakdownItem]
    total_processes: int
    has_multiple_statuses: bool
    color: str | None


class ActivityResponse(BaseModel):
    id: int
    user_id: str
    action: str
    entity_type: str
    entity_id: str
    details_json: dict[str, Any] | None
    correlation_id: str | None
    created_at: datetime

    model_config = {"from_attributes": True}
