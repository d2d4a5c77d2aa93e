from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel

from siteproc.app.db.models.core_types import (
    MaterialStatus,
    Priority,
    RateEstimateType,
    RequestStatus,
    ResourceType,
)


class MaterialRead(BaseModel):
    id: int
    name: str
    quantity: Decimal
    measurement_unit: str | None = None
    rate_estimate: Decimal | None = None
    rate_estimate_type: RateEstimateType
    resource_type: ResourceType
    status: MaterialStatus
    comment: str | None = None
    revision_number: int

    class Config:
        from_attributes = True


class LedgerRead(BaseModel):
    requested: Decimal
    ordered: Decimal
    delivered: Decimal  # READ ONLY : recalculé depuis les lignes PO / livraisons


class RequestRead(BaseModel):
    id: int
    project_id: int
    site_id: int
    created_by: int
    title: str
    planned_start_date: datetime
    planned_end_date: datetime
    priority: Priority
    emergency_flag: bool
    status: RequestStatus
    additional_details: str | None = None
    boq_reference_code: str
    is_duplicate_flagged: bool
    duplicate_explanation: str | None = None
    duplicate_of_request_id: int | None = None
    created_at: datetime
    materials: list[MaterialRead] = []
    ledger: LedgerRead | None = None

    class Config:
        from_attributes = True


class DuplicateWarningRead(BaseModel):
    request_id: int
    request_title: str
    boq_reference_code: str | None = None
    planned_start_date: datetime | None = None
    planned_end_date: datetime | None = None
    overlapping_materials: list[str]
    timeline_overlap_percentage: float
    status: str
    site_name: str | None = None

    class Config:
        from_attributes = True


class AuditEntryRead(BaseModel):
    id: int
    actor_id: int | None = None
    action: str
    meta: str | None = None
    created_at: datetime

    class Config:
        from_attributes = True
