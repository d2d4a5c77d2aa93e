from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel

from siteproc.app.db.models.core_types import POStatus


class PurchaseOrderItemRead(BaseModel):
    id: int
    request_id: int
    material_display_name: str
    ordered_qty: Decimal
    unit: str
    unit_price: Decimal
    total_price: Decimal
    total_delivered: Decimal
    fully_delivered: bool


class PurchaseOrderRead(BaseModel):
    id: int
    po_number: str
    project_id: int
    site_id: int | None = None
    created_by: int
    status: POStatus
    vendor_name: str | None = None
    notes: str | None = None
    created_at: datetime
    total_value: Decimal
    items: list[PurchaseOrderItemRead] = []
