from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel

from siteproc.app.db.models.core_types import DeliveryCondition, RequestStatus


class DeliveryItemRead(BaseModel):
    id: int
    purchase_order_item_id: int
    quantity_delivered: Decimal
    condition: DeliveryCondition
    notes: str | None = None

    class Config:
        from_attributes = True


class StatusChangeRead(BaseModel):
    request_id: int
    old_status: RequestStatus
    new_status: RequestStatus

    class Config:
        from_attributes = True


class DeliveryRead(BaseModel):
    id: int
    purchase_order_id: int
    received_by: int
    delivered_date: datetime
    notes: str | None = None
    items: list[DeliveryItemRead] = []
    status_changes: list[StatusChangeRead] = []
    purchase_order_closed: bool | None = None
