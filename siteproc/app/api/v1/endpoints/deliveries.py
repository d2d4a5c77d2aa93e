from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from siteproc.app.api.deps import get_actor, get_db
from siteproc.app.db.models.core_types import DeliveryCondition
from siteproc.app.schemas.deliveries import DeliveryItemRead, DeliveryRead, StatusChangeRead
from siteproc.services.actor import Actor
from siteproc.services.deliveries import DeliveryInput, DeliveryItemInput, record_delivery

router = APIRouter(prefix="/deliveries")


class DeliveryItemCreate(BaseModel):
    purchase_order_item_id: int
    quantity_delivered: Decimal = Field(gt=0)
    condition: DeliveryCondition = DeliveryCondition.good
    notes: str | None = None


class DeliveryCreate(BaseModel):
    purchase_order_id: int
    delivered_date: datetime | None = None
    notes: str | None = None
    items: list[DeliveryItemCreate] = Field(default_factory=list)


@router.post("", status_code=201, response_model=DeliveryRead)
def create_delivery(payload: DeliveryCreate, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    result = record_delivery(
        db,
        actor=actor,
        payload=DeliveryInput(
            purchase_order_id=payload.purchase_order_id,
            delivered_date=payload.delivered_date,
            notes=payload.notes,
            items=[
                DeliveryItemInput(
                    purchase_order_item_id=ln.purchase_order_item_id,
                    quantity_delivered=ln.quantity_delivered,
                    condition=ln.condition,
                    notes=ln.notes,
                )
                for ln in payload.items
            ],
        ),
    )
    delivery = result.delivery
    return DeliveryRead(
        id=delivery.id,
        purchase_order_id=delivery.purchase_order_id,
        received_by=delivery.received_by,
        delivered_date=delivery.delivered_date,
        notes=delivery.notes,
        items=[DeliveryItemRead.model_validate(i) for i in result.items],
        status_changes=[StatusChangeRead.model_validate(c) for c in result.status_changes],
        purchase_order_closed=result.purchase_order_closed,
    )
