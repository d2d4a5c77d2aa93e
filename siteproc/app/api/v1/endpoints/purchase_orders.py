from __future__ import annotations

from decimal import Decimal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from siteproc.app.api.deps import get_actor, get_db
from siteproc.app.schemas.deliveries import DeliveryItemRead, DeliveryRead
from siteproc.app.schemas.purchase_orders import PurchaseOrderItemRead, PurchaseOrderRead
from siteproc.services.actor import Actor
from siteproc.services.deliveries import list_deliveries_for_order
from siteproc.services.procurement import (
    PurchaseOrderInput,
    PurchaseOrderItemInput,
    create_purchase_order,
    get_purchase_order,
    list_project_purchase_orders,
    list_purchase_order_items,
)

router = APIRouter(prefix="/purchase-orders")


class POItemCreate(BaseModel):
    request_id: int
    material_display_name: str = Field(min_length=1, max_length=255)
    ordered_qty: Decimal = Field(gt=0)
    unit: str = Field(min_length=1, max_length=20)
    unit_price: Decimal = Field(ge=0)


class POCreate(BaseModel):
    project_id: int
    site_id: int | None = None
    vendor_name: str | None = Field(default=None, max_length=255)
    notes: str | None = None
    items: list[POItemCreate] = Field(default_factory=list)


def _po_read(db: Session, po_id: int) -> PurchaseOrderRead:
    po = get_purchase_order(db, po_id)
    items = [
        PurchaseOrderItemRead(
            id=item.id,
            request_id=item.request_id,
            material_display_name=item.material_display_name,
            ordered_qty=item.ordered_qty,
            unit=item.unit,
            unit_price=item.unit_price,
            total_price=item.total_price,
            total_delivered=delivered,
            fully_delivered=delivered >= item.ordered_qty,
        )
        for item, delivered in list_purchase_order_items(db, po_id)
    ]
    return PurchaseOrderRead(
        id=po.id,
        po_number=po.po_number,
        project_id=po.project_id,
        site_id=po.site_id,
        created_by=po.created_by,
        status=po.status,
        vendor_name=po.vendor_name,
        notes=po.notes,
        created_at=po.created_at,
        total_value=sum((i.total_price for i in items), Decimal("0")),
        items=items,
    )


@router.get("", response_model=list[PurchaseOrderRead])
def list_pos(project_id: int, db: Session = Depends(get_db)):
    return [_po_read(db, po.id) for po in list_project_purchase_orders(db, project_id)]


@router.get("/{po_id}", response_model=PurchaseOrderRead)
def get_po(po_id: int, db: Session = Depends(get_db)):
    return _po_read(db, po_id)


@router.post("", status_code=201, response_model=PurchaseOrderRead)
def create_po(payload: POCreate, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    po = create_purchase_order(
        db,
        actor=actor,
        payload=PurchaseOrderInput(
            project_id=payload.project_id,
            site_id=payload.site_id,
            vendor_name=payload.vendor_name,
            notes=payload.notes,
            items=[
                PurchaseOrderItemInput(
                    request_id=ln.request_id,
                    material_display_name=ln.material_display_name,
                    ordered_qty=ln.ordered_qty,
                    unit=ln.unit,
                    unit_price=ln.unit_price,
                )
                for ln in payload.items
            ],
        ),
    )
    return _po_read(db, po.id)


@router.get("/{po_id}/deliveries", response_model=list[DeliveryRead])
def list_po_deliveries(po_id: int, db: Session = Depends(get_db)):
    return [
        DeliveryRead(
            id=d.id,
            purchase_order_id=d.purchase_order_id,
            received_by=d.received_by,
            delivered_date=d.delivered_date,
            notes=d.notes,
            items=[DeliveryItemRead.model_validate(i) for i in items],
        )
        for d, items in list_deliveries_for_order(db, po_id)
    ]
