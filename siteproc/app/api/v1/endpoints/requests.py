from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from siteproc.app.api.deps import get_actor, get_db
from siteproc.app.db.models.core_types import MaterialStatus, RateEstimateType, ResourceType
from siteproc.app.schemas.requests import (
    AuditEntryRead,
    DuplicateWarningRead,
    LedgerRead,
    MaterialRead,
    RequestRead,
)
from siteproc.services.actor import Actor
from siteproc.services.approval import correct_material, list_request_materials, update_material_status
from siteproc.services.duplicates import find_duplicates
from siteproc.services.reconciliation import load_ledger
from siteproc.services.requests import (
    MaterialItemInput,
    RequestInput,
    create_request,
    get_request,
    list_request_history,
)

router = APIRouter(prefix="/requests")


class MaterialItemCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    quantity: Decimal = Field(gt=0)
    measurement_unit: str | None = Field(default=None, max_length=20)
    rate_estimate: Decimal | None = Field(default=None, ge=0)
    rate_estimate_type: RateEstimateType = RateEstimateType.engineer_estimate
    resource_type: ResourceType = ResourceType.material


class RequestCreate(BaseModel):
    project_id: int
    site_id: int
    title: str = Field(min_length=1, max_length=500)
    planned_start_date: datetime
    planned_end_date: datetime
    emergency_flag: bool = False
    additional_details: str | None = None
    duplicate_explanation: str | None = None
    items: list[MaterialItemCreate] = Field(default_factory=list)


class DuplicateCheck(BaseModel):
    site_id: int
    material_names: list[str] = Field(default_factory=list)
    planned_start_date: datetime | None = None
    planned_end_date: datetime | None = None


class MaterialStatusUpdate(BaseModel):
    status: MaterialStatus
    comment: str | None = None


class MaterialCorrection(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    quantity: Decimal | None = Field(default=None, gt=0)
    measurement_unit: str | None = Field(default=None, max_length=20)
    rate_estimate: Decimal | None = Field(default=None, ge=0)
    comment: str | None = None


def _request_read(db: Session, request_id: int) -> RequestRead:
    request = get_request(db, request_id)
    ledger = load_ledger(db, request_id)
    out = RequestRead.model_validate(request)
    out.materials = [MaterialRead.model_validate(m) for m in list_request_materials(db, request_id)]
    out.ledger = LedgerRead(requested=ledger.requested, ordered=ledger.ordered, delivered=ledger.delivered)
    return out


@router.post("", status_code=201, response_model=RequestRead)
def create(payload: RequestCreate, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    request = create_request(
        db,
        actor=actor,
        payload=RequestInput(
            project_id=payload.project_id,
            site_id=payload.site_id,
            title=payload.title,
            planned_start_date=payload.planned_start_date,
            planned_end_date=payload.planned_end_date,
            emergency_flag=payload.emergency_flag,
            additional_details=payload.additional_details,
            duplicate_explanation=payload.duplicate_explanation,
            items=[
                MaterialItemInput(
                    name=i.name,
                    quantity=i.quantity,
                    measurement_unit=i.measurement_unit,
                    rate_estimate=i.rate_estimate,
                    rate_estimate_type=i.rate_estimate_type,
                    resource_type=i.resource_type,
                )
                for i in payload.items
            ],
        ),
    )
    return _request_read(db, request.id)


@router.post("/duplicates/check", response_model=list[DuplicateWarningRead])
def check_duplicates(payload: DuplicateCheck, db: Session = Depends(get_db)):
    return find_duplicates(
        db,
        payload.site_id,
        payload.material_names,
        payload.planned_start_date,
        payload.planned_end_date,
    )


@router.get("/{request_id}", response_model=RequestRead)
def get_one(request_id: int, db: Session = Depends(get_db)):
    return _request_read(db, request_id)


@router.get("/{request_id}/history", response_model=list[AuditEntryRead])
def history(request_id: int, db: Session = Depends(get_db)):
    return list_request_history(db, request_id)


@router.patch("/{request_id}/materials/{material_id}/status", response_model=MaterialRead)
def set_material_status(
    request_id: int,
    material_id: int,
    payload: MaterialStatusUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return update_material_status(
        db,
        actor=actor,
        request_id=request_id,
        material_id=material_id,
        status=payload.status,
        comment=payload.comment,
    )


@router.put("/{request_id}/materials/{material_id}", response_model=MaterialRead)
def revise_material(
    request_id: int,
    material_id: int,
    payload: MaterialCorrection,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return correct_material(
        db,
        actor=actor,
        request_id=request_id,
        material_id=material_id,
        name=payload.name,
        quantity=payload.quantity,
        measurement_unit=payload.measurement_unit,
        rate_estimate=payload.rate_estimate,
        comment=payload.comment,
    )
