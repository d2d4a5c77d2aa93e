from decimal import Decimal

import pytest

from siteproc.app.db.models.core_types import RequestStatus
from siteproc.app.db.models.models_v1 import PurchaseOrderItem, Request
from siteproc.services.errors import InvalidStateError, NotFoundError
from siteproc.services.procurement import PurchaseOrderInput, PurchaseOrderItemInput, create_purchase_order
from siteproc.services.reconciliation import (
    QuantityLedger,
    derive_request_status,
    is_order_complete,
    load_ledger,
    reconcile,
)
from siteproc.services.state_machine import apply_request_transition

D = Decimal


@pytest.mark.parametrize(
    "requested, ordered, delivered, expected",
    [
        ("100", "0", "0", None),
        ("100", "100", "0", RequestStatus.ordered),
        ("100", "100", "60", RequestStatus.partially_delivered),
        ("100", "100", "100", RequestStatus.delivered),
        ("100", "100", "120", RequestStatus.delivered),
        ("100", "80", "80", RequestStatus.partially_delivered),
        ("100", "80", "50", RequestStatus.partially_delivered),
        ("100", "150", "150", RequestStatus.delivered),
        ("0.5", "0.5", "0.499", RequestStatus.partially_delivered),
    ],
)
def test_derive_request_status_rules(requested, ordered, delivered, expected):
    assert derive_request_status(D(requested), D(ordered), D(delivered)) == expected


def test_derive_request_status_boundary_all_equal_is_delivered():
    """
    GIVEN delivered == ordered == requested
    THEN DELIVERED (et non la branche sous-commande)
    """
    assert derive_request_status(D("42.5"), D("42.5"), D("42.5")) == RequestStatus.delivered


def test_derive_request_status_accepts_none_and_numbers():
    assert derive_request_status(None, None, None) is None
    assert derive_request_status(10, 10, 0) == RequestStatus.ordered


def test_is_order_complete():
    assert is_order_complete([(D("10"), D("10")), (D("5"), D("6"))])
    assert not is_order_complete([(D("10"), D("10")), (D("5"), D("4.999"))])
    # aucune ligne : vrai au sens logique, close_if_complete filtre ce cas
    assert is_order_complete([])


def test_reconcile_unknown_request_raises(db_session):
    with pytest.raises(NotFoundError):
        reconcile(db_session, 999)


def test_reconcile_without_order_leaves_status(db_session, approved_request):
    """
    GIVEN une demande APPROVED sans aucune ligne de PO
    THEN reconcile ne change rien (pas de ORDERED fantôme)
    """
    assert reconcile(db_session, approved_request.id) is None
    db_session.refresh(approved_request)
    assert approved_request.status == RequestStatus.approved


def test_reconcile_is_idempotent(db_session, approved_request, owner_actor, project):
    """
    GIVEN une demande ORDERED (PO créé)
    WHEN reconcile est appelé deux fois sans changement de ledger
    THEN None les deux fois, et la colonne version ne bouge pas
    """
    # ---------- ARRANGE ----------
    create_purchase_order(
        db_session,
        actor=owner_actor,
        payload=PurchaseOrderInput(
            project_id=project.id,
            items=[PurchaseOrderItemInput(approved_request.id, "Cement", D("100"), "bag", D("9.50"))],
        ),
    )
    request = db_session.get(Request, approved_request.id)
    assert request.status == RequestStatus.ordered
    version_before = request.version

    # ---------- ACT ----------
    first = reconcile(db_session, request.id)
    db_session.commit()
    second = reconcile(db_session, request.id)
    db_session.commit()

    # ---------- ASSERT ----------
    assert first is None
    assert second is None
    db_session.refresh(request)
    assert request.version == version_before


def test_reconcile_picks_up_ledger_change(db_session, approved_request, owner_actor, project):
    po = create_purchase_order(
        db_session,
        actor=owner_actor,
        payload=PurchaseOrderInput(
            project_id=project.id,
            items=[PurchaseOrderItemInput(approved_request.id, "Cement", D("100"), "bag", D("1"))],
        ),
    )
    ledger = load_ledger(db_session, approved_request.id)
    assert ledger == QuantityLedger(requested=D("100"), ordered=D("100"), delivered=D("0"))

    # une seconde ligne (hors service) ne change pas la décision : toujours ORDERED
    db_session.add(
        PurchaseOrderItem(
            purchase_order_id=po.id,
            request_id=approved_request.id,
            material_display_name="Cement extra",
            ordered_qty=D("10"),
            unit="bag",
            unit_price=D("1"),
            total_price=D("10"),
        )
    )
    assert reconcile(db_session, approved_request.id) is None
    assert load_ledger(db_session, approved_request.id).ordered == D("110")


def test_guard_rejects_delivered_without_quantities(db_session, approved_request):
    """
    GIVEN une demande ORDERED
    WHEN on force DELIVERED avec un ledger insuffisant
    THEN InvalidStateError (le guard protège la transition)
    """
    request = db_session.get(Request, approved_request.id)
    request.status = RequestStatus.ordered

    with pytest.raises(InvalidStateError):
        apply_request_transition(
            request,
            RequestStatus.delivered,
            ledger=QuantityLedger(requested=D("100"), ordered=D("100"), delivered=D("60")),
        )
    with pytest.raises(InvalidStateError):
        apply_request_transition(request, RequestStatus.delivered)


def test_transition_out_of_delivered_is_illegal(db_session, approved_request):
    request = db_session.get(Request, approved_request.id)
    request.status = RequestStatus.delivered

    with pytest.raises(InvalidStateError):
        apply_request_transition(request, RequestStatus.pending)
