from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from siteproc.app.api.deps import get_db
from siteproc.app.main import app
from siteproc.tests.factories import day


@pytest.fixture
def client(db_session):
    def _override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def engineer_headers(engineer):
    return {"X-Actor-Id": str(engineer.id), "X-Actor-Role": "engineer"}


@pytest.fixture
def owner_headers(owner):
    return {"X-Actor-Id": str(owner.id), "X-Actor-Role": "owner"}


def _request_body(project, site, start=10, end=20, **extra):
    body = {
        "project_id": project.id,
        "site_id": site.id,
        "title": "Foundation pour",
        "planned_start_date": day(start).isoformat(),
        "planned_end_date": day(end).isoformat(),
        "items": [{"name": "Cement", "quantity": "100", "measurement_unit": "bag"}],
    }
    body.update(extra)
    return body


def test_health(client):
    r = client.get("/v1/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


def test_mutations_need_actor_header(client, project, site):
    r = client.post("/v1/requests", json=_request_body(project, site))
    assert r.status_code == 401


def test_request_lifecycle_over_http(client, project, site, engineer_headers, owner_headers):
    """
    GIVEN une demande créée via l'API
    - approbation de la ligne
    - PO de 100
    - livraisons 60 puis 40

    THEN statuts et ledgers exposés à chaque étape, PO CLOSED à la fin
    """
    # ---------- création ----------
    r = client.post("/v1/requests", json=_request_body(project, site), headers=engineer_headers)
    assert r.status_code == 201, r.text
    request = r.json()
    assert request["status"] == "SUBMITTED"
    # Decimal sérialisé en chaîne
    assert {k: Decimal(v) for k, v in request["ledger"].items()} == {
        "requested": Decimal("100"),
        "ordered": Decimal("0"),
        "delivered": Decimal("0"),
    }
    material_id = request["materials"][0]["id"]

    # ---------- approbation ----------
    r = client.patch(
        f"/v1/requests/{request['id']}/materials/{material_id}/status",
        json={"status": "APPROVED"},
        headers=owner_headers,
    )
    assert r.status_code == 200, r.text
    assert r.json()["status"] == "APPROVED"
    assert client.get(f"/v1/requests/{request['id']}").json()["status"] == "APPROVED"

    # ---------- PO ----------
    r = client.post(
        "/v1/purchase-orders",
        json={
            "project_id": project.id,
            "site_id": site.id,
            "vendor_name": "Ciments du Sud",
            "items": [
                {
                    "request_id": request["id"],
                    "material_display_name": "Cement 50kg",
                    "ordered_qty": "100",
                    "unit": "bag",
                    "unit_price": "9.50",
                }
            ],
        },
        headers=owner_headers,
    )
    assert r.status_code == 201, r.text
    po = r.json()
    assert po["status"] == "OPEN"
    assert Decimal(po["total_value"]) == Decimal("950")
    item_id = po["items"][0]["id"]
    assert client.get(f"/v1/requests/{request['id']}").json()["status"] == "ORDERED"

    # ---------- livraisons ----------
    r = client.post(
        "/v1/deliveries",
        json={"purchase_order_id": po["id"], "items": [{"purchase_order_item_id": item_id, "quantity_delivered": "60"}]},
        headers=engineer_headers,
    )
    assert r.status_code == 201, r.text
    assert r.json()["status_changes"][0]["new_status"] == "PARTIALLY_DELIVERED"
    assert r.json()["purchase_order_closed"] is False

    r = client.post(
        "/v1/deliveries",
        json={
            "purchase_order_id": po["id"],
            "items": [{"purchase_order_item_id": item_id, "quantity_delivered": "40", "condition": "GOOD"}],
        },
        headers=engineer_headers,
    )
    assert r.status_code == 201, r.text
    assert r.json()["purchase_order_closed"] is True

    # ---------- lecture ----------
    po_after = client.get(f"/v1/purchase-orders/{po['id']}").json()
    assert po_after["status"] == "CLOSED"
    assert po_after["items"][0]["fully_delivered"] is True

    request_after = client.get(f"/v1/requests/{request['id']}").json()
    assert request_after["status"] == "DELIVERED"

    deliveries = client.get(f"/v1/purchase-orders/{po['id']}/deliveries").json()
    assert len(deliveries) == 2

    listed = client.get("/v1/purchase-orders", params={"project_id": project.id}).json()
    assert [p["po_number"] for p in listed] == [po["po_number"]]

    history = client.get(f"/v1/requests/{request['id']}/history").json()
    assert history[0]["action"] == "DELIVERED"


def test_duplicate_returns_409_with_warnings(client, project, site, engineer_headers):
    r = client.post("/v1/requests", json=_request_body(project, site), headers=engineer_headers)
    assert r.status_code == 201

    r = client.post("/v1/requests", json=_request_body(project, site, start=15, end=25), headers=engineer_headers)
    assert r.status_code == 409
    body = r.json()
    assert body["duplicates"][0]["timeline_overlap_percentage"] == 50.0
    assert body["duplicates"][0]["overlapping_materials"] == ["Cement"]

    r = client.post(
        "/v1/requests",
        json=_request_body(project, site, start=15, end=25, duplicate_explanation="East wing"),
        headers=engineer_headers,
    )
    assert r.status_code == 201
    assert r.json()["is_duplicate_flagged"] is True


def test_duplicate_check_endpoint(client, project, site, engineer_headers):
    client.post("/v1/requests", json=_request_body(project, site), headers=engineer_headers)

    r = client.post(
        "/v1/requests/duplicates/check",
        json={
            "site_id": site.id,
            "material_names": ["cement"],
            "planned_start_date": day(15).isoformat(),
            "planned_end_date": day(25).isoformat(),
        },
    )
    assert r.status_code == 200
    assert len(r.json()) == 1


def test_domain_errors_map_to_http(client, project, site, engineer_headers):
    # 400 : fenêtre inversée (validation métier)
    r = client.post("/v1/requests", json=_request_body(project, site, start=20, end=10), headers=engineer_headers)
    assert r.status_code == 400

    # 422 : quantité négative (schéma pydantic)
    body = _request_body(project, site)
    body["items"][0]["quantity"] = "-1"
    assert client.post("/v1/requests", json=body, headers=engineer_headers).status_code == 422

    # 404
    assert client.get("/v1/requests/999").status_code == 404
    assert client.get("/v1/purchase-orders/999").status_code == 404

    # 409 : PO sur une demande non approuvée
    request = client.post("/v1/requests", json=_request_body(project, site), headers=engineer_headers).json()
    r = client.post(
        "/v1/purchase-orders",
        json={
            "project_id": project.id,
            "items": [
                {
                    "request_id": request["id"],
                    "material_display_name": "Cement",
                    "ordered_qty": "1",
                    "unit": "bag",
                    "unit_price": "1",
                }
            ],
        },
        headers=engineer_headers,
    )
    assert r.status_code == 409


def test_duplicate_check_rejects_inverted_window(client, site):
    r = client.post(
        "/v1/requests/duplicates/check",
        json={
            "site_id": site.id,
            "material_names": ["cement"],
            "planned_start_date": day(25).isoformat(),
            "planned_end_date": day(15).isoformat(),
        },
    )
    assert r.status_code == 400


def test_mixed_timezone_window_is_not_a_server_error(client, project, site, engineer_headers):
    body = _request_body(project, site)
    body["planned_start_date"] = "2026-03-20T00:00:00Z"
    body["planned_end_date"] = "2026-03-10T00:00:00"

    r = client.post("/v1/requests", json=body, headers=engineer_headers)
    assert r.status_code == 400
