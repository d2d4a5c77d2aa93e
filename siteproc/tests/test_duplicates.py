from datetime import datetime
from decimal import Decimal

import pytest

from siteproc.app.db.models.core_types import MaterialStatus
from siteproc.app.db.models.models_v1 import Site
from siteproc.services.approval import list_request_materials, update_material_status
from siteproc.services.duplicates import (
    find_duplicates,
    normalize_material_names,
    timeline_overlap_percentage,
)
from siteproc.services.errors import DomainValidationError
from siteproc.services.procurement import PurchaseOrderInput, PurchaseOrderItemInput, create_purchase_order
from siteproc.tests.factories import day


def test_normalize_material_names():
    assert normalize_material_names([" Cement", "cement", "", None, "SAND "]) == ["cement", "sand"]
    assert normalize_material_names([]) == []


@pytest.mark.parametrize(
    "existing, candidate, expected",
    [
        ((0, 10), (0, 10), 100.0),
        ((0, 10), (20, 30), 0.0),
        ((10, 20), (15, 25), 50.0),
        ((0, 100), (10, 20), 100.0),
        ((15, 25), (10, 30), 50.0),
    ],
)
def test_timeline_overlap_percentage(existing, candidate, expected):
    assert timeline_overlap_percentage(
        day(existing[0]), day(existing[1]), day(candidate[0]), day(candidate[1])
    ) == pytest.approx(expected)


def test_overlap_single_day_candidate_is_full():
    start = day(5)
    assert timeline_overlap_percentage(day(0), day(10), start, start) == 100.0


def test_overlap_missing_window_is_full():
    assert timeline_overlap_percentage(None, day(10), day(0), day(5)) == 100.0
    assert timeline_overlap_percentage(day(0), day(10), None, None) == 100.0


def test_overlap_mixes_naive_and_aware():
    naive_start = datetime(2026, 3, 11)
    naive_end = datetime(2026, 3, 21)
    assert timeline_overlap_percentage(naive_start, naive_end, day(15), day(25)) == pytest.approx(50.0)


def test_cement_on_same_site_is_flagged(db_session, make_request, site):
    """
    GIVEN une demande "Cement" sur le site S, jours 10 -> 20
    WHEN une candidate "cement" jours 15 -> 25 sur S
    THEN un warning à 50 %, avec le matériau commun
    """
    existing = make_request(items=(("Cement", "100"),), start=day(10), end=day(20))

    warnings = find_duplicates(db_session, site.id, ["cement"], day(15), day(25))

    assert len(warnings) == 1
    w = warnings[0]
    assert w.request_id == existing.id
    assert w.boq_reference_code == existing.boq_reference_code
    assert w.timeline_overlap_percentage == pytest.approx(50.0)
    assert w.overlapping_materials == ["Cement"]
    assert w.site_name == site.name
    assert w.status == "SUBMITTED"


def test_touching_windows_do_not_overlap(db_session, make_request, site):
    make_request(start=day(10), end=day(20))

    assert find_duplicates(db_session, site.id, ["Cement"], day(20), day(30)) == []
    assert find_duplicates(db_session, site.id, ["Cement"], day(0), day(10)) == []


def test_other_site_is_ignored(db_session, make_request, project):
    make_request(start=day(10), end=day(20))
    other = Site(project_id=project.id, name="Block B", active=True)
    db_session.add(other)
    db_session.commit()

    assert find_duplicates(db_session, other.id, ["Cement"], day(10), day(20)) == []


def test_no_common_material_still_warns_by_default(db_session, make_request, site):
    make_request(items=(("Cement", "100"),), start=day(10), end=day(20))

    warnings = find_duplicates(db_session, site.id, ["Gravel"], day(12), day(18))

    assert len(warnings) == 1
    assert warnings[0].overlapping_materials == []


def test_require_material_match_filters_empty_overlaps(db_session, make_request, site):
    make_request(items=(("Cement", "100"),), start=day(10), end=day(20))

    assert find_duplicates(db_session, site.id, ["Gravel"], day(12), day(18), require_material_match=True) == []
    assert len(find_duplicates(db_session, site.id, ["CEMENT"], day(12), day(18), require_material_match=True)) == 1


def test_empty_material_list_returns_nothing(db_session, make_request, site):
    make_request(start=day(10), end=day(20))

    assert find_duplicates(db_session, site.id, [], day(10), day(20)) == []
    assert find_duplicates(db_session, site.id, ["  "], day(10), day(20)) == []


def test_missing_candidate_window_matches_every_site_request(db_session, make_request, site):
    make_request(start=day(0), end=day(5))
    make_request(start=day(100), end=day(105), title="Roof")

    warnings = find_duplicates(db_session, site.id, ["Cement"], None, None)

    assert len(warnings) == 2
    assert all(w.timeline_overlap_percentage == 100.0 for w in warnings)


def test_rejected_request_does_not_warn(db_session, make_request, site, owner_actor):
    """
    GIVEN une demande Cement jours 10 -> 20 entièrement REJECTED
    WHEN une candidate Cement jours 15 -> 25 sur le même site
    THEN aucun warning (la demande rejetée n'est plus active)
    """
    rejected = make_request(start=day(10), end=day(20))
    for material in list_request_materials(db_session, rejected.id):
        update_material_status(
            db_session,
            actor=owner_actor,
            request_id=rejected.id,
            material_id=material.id,
            status=MaterialStatus.rejected,
        )

    assert find_duplicates(db_session, site.id, ["Cement"], day(15), day(25)) == []


def test_ordered_request_does_not_warn(db_session, approved_request, owner_actor, project, site):
    create_purchase_order(
        db_session,
        actor=owner_actor,
        payload=PurchaseOrderInput(
            project_id=project.id,
            items=[PurchaseOrderItemInput(approved_request.id, "Cement", Decimal("100"), "bag", Decimal("5"))],
        ),
    )

    assert find_duplicates(db_session, site.id, ["Cement"], day(15), day(25)) == []


def test_approved_request_still_warns(db_session, approved_request, site):
    warnings = find_duplicates(db_session, site.id, ["Cement"], day(15), day(25))

    assert [w.status for w in warnings] == ["APPROVED"]


def test_inverted_candidate_window_is_rejected(db_session, make_request, site):
    make_request(start=day(10), end=day(20))

    with pytest.raises(DomainValidationError):
        find_duplicates(db_session, site.id, ["Cement"], day(25), day(15))
