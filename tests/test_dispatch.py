from datetime import timedelta

import pytest
from fastapi import BackgroundTasks

from app.api.deps import get_dispatch_config
from app.core.config import DispatchSettings
from app.core.errors import Conflict
from app.main import app
from app.models.audit_log import AuditLog
from app.models.job import Job
from app.models.notification import Notification
from app.models.service_request import ServiceRequest
from app.services.dispatch import (
    auto_dispatch,
    dispatch_request,
    find_candidate_vendors,
    normalize_category,
    reconcile_stalled_requests,
    select_vendor,
)
from tests.conftest import operator_for


def _create(client, login, org, prop, category="PLUMBING", **extra):
    login(operator_for(org))
    body = {"property_id": prop.id, "description": "Water on the floor", "category": category, **extra}
    return client.post("/requests", json=body)


def _jobs_for(db, request_id):
    return db.query(Job).filter(Job.service_request_id == request_id).all()


@pytest.mark.parametrize("raw,expected", [
    ("PLUMBING", "PLUMBING"),
    ("Plumbing", "PLUMBING"),
    ("  plumbing ", "PLUMBING"),
    ("Snow  Removal", "SNOW REMOVAL"),
    ("SNOW_REMOVAL", "SNOW REMOVAL"),
    (None, ""),
])
def test_normalize_category(raw, expected):
    assert normalize_category(raw) == expected


def test_create_request_dispatches_to_matching_vendor(client, login, db, factory, org, prop):
    vendor = factory.vendor(skills=["Plumbing"])

    resp = _create(client, login, org, prop, category="PLUMBING")

    assert resp.status_code == 201
    data = resp.json()
    assert data["status"] == "DISPATCHED"
    assert data["job"]["vendor_id"] == vendor.id
    assert data["job"]["status"] == "OFFERED"
    assert data["reference_number"].startswith("SR-")

    db.expire_all()
    jobs = _jobs_for(db, data["id"])
    assert len(jobs) == 1
    assert jobs[0].vendor_id == vendor.id


def test_least_loaded_vendor_wins(client, login, db, factory, org, prop):
    busy = factory.vendor(skills=["PLUMBING"])
    idle = factory.vendor(skills=["plumbing"])
    for _ in range(3):
        sr = factory.service_request(prop, status="DISPATCHED")
        factory.job(sr, busy)

    resp = _create(client, login, org, prop, category="PLUMBING")

    assert resp.status_code == 201
    assert resp.json()["job"]["vendor_id"] == idle.id


def test_completed_jobs_do_not_count_as_load(db, factory, prop):
    first = factory.vendor(skills=["HVAC"])
    second = factory.vendor(skills=["HVAC"])
    done = factory.service_request(prop, status="COMPLETED")
    factory.job(done, first, completed=True)
    open_sr = factory.service_request(prop, status="DISPATCHED")
    factory.job(open_sr, second)

    best = select_vendor(find_candidate_vendors(db, "hvac"))

    assert best.vendor.id == first.id
    assert best.open_jobs == 0


def test_jobs_on_cancelled_requests_do_not_count_as_load(db, factory, prop):
    first = factory.vendor(skills=["HVAC"])
    second = factory.vendor(skills=["HVAC"])
    cancelled = factory.service_request(prop, status="CANCELLED")
    factory.job(cancelled, first)
    open_sr = factory.service_request(prop, status="DISPATCHED")
    factory.job(open_sr, second)

    best = select_vendor(find_candidate_vendors(db, "HVAC"))

    assert best.vendor.id == first.id
    assert best.open_jobs == 0


def test_tie_goes_to_lowest_vendor_id(db, factory):
    first = factory.vendor(skills=["Electrical"])
    factory.vendor(skills=["Electrical"])

    best = select_vendor(find_candidate_vendors(db, "ELECTRICAL"))

    assert best.vendor.id == first.id


def test_inactive_vendors_are_not_candidates(db, factory):
    factory.vendor(skills=["Plumbing"], is_active=False)

    assert find_candidate_vendors(db, "PLUMBING") == []


def test_auto_dispatch_switched_off_leaves_request_submitted(client, login, db, factory, org, prop):
    factory.vendor(skills=["Plumbing"])
    app.dependency_overrides[get_dispatch_config] = lambda: DispatchSettings(auto_dispatch_enabled=False)

    resp = _create(client, login, org, prop, category="PLUMBING")

    assert resp.status_code == 201
    assert resp.json()["status"] == "SUBMITTED"
    assert resp.json()["job"] is None
    db.expire_all()
    assert _jobs_for(db, resp.json()["id"]) == []


def test_no_matching_vendor_queues_for_manual_dispatch(client, login, db, factory, org, prop, sms_sender):
    factory.vendor(skills=["Plumbing"])

    resp = _create(client, login, org, prop, category="ROOFING")

    assert resp.status_code == 201
    data = resp.json()
    assert data["status"] == "READY_TO_DISPATCH"
    assert data["job"] is None
    db.expire_all()
    assert _jobs_for(db, data["id"]) == []
    assert sms_sender.calls == []


def test_dispatch_notifies_vendor_by_sms_and_email(client, login, db, factory, org, prop,
                                                     sms_sender, email_sender):
    vendor = factory.vendor(skills=["Plumbing"])

    resp = _create(client, login, org, prop, category="PLUMBING")

    assert resp.status_code == 201
    assert sms_sender.recipients == [vendor.phone]
    assert email_sender.recipients == [vendor.email]
    body = sms_sender.calls[0]["args"][0]
    assert resp.json()["reference_number"] in body

    db.expire_all()
    rows = db.query(Notification).filter(Notification.job_id == resp.json()["job"]["id"]).all()
    assert {r.channel for r in rows} == {"sms", "email"}
    assert all(r.status == "SENT" and r.attempts == 1 for r in rows)


def test_failed_notification_does_not_undo_dispatch(client, login, db, factory, org, prop, sms_sender):
    sms_sender.result.success = False
    sms_sender.result.error = "Twilio is down"
    factory.vendor(skills=["Plumbing"])

    resp = _create(client, login, org, prop, category="PLUMBING")

    assert resp.status_code == 201
    assert resp.json()["status"] == "DISPATCHED"
    db.expire_all()
    failed = db.query(Notification).filter(Notification.channel == "sms").one()
    assert failed.status == "FAILED"
    assert failed.error == "Twilio is down"


def test_auto_dispatch_failure_leaves_request_submitted(db, factory, prop, notifier, monkeypatch):
    factory.vendor(skills=["Plumbing"])
    sr = factory.service_request(prop)

    def boom(*args, **kwargs):
        raise RuntimeError("db went away")

    monkeypatch.setattr("app.services.dispatch.find_candidate_vendors", boom)

    assert auto_dispatch(db, sr.id, notifier, BackgroundTasks()) is None

    db.expire_all()
    assert db.get(ServiceRequest, sr.id).status == "SUBMITTED"
    assert _jobs_for(db, sr.id) == []


def test_auto_dispatch_skips_request_with_job(db, factory, prop, notifier):
    vendor = factory.vendor(skills=["Plumbing"])
    sr = factory.service_request(prop, status="SUBMITTED")
    factory.job(sr, vendor)

    assert auto_dispatch(db, sr.id, notifier, BackgroundTasks()) is None
    assert len(_jobs_for(db, sr.id)) == 1


def test_manual_dispatch(client, login, db, factory, prop, admin, sms_sender):
    vendor = factory.vendor(skills=["Roofing"])
    sr = factory.service_request(prop, category="ROOFING", status="READY_TO_DISPATCH")

    login(admin)
    resp = client.post(f"/requests/{sr.id}/dispatch", json={"vendor_id": vendor.id})

    assert resp.status_code == 201
    assert resp.json()["vendor_id"] == vendor.id
    db.expire_all()
    assert db.get(ServiceRequest, sr.id).status == "DISPATCHED"
    assert sms_sender.recipients == [vendor.phone]

    audit = db.query(AuditLog).filter(AuditLog.action == "dispatched").one()
    assert audit.actor_email == admin.email
    assert audit.service_request_id == sr.id


def test_manual_dispatch_of_cancelled_request_is_rejected(client, login, db, factory, prop, admin):
    vendor = factory.vendor()
    sr = factory.service_request(prop, status="CANCELLED")

    login(admin)
    resp = client.post(f"/requests/{sr.id}/dispatch", json={"vendor_id": vendor.id})

    assert resp.status_code == 400
    assert resp.json()["error"] == "InvalidState"
    assert _jobs_for(db, sr.id) == []


def test_manual_dispatch_twice_is_a_conflict(client, login, db, factory, prop, admin):
    vendor = factory.vendor()
    other = factory.vendor()
    sr = factory.service_request(prop, status="READY_TO_DISPATCH")

    login(admin)
    assert client.post(f"/requests/{sr.id}/dispatch", json={"vendor_id": vendor.id}).status_code == 201
    resp = client.post(f"/requests/{sr.id}/dispatch", json={"vendor_id": other.id})

    assert resp.status_code == 409
    assert resp.json()["error"] == "Conflict"
    db.expire_all()
    jobs = _jobs_for(db, sr.id)
    assert len(jobs) == 1
    assert jobs[0].vendor_id == vendor.id


def test_unique_index_race_is_reported_as_conflict(db, factory, prop, admin, notifier, monkeypatch):
    vendor = factory.vendor()
    sr = factory.service_request(prop, status="READY_TO_DISPATCH")
    factory.job(sr, vendor)

    # simulate losing the race: the pre-check sees no job, the insert hits the unique index
    real_query = db.query

    def query(*entities, **kwargs):
        q = real_query(*entities, **kwargs)
        if entities and entities[0] is Job.id:
            return real_query(Job.id).filter(Job.id == -1)
        return q

    monkeypatch.setattr(db, "query", query)

    with pytest.raises(Conflict):
        dispatch_request(db, sr.id, vendor.id, admin, notifier, BackgroundTasks())


def test_manual_dispatch_unknown_vendor_or_request(client, login, factory, prop, admin):
    vendor = factory.vendor()
    sr = factory.service_request(prop, status="READY_TO_DISPATCH")
    login(admin)

    resp = client.post(f"/requests/{sr.id}/dispatch", json={"vendor_id": 9999})
    assert resp.status_code == 404
    assert resp.json()["error"] == "NotFound"

    resp = client.post("/requests/9999/dispatch", json={"vendor_id": vendor.id})
    assert resp.status_code == 404


def test_manual_dispatch_requires_admin(client, login, factory, org, prop):
    vendor = factory.vendor()
    sr = factory.service_request(prop, status="READY_TO_DISPATCH")
    login(operator_for(org))

    resp = client.post(f"/requests/{sr.id}/dispatch", json={"vendor_id": vendor.id})

    assert resp.status_code == 403
    assert resp.json()["error"] == "Forbidden"


def test_reconcile_picks_up_stalled_requests(db, factory, prop, notifier):
    vendor = factory.vendor(skills=["Plumbing"])
    stalled = factory.service_request(prop, category="Plumbing")
    unmatched = factory.service_request(prop, category="Roofing")
    moved_on = factory.service_request(prop, status="TRIAGING")

    result = reconcile_stalled_requests(db, timedelta(0), notifier, BackgroundTasks())

    assert result == {"checked": 2, "dispatched": 1, "queued_for_manual": 1}
    db.expire_all()
    assert _jobs_for(db, stalled.id)[0].vendor_id == vendor.id
    assert db.get(ServiceRequest, unmatched.id).status == "READY_TO_DISPATCH"
    assert db.get(ServiceRequest, moved_on.id).status == "TRIAGING"

    again = reconcile_stalled_requests(db, timedelta(0), notifier, BackgroundTasks())
    assert again == {"checked": 0, "dispatched": 0, "queued_for_manual": 0}


def test_reconcile_endpoint(client, login, factory, prop, admin):
    factory.vendor(skills=["Plumbing"])
    factory.service_request(prop)
    login(admin)

    resp = client.post("/requests/reconcile-dispatch", params={"older_than_minutes": 0})

    assert resp.status_code == 200
    assert resp.json() == {"checked": 1, "dispatched": 1, "queued_for_manual": 0}
