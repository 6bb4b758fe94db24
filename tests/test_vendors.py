from app.models.vendor import VendorCredential
from tests.conftest import operator_for, vendor_user_for


def _vendor_body(**overrides):
    body = {
        "company_name": "Acme Plumbing",
        "contact_name": "Dana Reyes",
        "email": "Dispatch@Acme.test",
        "phone": "+15550101010",
        "skills": ["Plumbing", "plumbing ", "HVAC", ""],
    }
    body.update(overrides)
    return body


def test_admin_creates_vendor(client, login, admin):
    login(admin)

    resp = client.post("/vendors", json=_vendor_body())

    assert resp.status_code == 201
    data = resp.json()
    assert data["email"] == "dispatch@acme.test"
    assert sorted(s["category"] for s in data["skills"]) == ["HVAC", "Plumbing"]
    assert data["is_active"] is True
    assert data["open_jobs_count"] == 0


def test_duplicate_vendor_email_is_a_conflict(client, login, admin):
    login(admin)
    client.post("/vendors", json=_vendor_body())

    resp = client.post("/vendors", json=_vendor_body(company_name="Other", email="dispatch@acme.test"))

    assert resp.status_code == 409


def test_missing_required_vendor_field(client, login, admin):
    login(admin)

    resp = client.post("/vendors", json=_vendor_body(phone=""))

    assert resp.status_code == 400
    assert resp.json()["error"] == "ValidationError"


def test_only_admin_creates_vendors(client, login, org):
    login(operator_for(org))

    assert client.post("/vendors", json=_vendor_body()).status_code == 403


def test_vendor_list_has_job_counts(client, login, factory, prop, org):
    vendor = factory.vendor()
    done = factory.service_request(prop, status="COMPLETED")
    factory.job(done, vendor, completed=True)
    active = factory.service_request(prop, status="DISPATCHED")
    factory.job(active, vendor)
    cancelled = factory.service_request(prop, status="CANCELLED")
    factory.job(cancelled, vendor)
    login(operator_for(org))

    listed = client.get("/vendors").json()

    assert listed[0]["jobs_count"] == 3
    assert listed[0]["open_jobs_count"] == 1


def test_vendor_list_filters(client, login, factory, admin):
    plumber = factory.vendor(skills=["Plumbing"])
    factory.vendor(skills=["Roofing"])
    factory.vendor(skills=["Plumbing"], is_active=False)
    login(admin)

    ids = [v["id"] for v in client.get("/vendors", params={"category": "PLUMBING", "active_only": True}).json()]

    assert ids == [plumber.id]


def test_vendor_updates_own_profile(client, login, factory):
    vendor = factory.vendor()
    login(vendor_user_for(vendor))

    resp = client.patch(f"/vendors/{vendor.id}", json={"phone": " +15559990000 ", "service_radius_km": 40})

    assert resp.status_code == 200
    assert resp.json()["phone"] == "+15559990000"
    assert resp.json()["service_radius_km"] == 40


def test_vendor_cannot_deactivate_itself(client, login, factory):
    vendor = factory.vendor()
    login(vendor_user_for(vendor))

    assert client.patch(f"/vendors/{vendor.id}", json={"is_active": False}).status_code == 403


def test_service_radius_must_be_positive(client, login, factory, admin):
    vendor = factory.vendor()
    login(admin)

    assert client.patch(f"/vendors/{vendor.id}", json={"service_radius_km": 0}).status_code == 400


def test_vendor_cannot_see_other_vendor(client, login, factory):
    vendor = factory.vendor()
    other = factory.vendor()
    login(vendor_user_for(vendor))

    assert client.get(f"/vendors/{other.id}").status_code == 403


def test_replace_skills(client, login, factory, admin):
    vendor = factory.vendor(skills=["Plumbing", "HVAC"])
    login(admin)

    resp = client.put(f"/vendors/{vendor.id}/skills", json={"skills": ["HVAC", "Electrical", "electrical"]})

    assert resp.status_code == 200
    assert sorted(s["category"] for s in resp.json()["skills"]) == ["Electrical", "HVAC"]


def test_credentials_lifecycle(client, login, db, factory, admin):
    vendor = factory.vendor()
    login(vendor_user_for(vendor))

    created = client.post(f"/vendors/{vendor.id}/credentials", json={
        "type": "WSIB", "credential_number": " 12345 ", "expires_at": "2027-01-31T00:00:00Z",
    })
    assert created.status_code == 201
    cred = created.json()
    assert cred["credential_number"] == "12345"
    assert cred["verified"] is False

    assert client.patch(f"/vendors/{vendor.id}/credentials/{cred['id']}/verify").status_code == 403

    login(admin)
    verified = client.patch(f"/vendors/{vendor.id}/credentials/{cred['id']}/verify")
    assert verified.json()["verified"] is True

    login(vendor_user_for(vendor))
    assert client.delete(f"/vendors/{vendor.id}/credentials/{cred['id']}").status_code == 204
    db.expire_all()
    assert db.get(VendorCredential, cred["id"]) is None


def test_cannot_delete_another_vendors_credential(client, login, db, factory, admin):
    vendor = factory.vendor()
    other = factory.vendor()
    credential = VendorCredential(vendor_id=other.id, type="OTHER", credential_number="X-1")
    db.add(credential)
    db.commit()
    login(vendor_user_for(vendor))

    resp = client.delete(f"/vendors/{vendor.id}/credentials/{credential.id}")

    assert resp.status_code == 403


def test_unknown_credential_type(client, login, factory):
    vendor = factory.vendor()
    login(vendor_user_for(vendor))

    resp = client.post(f"/vendors/{vendor.id}/credentials", json={"type": "PILOT", "credential_number": "1"})

    assert resp.status_code == 400
