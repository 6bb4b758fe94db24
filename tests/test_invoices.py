import re

from tests.conftest import operator_for


def _completed_request(factory, prop):
    vendor = factory.vendor()
    sr = factory.service_request(prop, status="COMPLETED")
    factory.job(sr, vendor, completed=True)
    return sr, vendor


def test_create_invoice_for_completed_request(client, login, factory, org, prop):
    sr, vendor = _completed_request(factory, prop)
    login(operator_for(org))

    resp = client.post("/invoices", json={"service_request_id": sr.id, "amount": "250.00"})

    assert resp.status_code == 201
    data = resp.json()
    assert re.fullmatch(r"INV-\d{8}-[A-Z2-9]{4}", data["invoice_number"])
    assert data["status"] == "DRAFT"
    assert data["vendor_id"] == vendor.id
    assert data["organization_id"] == org.id


def test_one_invoice_per_request(client, login, factory, prop, admin):
    sr, _ = _completed_request(factory, prop)
    login(admin)
    client.post("/invoices", json={"service_request_id": sr.id, "amount": 100})

    resp = client.post("/invoices", json={"service_request_id": sr.id, "amount": 120})

    assert resp.status_code == 409


def test_open_request_cannot_be_invoiced(client, login, factory, prop, admin):
    sr = factory.service_request(prop, status="IN_PROGRESS")
    login(admin)

    resp = client.post("/invoices", json={"service_request_id": sr.id, "amount": 10})

    assert resp.status_code == 400
    assert resp.json()["error"] == "InvalidState"


def test_negative_amount_rejected(client, login, factory, prop, admin):
    sr, _ = _completed_request(factory, prop)
    login(admin)

    assert client.post("/invoices", json={"service_request_id": sr.id, "amount": -1}).status_code == 400


def test_admin_updates_invoice_status(client, login, factory, org, prop, admin):
    sr, _ = _completed_request(factory, prop)
    login(admin)
    invoice = client.post("/invoices", json={"service_request_id": sr.id, "amount": 80}).json()

    resp = client.patch(f"/invoices/{invoice['id']}", json={"status": "SENT"})
    assert resp.status_code == 200
    assert resp.json()["status"] == "SENT"

    login(operator_for(org))
    assert client.patch(f"/invoices/{invoice['id']}", json={"status": "PAID"}).status_code == 403
    listed = client.get("/invoices", params={"status": "SENT"}).json()
    assert [i["id"] for i in listed] == [invoice["id"]]


def test_operator_cannot_invoice_other_organization(client, login, factory, prop):
    sr, _ = _completed_request(factory, prop)
    login(operator_for(factory.organization(), user_id="other-operator"))

    assert client.post("/invoices", json={"service_request_id": sr.id, "amount": 5}).status_code == 404
