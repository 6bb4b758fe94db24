from tests.conftest import operator_for, vendor_user_for


def test_operator_creates_property(client, login, org):
    login(operator_for(org))

    resp = client.post("/properties", json={"name": "  Lakeview  ", "address": " 12 Shore Rd ", "description": " "})

    assert resp.status_code == 201
    data = resp.json()
    assert data["name"] == "Lakeview"
    assert data["address"] == "12 Shore Rd"
    assert data["description"] is None
    assert data["organization_id"] == org.id
    assert data["is_active"] is True


def test_property_address_is_required(client, login, org):
    login(operator_for(org))

    resp = client.post("/properties", json={"name": "Lakeview", "address": ""})

    assert resp.status_code == 400
    assert resp.json()["error"] == "ValidationError"


def test_properties_listed_active_first_then_by_name(client, login, factory, org):
    factory.property(org, name="Zephyr")
    factory.property(org, name="Birch", is_active=False)
    factory.property(org, name="Aspen")
    factory.property(factory.organization(), name="Elsewhere")
    login(operator_for(org))

    names = [p["name"] for p in client.get("/properties").json()]

    assert names == ["Aspen", "Zephyr", "Birch"]


def test_admin_sees_all_properties(client, login, factory, org, admin):
    factory.property(org)
    factory.property(factory.organization())
    login(admin)

    assert len(client.get("/properties").json()) == 2


def test_operator_updates_own_property(client, login, prop, org):
    login(operator_for(org))

    resp = client.patch(f"/properties/{prop.id}", json={"is_active": False, "description": "Closed for winter"})

    assert resp.status_code == 200
    assert resp.json()["is_active"] is False
    assert resp.json()["description"] == "Closed for winter"


def test_operator_cannot_update_foreign_property(client, login, factory, prop):
    login(operator_for(factory.organization(), user_id="other-operator"))

    assert client.patch(f"/properties/{prop.id}", json={"name": "Mine now"}).status_code == 404


def test_vendor_cannot_manage_properties(client, login, factory, prop):
    login(vendor_user_for(factory.vendor()))

    assert client.get("/properties").status_code == 403
    assert client.patch(f"/properties/{prop.id}", json={"name": "x"}).status_code == 403


def test_inactive_property_rejects_new_requests(client, login, factory, org):
    closed = factory.property(org, is_active=False)
    login(operator_for(org))

    resp = client.post("/requests", json={"property_id": closed.id, "description": "Leak", "category": "PLUMBING"})

    assert resp.status_code == 400
    assert resp.json()["error"] == "InvalidState"
