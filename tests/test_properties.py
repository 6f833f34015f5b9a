import io

from conftest import auth_headers, make_lease, make_property
from propertyhub.models import Property


def property_payload(**overrides):
    payload = {
        "name": "Oak Villa",
        "address": {"street": "3 Oak Lane", "city": "Portland", "state": "OR", "zip_code": "97201"},
        "type": "house",
        "bedrooms": 3,
        "bathrooms": 2.5,
        "rent_amount": 2400,
        "deposit_amount": 2400,
        "amenities": ["garage", "garden"],
    }
    payload.update(overrides)
    return payload


class TestCreate:

    def test_nested_address(self, client, landlord):
        response = client.post("/api/properties", json=property_payload(), headers=auth_headers(landlord))
        body = response.get_json()["property"]

        assert response.status_code == 201
        assert body["address"]["city"] == "Portland"
        assert body["address"]["country"] == "USA"
        assert body["status"] == "available"
        assert body["landlord"]["id"] == str(landlord.id)
        assert body["amenities"] == ["garage", "garden"]

    def test_form_upload_with_flat_address(self, client, landlord):
        data = {
            "name": "Elm Flat",
            "street": "9 Elm Road",
            "city": "Austin",
            "state": "TX",
            "zip_code": "73301",
            "rent_amount": "950",
            "amenities": "wifi, laundry",
            "images": (io.BytesIO(b"\x89PNG"), "front.png"),
        }
        response = client.post("/api/properties", data=data, content_type="multipart/form-data",
                               headers=auth_headers(landlord))
        body = response.get_json()["property"]

        assert response.status_code == 201
        assert body["amenities"] == ["wifi", "laundry"]
        assert len(body["images"]) == 1

    def test_rejects_disallowed_upload(self, client, landlord):
        data = {
            "name": "Bad Upload",
            "street": "1 Ash Street",
            "city": "Boise",
            "state": "ID",
            "zip_code": "83702",
            "rent_amount": "700",
            "images": (io.BytesIO(b"MZ"), "tool.exe"),
        }
        response = client.post("/api/properties", data=data, content_type="multipart/form-data",
                               headers=auth_headers(landlord))
        assert response.status_code == 400
        assert Property.query.count() == 0

    def test_missing_fields(self, client, landlord):
        response = client.post("/api/properties", json={"name": "Nowhere"}, headers=auth_headers(landlord))
        assert response.status_code == 400
        assert "address.street" in response.get_json()["message"]

    def test_tenant_cannot_create(self, client, tenant):
        assert client.post("/api/properties", json=property_payload(), headers=auth_headers(tenant)).status_code == 403


class TestListing:

    def test_scoped_by_role_and_filtered(self, client, landlord, tenant, manager, outsider, prop):
        make_property(landlord, name="Birch House", type="house", city="Salem")
        make_property(outsider, name="Foreign Place")
        make_lease(prop, tenant, status="active")

        mine = client.get("/api/properties", headers=auth_headers(landlord)).get_json()
        assert mine["total"] == 2

        houses = client.get("/api/properties?type=house", headers=auth_headers(landlord)).get_json()
        assert [p["name"] for p in houses["properties"]] == ["Birch House"]

        searched = client.get("/api/properties?search=sale", headers=auth_headers(landlord)).get_json()
        assert searched["total"] == 1

        paged = client.get("/api/properties?per_page=1&page=2", headers=auth_headers(landlord)).get_json()
        assert paged["pages"] == 2 and len(paged["properties"]) == 1

        assert client.get("/api/properties", headers=auth_headers(tenant)).get_json()["total"] == 1
        assert client.get("/api/properties", headers=auth_headers(manager)).get_json()["total"] == 0

    def test_view_requires_relationship(self, client, outsider, tenant, prop):
        assert client.get(f"/api/properties/{prop.id}", headers=auth_headers(outsider)).status_code == 403
        assert client.get(f"/api/properties/{prop.id}", headers=auth_headers(tenant)).status_code == 403


class TestManagement:

    def test_update(self, client, landlord, outsider, prop):
        denied = client.put(f"/api/properties/{prop.id}", json={"rent_amount": 1}, headers=auth_headers(outsider))
        assert denied.status_code == 403

        response = client.put(f"/api/properties/{prop.id}", json={"rent_amount": "1350", "city": "Chicago"},
                              headers=auth_headers(landlord))
        body = response.get_json()["property"]
        assert body["rent_amount"] == 1350.0
        assert body["address"]["city"] == "Chicago"

        bad = client.put(f"/api/properties/{prop.id}", json={"type": "castle"}, headers=auth_headers(landlord))
        assert bad.status_code == 400

    def test_assign_and_remove_tenant(self, client, landlord, tenant, manager, prop):
        headers = auth_headers(landlord)
        bad = client.put(f"/api/properties/{prop.id}/tenant", json={"tenant_id": str(manager.id)}, headers=headers)
        assert bad.status_code == 400

        assigned = client.put(f"/api/properties/{prop.id}/tenant", json={"tenant_id": str(tenant.id)}, headers=headers)
        assert assigned.get_json()["property"]["status"] == "occupied"
        assert client.get(f"/api/properties/{prop.id}", headers=auth_headers(tenant)).status_code == 200

        blocked = client.delete(f"/api/properties/{prop.id}", headers=headers)
        assert blocked.status_code == 400

        removed = client.delete(f"/api/properties/{prop.id}/tenant", headers=headers)
        assert removed.get_json()["property"]["current_tenant"] is None
        assert client.delete(f"/api/properties/{prop.id}", headers=headers).status_code == 200
        assert Property.query.count() == 0

    def test_assign_manager_gives_visibility(self, client, landlord, manager, prop):
        response = client.put(f"/api/properties/{prop.id}/manager", json={"manager_id": str(manager.id)},
                              headers=auth_headers(landlord))
        assert response.get_json()["property"]["assigned_manager"]["id"] == str(manager.id)
        assert client.get(f"/api/properties/{prop.id}", headers=auth_headers(manager)).status_code == 200

    def test_status_toggle(self, client, landlord, tenant, prop):
        headers = auth_headers(landlord)
        response = client.put(f"/api/properties/{prop.id}/status", json={"status": "maintenance"}, headers=headers)
        assert response.get_json()["property"]["is_available"] is False

        assert client.put(f"/api/properties/{prop.id}/status", json={"status": "occupied"},
                          headers=headers).status_code == 400

        make_lease(prop, tenant, status="active")
        assert client.put(f"/api/properties/{prop.id}/status", json={"status": "available"},
                          headers=headers).status_code == 400
