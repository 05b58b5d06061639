"""
Outlet scoping tests.

Verifies:
- Writes land on the header outlet or the caller's default
- Non-admins cannot read or write outside their assigned outlets
- Admins read across outlets when no header is sent
- Bad X-Outlet-Id values are 400 / 404, never a silent fallback
- Outlet CRUD and user outlet assignment
"""

import pytest

from conftest import TEST_PASSWORD, auth_headers
from cafe_api.extensions import db
from cafe_api.models import InventoryItem, Sale, SecurityEvent
from cafe_api.models.auth import ROLE_ADMIN
from cafe_api.services import auth_service, outlet_service, token_service
from cafe_api.services.token_service import Identity


def _with_outlet(headers, outlet_id):
    return {**headers, "X-Outlet-Id": str(outlet_id)}


def _ingredient(name="Milk"):
    return {"ingredient_name": name, "unit": "litre", "current_stock": 10, "minimum_stock": 2}


# =============================================================================
# WRITE RESOLUTION
# =============================================================================


class TestWriteOutlet:

    def test_manager_writes_to_default_outlet(self, client, manager_headers, outlet_a):
        resp = client.post("/api/inventory", json=_ingredient(), headers=manager_headers)
        assert resp.status_code == 201
        assert resp.get_json()["outlet_id"] == outlet_a.id

    def test_manager_denied_unassigned_outlet(self, client, manager_headers, outlet_b):
        resp = client.post("/api/inventory", json=_ingredient(), headers=_with_outlet(manager_headers, outlet_b.id))
        assert resp.status_code == 403
        assert resp.get_json() == {"error": "You do not have access to this outlet"}
        assert db.session.query(InventoryItem).count() == 0

        denied = db.session.query(SecurityEvent).filter_by(event_type="OUTLET_ACCESS_DENIED").one()
        assert denied.outlet_id == outlet_b.id

    def test_admin_may_write_anywhere(self, client, admin_headers, outlet_b):
        resp = client.post("/api/inventory", json=_ingredient(), headers=_with_outlet(admin_headers, outlet_b.id))
        assert resp.status_code == 201
        assert resp.get_json()["outlet_id"] == outlet_b.id

    def test_admin_without_any_outlet_must_choose(self, client, db_session, outlet_a):
        floating = auth_service.create_user("floater", "floater@cafe.test", TEST_PASSWORD, role=ROLE_ADMIN)
        headers = auth_headers(token_service.issue_token(floating.id, floating.username, floating.role))

        resp = client.post("/api/inventory", json=_ingredient(), headers=headers)
        assert resp.status_code == 403
        assert resp.get_json() == {"error": "An outlet must be selected for this operation"}

        ok = client.post("/api/inventory", json=_ingredient(), headers=_with_outlet(headers, outlet_a.id))
        assert ok.status_code == 201

    def test_inactive_outlet_rejects_writes(self, client, admin_headers, outlet_b):
        outlet_service.toggle_outlet_status(outlet_b.id)
        resp = client.post("/api/inventory", json=_ingredient(), headers=_with_outlet(admin_headers, outlet_b.id))
        assert resp.status_code == 403

    @pytest.mark.parametrize("value", ["abc", "1.5", "-3", "0"])
    def test_malformed_header(self, client, manager_headers, value):
        resp = client.post("/api/inventory", json=_ingredient(), headers=_with_outlet(manager_headers, value))
        assert resp.status_code == 400


# =============================================================================
# READ RESOLUTION
# =============================================================================


class TestReadOutlet:

    @pytest.fixture
    def stocked(self, db_session, outlet_a, outlet_b):
        db_session.add_all([
            InventoryItem(outlet_id=outlet_a.id, ingredient_name="Milk", unit="litre", current_stock=5),
            InventoryItem(outlet_id=outlet_b.id, ingredient_name="Beans", unit="kg", current_stock=3),
        ])
        db_session.commit()

    def test_manager_sees_only_their_outlet(self, client, manager_headers, stocked):
        names = [item["ingredient_name"] for item in client.get("/api/inventory", headers=manager_headers).get_json()]
        assert names == ["Milk"]

    def test_manager_cannot_read_other_outlet(self, client, manager_headers, outlet_b, stocked):
        resp = client.get("/api/inventory", headers=_with_outlet(manager_headers, outlet_b.id))
        assert resp.status_code == 403

    def test_admin_without_header_sees_all(self, client, admin_headers, stocked):
        names = {item["ingredient_name"] for item in client.get("/api/inventory", headers=admin_headers).get_json()}
        assert names == {"Milk", "Beans"}

    def test_admin_with_header_is_narrowed(self, client, admin_headers, outlet_b, stocked):
        resp = client.get("/api/inventory", headers=_with_outlet(admin_headers, outlet_b.id))
        assert [item["ingredient_name"] for item in resp.get_json()] == ["Beans"]

    def test_unknown_outlet_is_404(self, client, admin_headers, stocked):
        resp = client.get("/api/inventory", headers=_with_outlet(admin_headers, 9999))
        assert resp.status_code == 404

    def test_manager_without_assignment_is_403(self, client, db_session):
        loose = auth_service.create_user("loose", "loose@cafe.test", TEST_PASSWORD, role="manager")
        headers = auth_headers(token_service.issue_token(loose.id, loose.username, loose.role))
        resp = client.get("/api/inventory", headers=headers)
        assert resp.status_code == 403
        assert resp.get_json() == {"error": "No outlet assigned to this account"}

    def test_record_guard_blocks_foreign_items(self, client, manager_headers, outlet_b, stocked):
        beans = db.session.query(InventoryItem).filter_by(ingredient_name="Beans").one()
        resp = client.get(f"/api/inventory/{beans.id}", headers=manager_headers)
        assert resp.status_code == 403


class TestResolverFunctions:
    """The resolver called directly, without HTTP."""

    def test_assignment_union(self, manager_user, outlet_a, outlet_b):
        outlet_service.set_user_outlets(manager_user.id, [outlet_b.id], default_outlet_id=outlet_a.id)
        assert outlet_service.get_assigned_outlet_ids(manager_user.id) == {outlet_a.id, outlet_b.id}

    def test_write_resolution_reports_instead_of_raising(self, manager_user, outlet_b):
        identity = Identity(manager_user.id, manager_user.username, manager_user.role)
        resolution = outlet_service.resolve_outlet_for_write(identity, str(outlet_b.id))
        assert resolution.ok is False
        assert resolution.outlet_id is None
        assert resolution.error.status_code == 403

    def test_read_resolution_falls_back_to_default(self, manager_user, outlet_a):
        identity = Identity(manager_user.id, manager_user.username, manager_user.role)
        assert outlet_service.resolve_outlet_for_read(identity, None) == outlet_a.id


# =============================================================================
# OUTLET CRUD
# =============================================================================


class TestOutletCrud:

    def test_create_applies_defaults(self, client, admin_headers):
        resp = client.post("/api/outlets", json={"name": "HSR Layout", "code": "hsr01"}, headers=admin_headers)
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["code"] == "HSR01"
        assert body["opening_time"] == "08:00"
        assert body["closing_time"] == "22:00"
        assert body["tax_percentage"] == 5.0
        assert body["is_active"] is True

    def test_duplicate_code_conflicts(self, client, admin_headers, outlet_a):
        resp = client.post("/api/outlets", json={"name": "Copy", "code": "krm01"}, headers=admin_headers)
        assert resp.status_code == 409

    def test_code_is_immutable(self, client, admin_headers, outlet_a):
        resp = client.put(f"/api/outlets/{outlet_a.id}", json={"code": "NEW01"}, headers=admin_headers)
        assert resp.status_code == 400

    def test_update_and_toggle(self, client, admin_headers, outlet_b):
        resp = client.put(f"/api/outlets/{outlet_b.id}", json={"city": "Bengaluru"}, headers=admin_headers)
        assert resp.get_json()["city"] == "Bengaluru"

        toggled = client.post(f"/api/outlets/{outlet_b.id}/toggle-status", headers=admin_headers)
        assert toggled.get_json()["is_active"] is False
        active = client.get("/api/outlets/active").get_json()
        assert outlet_b.id not in [o["id"] for o in active]

    def test_delete_empty_outlet(self, client, admin_headers, outlet_b):
        resp = client.delete(f"/api/outlets/{outlet_b.id}", headers=admin_headers)
        assert resp.status_code == 200
        assert client.get(f"/api/outlets/{outlet_b.id}", headers=admin_headers).status_code == 404

    def test_delete_refused_while_outlet_has_data(self, client, admin_headers, outlet_b):
        sale = client.post(
            "/api/sales",
            json={"sale_date": "2024-06-01", "total_cents": 500},
            headers=_with_outlet(admin_headers, outlet_b.id),
        )
        assert sale.status_code == 201

        resp = client.delete(f"/api/outlets/{outlet_b.id}", headers=admin_headers)
        assert resp.status_code == 400
        assert resp.get_json() == {"error": "Cannot delete outlet with associated data. Deactivate it instead."}
        assert db.session.get(Sale, sale.get_json()["id"]).outlet_id == outlet_b.id

    def test_manager_lists_only_assigned(self, client, manager_headers, outlet_a, outlet_b):
        ids = [o["id"] for o in client.get("/api/outlets", headers=manager_headers).get_json()]
        assert ids == [outlet_a.id]


# =============================================================================
# USER ADMINISTRATION
# =============================================================================


class TestUserAdministration:

    def test_assign_outlets(self, client, admin_headers, manager_user, outlet_a, outlet_b):
        resp = client.put(
            f"/api/users/{manager_user.id}/outlets",
            json={"outlet_ids": [outlet_a.id, outlet_b.id], "default_outlet_id": outlet_b.id},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["assigned_outlet_ids"] == sorted([outlet_a.id, outlet_b.id])
        assert body["default_outlet_id"] == outlet_b.id

    def test_assign_unknown_outlet(self, client, admin_headers, manager_user):
        resp = client.put(f"/api/users/{manager_user.id}/outlets", json={"outlet_ids": [4242]}, headers=admin_headers)
        assert resp.status_code == 404

    def test_promote_customer(self, client, admin_headers, customer_user):
        resp = client.put(f"/api/users/{customer_user.id}/role", json={"role": "Manager"}, headers=admin_headers)
        assert resp.status_code == 200
        assert resp.get_json()["role"] == "manager"

    def test_admin_cannot_demote_or_deactivate_self(self, client, admin_headers, admin_user):
        demote = client.put(f"/api/users/{admin_user.id}/role", json={"role": "user"}, headers=admin_headers)
        assert demote.status_code == 400
        deactivate = client.put(f"/api/users/{admin_user.id}/status", json={"is_active": False}, headers=admin_headers)
        assert deactivate.status_code == 400

    def test_list_filtered_by_role(self, client, admin_headers, manager_user, customer_user):
        users = client.get("/api/users?role=manager", headers=admin_headers).get_json()
        assert [u["username"] for u in users] == ["manager"]
