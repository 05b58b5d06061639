"""
Order and loyalty tests.

Verifies:
- Orders snapshot menu prices and add tax at ORDER_TAX_RATE
- Customers see only their own orders
- Delivery awards loyalty points once; cancellation rules hold
- Rewards redeem against the balance and never overdraw it
"""

import pytest

from conftest import _headers_for, _make_user
from cafe_api.extensions import db
from cafe_api.models import LoyaltyAccount, PointsTransaction, Reward
from cafe_api.services import loyalty_service, order_service


def _place(client, headers, items, **extra):
    return client.post("/api/orders", json={"items": items, **extra}, headers=headers)


# =============================================================================
# PLACING ORDERS
# =============================================================================


class TestPlaceOrder:

    def test_prices_and_tax(self, client, customer_headers, menu_items):
        coffee, brownie = menu_items
        resp = _place(client, customer_headers, [
            {"menu_item_id": coffee.id, "quantity": 2},
            {"menu_item_id": brownie.id, "quantity": 1},
        ])
        assert resp.status_code == 201
        order = resp.get_json()
        assert order["subtotal_cents"] == 39000
        assert order["tax_cents"] == 3900
        assert order["total_cents"] == 42900
        assert order["status"] == "pending"
        assert order["items"][0] == {
            "menu_item_id": coffee.id,
            "name": "Cappuccino",
            "quantity": 2,
            "unit_price_cents": 15000,
            "total_cents": 30000,
        }

    def test_snapshot_survives_price_change(self, client, customer_headers, menu_items):
        coffee, _ = menu_items
        order_id = _place(client, customer_headers, [{"menu_item_id": coffee.id, "quantity": 1}]).get_json()["id"]

        coffee.price_cents = 99900
        db.session.commit()

        order = client.get(f"/api/orders/{order_id}", headers=customer_headers).get_json()
        assert order["items"][0]["unit_price_cents"] == 15000

    @pytest.mark.parametrize(
        "items",
        [[], [{"menu_item_id": 1, "quantity": 0}], [{"menu_item_id": 1, "quantity": 101}], ["nope"], None],
    )
    def test_invalid_lines(self, client, customer_headers, menu_items, items):
        resp = client.post("/api/orders", json={"items": items}, headers=customer_headers)
        assert resp.status_code == 400

    def test_unknown_item(self, client, customer_headers, menu_items):
        resp = _place(client, customer_headers, [{"menu_item_id": 9999, "quantity": 1}])
        assert resp.status_code == 404

    @pytest.mark.parametrize("menu_item_id", [10 ** 30, -(10 ** 30), 1e30])
    def test_out_of_range_item_id(self, client, customer_headers, menu_items, menu_item_id):
        resp = _place(client, customer_headers, [{"menu_item_id": menu_item_id, "quantity": 1}])
        assert resp.status_code == 400

    def test_out_of_range_ids_in_path_and_header(self, client, customer_headers, menu_items):
        assert client.get(f"/api/orders/{10 ** 30}", headers=customer_headers).status_code == 404
        resp = _place(
            client, {**customer_headers, "X-Outlet-Id": str(10 ** 30)}, [{"menu_item_id": 1, "quantity": 1}]
        )
        assert resp.status_code == 400

    def test_unavailable_item(self, client, customer_headers, menu_items):
        coffee, _ = menu_items
        coffee.is_available = False
        db.session.commit()
        resp = _place(client, customer_headers, [{"menu_item_id": coffee.id, "quantity": 1}])
        assert resp.status_code == 400

    def test_item_from_another_outlet(self, client, customer_headers, menu_items, outlet_b):
        coffee, _ = menu_items
        headers = {**customer_headers, "X-Outlet-Id": str(outlet_b.id)}
        resp = _place(client, headers, [{"menu_item_id": coffee.id, "quantity": 1}])
        assert resp.status_code == 400

    def test_tax_rounds_half_up(self, app):
        from decimal import Decimal
        assert order_service.compute_tax_cents(5, Decimal("0.10")) == 1
        assert order_service.compute_tax_cents(4, Decimal("0.10")) == 0


# =============================================================================
# VISIBILITY
# =============================================================================


class TestOrderVisibility:

    def test_other_customers_cannot_read(self, client, customer_headers, admin_headers, menu_items, db_session):
        coffee, _ = menu_items
        order_id = _place(client, customer_headers, [{"menu_item_id": coffee.id, "quantity": 1}]).get_json()["id"]

        stranger = _headers_for(_make_user("stranger", "user"))
        assert client.get(f"/api/orders/{order_id}", headers=stranger).status_code == 403
        assert client.get("/api/orders/my", headers=stranger).get_json() == []
        assert client.get(f"/api/orders/{order_id}", headers=admin_headers).status_code == 200

    def test_admin_filters_by_status(self, client, customer_headers, admin_headers, menu_items):
        coffee, _ = menu_items
        _place(client, customer_headers, [{"menu_item_id": coffee.id, "quantity": 1}])
        assert len(client.get("/api/orders?status=pending", headers=admin_headers).get_json()) == 1
        assert client.get("/api/orders?status=delivered", headers=admin_headers).get_json() == []
        assert client.get("/api/orders?status=lost", headers=admin_headers).status_code == 400


# =============================================================================
# STATUS LIFECYCLE AND POINTS
# =============================================================================


class TestStatusAndPoints:

    def _order(self, client, headers, menu_items, quantity=2):
        coffee, _ = menu_items
        return _place(client, headers, [{"menu_item_id": coffee.id, "quantity": quantity}]).get_json()

    def test_delivery_awards_points_once(self, client, customer_user, customer_headers, admin_headers, menu_items):
        order = self._order(client, customer_headers, menu_items)
        # 2 x 15000 + 10% tax = 33000 cents -> 33 points
        resp = client.put(f"/api/orders/{order['id']}/status", json={"status": "Delivered"}, headers=admin_headers)
        assert resp.status_code == 200
        assert resp.get_json()["points_awarded"] == 33

        client.put(f"/api/orders/{order['id']}/status", json={"status": "ready"}, headers=admin_headers)
        client.put(f"/api/orders/{order['id']}/status", json={"status": "delivered"}, headers=admin_headers)

        db.session.expire_all()
        account = db.session.query(LoyaltyAccount).filter_by(user_id=customer_user.id).one()
        assert account.current_points == 33
        assert account.total_points_earned == 33
        assert db.session.query(PointsTransaction).filter_by(user_id=customer_user.id).count() == 1

    def test_customer_cancels_pending(self, client, customer_headers, menu_items):
        order = self._order(client, customer_headers, menu_items)
        resp = client.post(f"/api/orders/{order['id']}/cancel", headers=customer_headers)
        assert resp.get_json()["status"] == "cancelled"

    def test_cannot_cancel_once_preparing(self, client, customer_headers, admin_headers, menu_items):
        order = self._order(client, customer_headers, menu_items)
        client.put(f"/api/orders/{order['id']}/status", json={"status": "preparing"}, headers=admin_headers)
        resp = client.post(f"/api/orders/{order['id']}/cancel", headers=customer_headers)
        assert resp.status_code == 400

    def test_cancelled_is_terminal(self, client, customer_headers, admin_headers, menu_items):
        order = self._order(client, customer_headers, menu_items)
        client.post(f"/api/orders/{order['id']}/cancel", headers=customer_headers)
        resp = client.put(f"/api/orders/{order['id']}/status", json={"status": "delivered"}, headers=admin_headers)
        assert resp.status_code == 400


# =============================================================================
# LOYALTY
# =============================================================================


class TestLoyalty:

    @pytest.fixture
    def reward(self, db_session):
        reward = Reward(name="Free Brownie", points_cost=50, is_active=True)
        db_session.add(reward)
        db_session.commit()
        return reward

    def test_account_created_on_first_read(self, client, customer_headers):
        account = client.get("/api/loyalty/account", headers=customer_headers).get_json()
        assert account["current_points"] == 0
        assert account["tier"] == "Bronze"
        assert account["next_tier"] == "Silver"
        assert account["points_to_next_tier"] == 500

    @pytest.mark.parametrize(
        "earned,tier",
        [(0, "Bronze"), (499, "Bronze"), (500, "Silver"), (1500, "Gold"), (3000, "Platinum"), (9999, "Platinum")],
    )
    def test_tiers(self, earned, tier):
        assert loyalty_service.tier_info(earned)["tier"] == tier

    def test_redeem_requires_balance(self, client, customer_user, customer_headers, reward):
        resp = client.post(f"/api/loyalty/rewards/{reward.id}/redeem", headers=customer_headers)
        assert resp.status_code == 400
        assert resp.get_json() == {"error": "Insufficient points"}

        loyalty_service.award_points(customer_user.id, 60, description="Welcome bonus")
        ok = client.post(f"/api/loyalty/rewards/{reward.id}/redeem", headers=customer_headers)
        assert ok.status_code == 200
        body = ok.get_json()
        assert body["account"]["current_points"] == 10
        assert body["account"]["total_points_redeemed"] == 50
        assert body["transaction"]["points"] == -50

        again = client.post(f"/api/loyalty/rewards/{reward.id}/redeem", headers=customer_headers)
        assert again.status_code == 400

    def test_admin_adjustment_cannot_go_negative(self, client, customer_user, admin_headers):
        resp = client.post(
            "/api/loyalty/admin/adjust",
            json={"user_id": customer_user.id, "points": -5, "reason": "typo"},
            headers=admin_headers,
        )
        assert resp.status_code == 400

        ok = client.post(
            "/api/loyalty/admin/adjust",
            json={"user_id": customer_user.id, "points": 25, "reason": "goodwill"},
            headers=admin_headers,
        )
        assert ok.get_json()["current_points"] == 25

    def test_reward_admin_crud(self, client, admin_headers):
        created = client.post(
            "/api/loyalty/admin/rewards", json={"name": "Free Latte", "points_cost": 120}, headers=admin_headers
        )
        assert created.status_code == 201
        reward_id = created.get_json()["id"]

        client.put(f"/api/loyalty/admin/rewards/{reward_id}", json={"is_active": False}, headers=admin_headers)
        assert client.get("/api/loyalty/rewards").get_json() == []
        assert len(client.get("/api/loyalty/admin/rewards", headers=admin_headers).get_json()) == 1

