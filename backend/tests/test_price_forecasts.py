"""
Price forecast tests: profit arithmetic, revision history and finalization.
"""

import pytest

from cafe_api.extensions import db
from cafe_api.models import MenuItem
from cafe_api.services.forecast_service import compute_profits


INPUTS = {
    "make_price_cents": 4000,
    "packaging_cost_cents": 1000,
    "shop_price_cents": 12000,
    "shop_delivery_price_cents": 14000,
    "online_price_cents": 15000,
    "online_discount_percent": 10,
    "online_deduction_percent": 25,
}


class TestComputeProfits:

    def test_worked_example(self):
        # base 16000 -> after 10% discount 14400 -> after 25% deduction 10800
        assert compute_profits(**INPUTS) == {
            "online_payout_cents": 10800,
            "online_profit_cents": 6800,
            "offline_profit_cents": 8000,
            "takeaway_profit_cents": 9000,
        }

    def test_losses_floor_at_zero(self):
        result = compute_profits(make_price_cents=20000, shop_price_cents=15000, online_price_cents=1000)
        assert result["online_profit_cents"] == 0
        assert result["offline_profit_cents"] == 0
        assert result["takeaway_profit_cents"] == 0

    def test_half_cent_rounds_up(self):
        result = compute_profits(make_price_cents=0, online_price_cents=1, online_discount_percent=50)
        assert result["online_payout_cents"] == 1

    def test_preview_endpoint(self, client, manager_headers):
        resp = client.post("/api/price-forecasts/calculate", json=INPUTS, headers=manager_headers)
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["online_payout_cents"] == 10800
        assert body["shop_price_cents"] == 12000

    @pytest.mark.parametrize("field", ["online_discount_percent", "online_deduction_percent"])
    def test_percent_out_of_range(self, client, manager_headers, field):
        resp = client.post("/api/price-forecasts/calculate", json={**INPUTS, field: 101}, headers=manager_headers)
        assert resp.status_code == 400


class TestForecastLifecycle:

    @pytest.fixture
    def forecast(self, client, manager_headers, menu_items):
        coffee, _ = menu_items
        resp = client.post("/api/price-forecasts", json={**INPUTS, "menu_item_id": coffee.id}, headers=manager_headers)
        assert resp.status_code == 201, resp.get_json()
        return resp.get_json()

    def test_create_stores_results(self, forecast, outlet_a):
        assert forecast["menu_item_name"] == "Cappuccino"
        assert forecast["outlet_id"] == outlet_a.id
        assert forecast["online_profit_cents"] == 6800
        assert forecast["history"] == []
        assert forecast["is_finalized"] is False

    @pytest.mark.parametrize("missing", ["menu_item_id", "make_price_cents", "shop_price_cents"])
    def test_required_fields(self, client, manager_headers, menu_items, missing):
        coffee, _ = menu_items
        body = {**INPUTS, "menu_item_id": coffee.id}
        del body[missing]
        assert client.post("/api/price-forecasts", json=body, headers=manager_headers).status_code == 400

    def test_update_appends_history(self, client, manager_headers, forecast):
        resp = client.put(
            f"/api/price-forecasts/{forecast['id']}", json={"shop_price_cents": 13000}, headers=manager_headers
        )
        body = resp.get_json()
        assert body["offline_profit_cents"] == 9000
        assert len(body["history"]) == 1
        snapshot = body["history"][0]
        assert snapshot["shop_price_cents"] == 12000
        assert snapshot["offline_profit_cents"] == 8000
        assert snapshot["changed_by"] == "manager"

        client.put(f"/api/price-forecasts/{forecast['id']}", json={"make_price_cents": 5000}, headers=manager_headers)
        again = client.get(f"/api/price-forecasts/{forecast['id']}", headers=manager_headers).get_json()
        assert len(again["history"]) == 2

    def test_filters_by_menu_item(self, client, manager_headers, forecast, menu_items):
        coffee, brownie = menu_items
        for_coffee = client.get(f"/api/price-forecasts/menu-item/{coffee.id}", headers=manager_headers).get_json()
        for_brownie = client.get(f"/api/price-forecasts/menu-item/{brownie.id}", headers=manager_headers).get_json()
        assert [f["id"] for f in for_coffee] == [forecast["id"]]
        assert for_brownie == []

    def test_finalize_copies_prices(self, client, admin_headers, forecast, menu_items):
        coffee, _ = menu_items
        resp = client.post(f"/api/price-forecasts/{forecast['id']}/finalize", headers=admin_headers)
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["forecast"]["is_finalized"] is True
        assert body["forecast"]["finalized_by"] == "admin"
        assert body["menu_item"]["price_cents"] == 12000
        assert body["menu_item"]["online_price_cents"] == 15000

        db.session.expire_all()
        assert db.session.get(MenuItem, coffee.id).price_cents == 12000

    def test_finalized_is_frozen(self, client, admin_headers, manager_headers, forecast):
        client.post(f"/api/price-forecasts/{forecast['id']}/finalize", headers=admin_headers)

        update = client.put(f"/api/price-forecasts/{forecast['id']}", json={"shop_price_cents": 1}, headers=manager_headers)
        delete = client.delete(f"/api/price-forecasts/{forecast['id']}", headers=manager_headers)
        again = client.post(f"/api/price-forecasts/{forecast['id']}/finalize", headers=admin_headers)
        assert update.status_code == delete.status_code == again.status_code == 400

    def test_delete(self, client, manager_headers, forecast):
        assert client.delete(f"/api/price-forecasts/{forecast['id']}", headers=manager_headers).status_code == 200
        assert client.get(f"/api/price-forecasts/{forecast['id']}", headers=manager_headers).status_code == 404
