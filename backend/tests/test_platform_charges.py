"""
Platform charge tests.

Verifies:
- one charge per outlet, platform and month (409 on a second)
- the period summary subtracts monthly charges from the payout
- price forecasts fall back to the platform's effective deduction
"""

from datetime import datetime

import pytest

from cafe_api.extensions import db
from cafe_api.models import OnlineSale
from cafe_api.time_utils import utcnow


@pytest.fixture
def headers(admin_headers, outlet_a):
    return {**admin_headers, "X-Outlet-Id": str(outlet_a.id)}


def _charge(client, headers, **overrides):
    body = {"platform": "Zomato", "year": 2024, "month": 6, "charges_cents": 5000, "charge_type": "Subscription"}
    body.update(overrides)
    return client.post("/api/platform-charges", json=body, headers=headers)


def _order(outlet_id, order_id, order_at, *, platform="Zomato", subtotal, deduction, packaging=0, discount=0):
    db.session.add(OnlineSale(
        outlet_id=outlet_id,
        platform=platform,
        order_id=order_id,
        order_at=order_at,
        ordered_items=[],
        bill_subtotal_cents=subtotal,
        packaging_cents=packaging,
        discount_cents=discount,
        platform_deduction_cents=deduction,
        payout_cents=subtotal + packaging - discount - deduction,
        recorded_by="manager",
    ))
    db.session.commit()


# =============================================================================
# CRUD
# =============================================================================


class TestCharges:

    def test_create_and_lookup(self, client, headers, outlet_a):
        resp = _charge(client, headers, platform="zomato")
        assert resp.status_code == 201
        charge = resp.get_json()
        assert charge["platform"] == "Zomato"
        assert charge["outlet_id"] == outlet_a.id
        assert charge["recorded_by"] == "admin"

        found = client.get("/api/platform-charges/Zomato/2024/6", headers=headers)
        assert found.get_json()["id"] == charge["id"]
        assert client.get("/api/platform-charges/Zomato/2024/7", headers=headers).status_code == 404

    def test_one_charge_per_month(self, client, headers):
        assert _charge(client, headers).status_code == 201
        dup = _charge(client, headers, charges_cents=9000)
        assert dup.status_code == 409
        assert "Use update instead" in dup.get_json()["error"]
        assert _charge(client, headers, platform="Swiggy").status_code == 201

    @pytest.mark.parametrize(
        "overrides",
        [{"platform": "UberEats"}, {"month": 13}, {"year": 2019}, {"charges_cents": None}, {"charges_cents": -1}],
    )
    def test_invalid(self, client, headers, overrides):
        assert _charge(client, headers, **overrides).status_code == 400

    def test_update_keeps_period(self, client, headers):
        charge_id = _charge(client, headers).get_json()["id"]
        moved = client.put(f"/api/platform-charges/{charge_id}", json={"month": 7}, headers=headers)
        assert moved.status_code == 400

        resp = client.put(f"/api/platform-charges/{charge_id}", json={"charges_cents": 7500}, headers=headers)
        assert resp.get_json()["charges_cents"] == 7500

    def test_manager_cannot_record(self, client, manager_headers):
        assert _charge(client, manager_headers).status_code == 403


# =============================================================================
# SUMMARY
# =============================================================================


class TestSummary:

    def test_net_payout_includes_monthly_charges(self, client, headers, outlet_a):
        _order(outlet_a.id, "Z-1", datetime(2024, 6, 3, 13, 0), subtotal=40000, deduction=8000, packaging=1000, discount=2000)
        _order(outlet_a.id, "Z-2", datetime(2024, 6, 20, 20, 0), subtotal=60000, deduction=12000, packaging=1000, discount=3000)
        _order(outlet_a.id, "S-1", datetime(2024, 6, 5, 12, 0), platform="Swiggy", subtotal=50000, deduction=9000)
        _charge(client, headers)
        _charge(client, headers, month=7, charges_cents=9999)
        _charge(client, headers, platform="Swiggy", charges_cents=7000)

        resp = client.get(
            "/api/platform-charges/summary?platform=zomato&start_date=2024-06-01&end_date=2024-06-30",
            headers=headers,
        )
        assert resp.status_code == 200
        summary = resp.get_json()
        assert summary["order_count"] == 2
        assert summary["item_subtotal_cents"] == 100000
        assert summary["monthly_charges_cents"] == 5000
        # 100000 + 2000 - 5000 - 20000 - 5000
        assert summary["net_payout_cents"] == 72000
        assert summary["effective_deduction_percent"] == 25.0

    def test_summary_needs_dates(self, client, headers):
        assert client.get("/api/platform-charges/summary", headers=headers).status_code == 400


# =============================================================================
# FORECAST DEDUCTION
# =============================================================================


class TestForecastDeduction:

    INPUTS = {
        "make_price_cents": 4000,
        "packaging_cost_cents": 1000,
        "shop_price_cents": 12000,
        "online_price_cents": 15000,
        "online_discount_percent": 10,
    }

    def _seed_today(self, client, headers, outlet_id):
        now = utcnow()
        _order(outlet_id, "Z-T1", now, subtotal=10000, deduction=2000)
        _charge(client, headers, year=now.year, month=now.month, charges_cents=500)

    def test_platform_fills_missing_deduction(self, client, headers, outlet_a):
        self._seed_today(client, headers, outlet_a.id)
        resp = client.post("/api/price-forecasts/calculate", json={**self.INPUTS, "platform": "Zomato"}, headers=headers)
        assert resp.status_code == 200
        result = resp.get_json()
        # (2000 + 500) / 10000
        assert result["online_deduction_percent"] == 25.0
        assert result["online_payout_cents"] == 10800

    def test_explicit_deduction_wins(self, client, headers, outlet_a):
        self._seed_today(client, headers, outlet_a.id)
        body = {**self.INPUTS, "platform": "Zomato", "online_deduction_percent": 0}
        result = client.post("/api/price-forecasts/calculate", json=body, headers=headers).get_json()
        assert result["online_deduction_percent"] == 0
        assert result["online_payout_cents"] == 14400

    def test_no_orders_means_no_deduction(self, client, headers):
        body = {**self.INPUTS, "platform": "Swiggy"}
        assert client.post("/api/price-forecasts/calculate", json=body, headers=headers).get_json()["online_deduction_percent"] == 0
