"""
Overhead cost and operational expense tests.

Verifies:
- overheads are spread per operating minute; shared ones count for every outlet
- defaults seed only into an empty catalogue
- operational expense rent comes from the month's offline Rent expenses
"""

from datetime import date

import pytest

from cafe_api.extensions import db
from cafe_api.models import Expense, OverheadCost


@pytest.fixture
def headers(admin_headers, outlet_a):
    return {**admin_headers, "X-Outlet-Id": str(outlet_a.id)}


# =============================================================================
# OVERHEAD COSTS
# =============================================================================


class TestOverheads:

    def test_allocation_per_minute(self, client, headers, outlet_b):
        client.post("/api/overhead-costs", json={"cost_type": "Rent", "monthly_cost_cents": 600000}, headers=headers)
        client.post(
            "/api/overhead-costs",
            json={"cost_type": "Labour", "monthly_cost_cents": 1500000, "shared": True},
            headers=headers,
        )
        db.session.add(OverheadCost(outlet_id=outlet_b.id, cost_type="Rent", monthly_cost_cents=900000))
        db.session.commit()

        resp = client.get("/api/overhead-costs/calculate?preparation_minutes=10", headers=headers)
        assert resp.status_code == 200
        result = resp.get_json()
        # 30 days x 11 hours = 19800 minutes
        assert [row["allocated_cents"] for row in result["overheads"]] == [757.58, 303.03]
        assert result["total_overhead_cents"] == 1060.61

    def test_inactive_overheads_are_ignored(self, client, headers):
        created = client.post(
            "/api/overhead-costs", json={"cost_type": "Rent", "monthly_cost_cents": 600000}, headers=headers
        ).get_json()
        client.put(f"/api/overhead-costs/{created['id']}", json={"is_active": False}, headers=headers)
        result = client.get("/api/overhead-costs/calculate?preparation_minutes=10", headers=headers).get_json()
        assert result["total_overhead_cents"] == 0

    def test_initialize_only_when_empty(self, client, headers):
        first = client.post("/api/overhead-costs/initialize", headers=headers).get_json()
        assert first["added"] == 3
        assert client.post("/api/overhead-costs/initialize", headers=headers).get_json()["added"] == 0
        types = [row["cost_type"] for row in client.get("/api/overhead-costs", headers=headers).get_json()]
        assert types == ["Electricity", "Labour", "Rent"]

    @pytest.mark.parametrize(
        "body",
        [
            {"cost_type": "Rent"},
            {"cost_type": "Rent", "monthly_cost_cents": 100, "operational_hours_per_day": 25},
            {"cost_type": "Rent", "monthly_cost_cents": 100, "working_days_per_month": 0},
        ],
    )
    def test_invalid(self, client, headers, body):
        assert client.post("/api/overhead-costs", json=body, headers=headers).status_code == 400

    def test_preparation_minutes_required(self, client, headers):
        assert client.get("/api/overhead-costs/calculate", headers=headers).status_code == 400


# =============================================================================
# OPERATIONAL EXPENSES
# =============================================================================


class TestOperationalExpenses:

    def _rent(self, outlet_id, day, amount_cents, source="Offline"):
        db.session.add(Expense(
            outlet_id=outlet_id,
            expense_date=day,
            expense_type="Rent",
            expense_source=source,
            description="Shop rent",
            amount_cents=amount_cents,
            recorded_by="manager",
        ))
        db.session.commit()

    def _body(self, **overrides):
        body = {
            "year": 2024,
            "month": 6,
            "cook_salary_cents": 1500000,
            "helper_salary_cents": 800000,
            "electricity_cents": 300000,
        }
        body.update(overrides)
        return body

    def test_rent_comes_from_expenses(self, client, headers, outlet_a, outlet_b):
        self._rent(outlet_a.id, date(2024, 6, 1), 3000000)
        self._rent(outlet_a.id, date(2024, 6, 30), 500000)
        self._rent(outlet_a.id, date(2024, 7, 1), 999999)
        self._rent(outlet_a.id, date(2024, 6, 15), 111111, source="Online")
        self._rent(outlet_b.id, date(2024, 6, 15), 222222)

        rent = client.get("/api/operational-expenses/calculate-rent/2024/6", headers=headers).get_json()
        assert rent["rent_cents"] == 3500000

        resp = client.post("/api/operational-expenses", json=self._body(), headers=headers)
        assert resp.status_code == 201
        record = resp.get_json()
        assert record["rent_cents"] == 3500000
        assert record["total_cents"] == 3500000 + 1500000 + 800000 + 300000
        assert record["payment_method"] == "Cash"

    def test_rent_cannot_be_entered(self, client, headers):
        resp = client.post("/api/operational-expenses", json=self._body(rent_cents=100), headers=headers)
        assert resp.status_code == 400

    def test_one_record_per_month(self, client, headers):
        assert client.post("/api/operational-expenses", json=self._body(), headers=headers).status_code == 201
        assert client.post("/api/operational-expenses", json=self._body(), headers=headers).status_code == 409

    def test_update_picks_up_new_rent(self, client, headers, outlet_a):
        record = client.post("/api/operational-expenses", json=self._body(), headers=headers).get_json()
        self._rent(outlet_a.id, date(2024, 6, 5), 2000000)

        resp = client.put(f"/api/operational-expenses/{record['id']}", json={"misc_cents": 10000}, headers=headers)
        updated = resp.get_json()
        assert updated["rent_cents"] == 2000000
        assert updated["total_cents"] == 2000000 + 1500000 + 800000 + 300000 + 10000

    def test_year_summary(self, client, headers):
        client.post("/api/operational-expenses", json=self._body(), headers=headers)
        client.post("/api/operational-expenses", json=self._body(month=7, cook_salary_cents=1600000), headers=headers)

        summary = client.get("/api/operational-expenses/year/2024", headers=headers).get_json()
        assert summary["months_recorded"] == 2
        assert summary["cook_salary_cents"] == 3100000
        assert [row["month"] for row in summary["months"]] == [6, 7]

        month = client.get("/api/operational-expenses/2024/7", headers=headers).get_json()
        assert month["cook_salary_cents"] == 1600000
        assert client.get("/api/operational-expenses/2024/8", headers=headers).status_code == 404
