"""
Cash reconciliation tests.

Verifies:
- deficit = expected - counted, per channel and in total
- one record per outlet per day; bulk and upload report duplicate dates
- the range summary counts deficit, surplus and balanced days
- the sales summary prefills expected cash from sales, expenses and payouts
"""

import io
from datetime import date

import pytest

from cafe_api.extensions import db
from cafe_api.models import Expense, OnlineSale, Sale
from cafe_api.time_utils import parse_iso_datetime


def _day(day, **amounts):
    body = {"reconciliation_date": day}
    body.update(amounts)
    return body


@pytest.fixture
def admin_at_a(admin_headers, outlet_a):
    return {**admin_headers, "X-Outlet-Id": str(outlet_a.id)}


class TestRecords:

    def test_deficits(self, client, admin_at_a):
        resp = client.post(
            "/api/cash-reconciliation",
            json=_day(
                "2024-06-01",
                expected_cash_cents=500000,
                expected_coins_cents=20000,
                expected_online_cents=300000,
                counted_cash_cents=480000,
                counted_coins_cents=20000,
                actual_online_cents=310000,
            ),
            headers=admin_at_a,
        )
        assert resp.status_code == 201
        record = resp.get_json()
        assert record["cash_deficit_cents"] == 20000
        assert record["coin_deficit_cents"] == 0
        assert record["online_deficit_cents"] == -10000
        assert record["expected_total_cents"] == 820000
        assert record["counted_total_cents"] == 810000
        assert record["total_deficit_cents"] == 10000
        assert record["reconciled_by"] == "admin"

    def test_missing_amounts_are_zero(self, client, admin_at_a):
        record = client.post("/api/cash-reconciliation", json=_day("2024-06-02"), headers=admin_at_a).get_json()
        assert record["expected_cash_cents"] == 0
        assert record["total_deficit_cents"] == 0

    def test_one_record_per_day(self, client, admin_at_a):
        client.post("/api/cash-reconciliation", json=_day("2024-06-01"), headers=admin_at_a)
        dup = client.post("/api/cash-reconciliation", json=_day("2024-06-01"), headers=admin_at_a)
        assert dup.status_code == 409

    def test_same_day_at_another_outlet(self, client, admin_headers, admin_at_a, outlet_b):
        client.post("/api/cash-reconciliation", json=_day("2024-06-01"), headers=admin_at_a)
        resp = client.post(
            "/api/cash-reconciliation", json=_day("2024-06-01"), headers={**admin_headers, "X-Outlet-Id": str(outlet_b.id)}
        )
        assert resp.status_code == 201

    def test_lookup_by_date(self, client, admin_at_a):
        client.post("/api/cash-reconciliation", json=_day("2024-06-01", counted_cash_cents=100), headers=admin_at_a)
        found = client.get("/api/cash-reconciliation/date/2024-06-01", headers=admin_at_a)
        assert found.get_json()["counted_cash_cents"] == 100
        assert client.get("/api/cash-reconciliation/date/2024-06-09", headers=admin_at_a).status_code == 404
        assert client.get("/api/cash-reconciliation/date/June-first", headers=admin_at_a).status_code == 400

    def test_moving_onto_a_taken_date(self, client, admin_at_a):
        client.post("/api/cash-reconciliation", json=_day("2024-06-01"), headers=admin_at_a)
        second = client.post("/api/cash-reconciliation", json=_day("2024-06-02"), headers=admin_at_a).get_json()
        resp = client.put(
            f"/api/cash-reconciliation/{second['id']}", json={"reconciliation_date": "2024-06-01"}, headers=admin_at_a
        )
        assert resp.status_code == 409

    def test_negative_amount_rejected(self, client, admin_at_a):
        resp = client.post(
            "/api/cash-reconciliation", json=_day("2024-06-01", counted_cash_cents=-1), headers=admin_at_a
        )
        assert resp.status_code == 400


class TestBulkAndUpload:

    def test_bulk_reports_duplicates(self, client, admin_at_a):
        client.post("/api/cash-reconciliation", json=_day("2024-06-01"), headers=admin_at_a)
        resp = client.post(
            "/api/cash-reconciliation/bulk",
            json={"records": [_day("2024-06-01"), _day("2024-06-02"), _day("2024-06-02"), _day("2024-06-03")]},
            headers=admin_at_a,
        )
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["created"] == 2
        assert body["duplicates"] == ["2024-06-01", "2024-06-02"]
        assert [r["reconciliation_date"] for r in body["records"]] == ["2024-06-02", "2024-06-03"]

    @pytest.mark.parametrize("records", [[], None, "x", [1]])
    def test_bulk_invalid(self, client, admin_at_a, records):
        resp = client.post("/api/cash-reconciliation/bulk", json={"records": records}, headers=admin_at_a)
        assert resp.status_code == 400

    def test_upload(self, client, admin_at_a):
        body = (
            "Date,CountedCash,CountedCoins,ActualOnline,Notes,ExpectedCash,ExpectedCoins\n"
            "# counts from the June sheet\n"
            "01/06/2024,4800,200,3100,short,5000,200\n"
            "02/06/2024,,,,,,\n"
            "not-a-date,1,1,1,,1,1\n"
        )
        resp = client.post(
            "/api/cash-reconciliation/upload",
            data={"file": (io.BytesIO(body.encode()), "june.csv")},
            headers=admin_at_a,
            content_type="multipart/form-data",
        )
        assert resp.status_code == 201
        result = resp.get_json()
        assert result["created"] == 2
        assert result["errors"] == ["Row 5: invalid date 'not-a-date'"]
        first = next(r for r in result["records"] if r["reconciliation_date"] == "2024-06-01")
        assert first["cash_deficit_cents"] == 20000
        assert first["notes"] == "short"


class TestSummaries:

    def test_range_summary(self, client, admin_at_a):
        client.post(
            "/api/cash-reconciliation/bulk",
            json={"records": [
                _day("2024-06-01", expected_cash_cents=1000, counted_cash_cents=900),
                _day("2024-06-02", expected_cash_cents=1000, counted_cash_cents=1100),
                _day("2024-06-03", expected_cash_cents=1000, counted_cash_cents=1000),
                _day("2024-07-01", expected_cash_cents=1000, counted_cash_cents=0),
            ]},
            headers=admin_at_a,
        )
        summary = client.get(
            "/api/cash-reconciliation/summary?start_date=2024-06-01&end_date=2024-06-30", headers=admin_at_a
        ).get_json()
        assert summary["record_count"] == 3
        assert summary["total_deficit_cents"] == 0
        assert summary["days_with_deficit"] == 1
        assert summary["days_with_surplus"] == 1
        assert summary["days_balanced"] == 1

    def test_range_summary_rejects_reversed_dates(self, client, admin_at_a):
        resp = client.get(
            "/api/cash-reconciliation/summary?start_date=2024-06-30&end_date=2024-06-01", headers=admin_at_a
        )
        assert resp.status_code == 400

    def test_sales_summary_for_date(self, client, admin_at_a, outlet_a, db_session):
        day = date(2024, 6, 1)
        db_session.add_all([
            Sale(outlet_id=outlet_a.id, sale_date=day, items=[], total_cents=50000, payment_method="Cash", recorded_by="t"),
            Sale(outlet_id=outlet_a.id, sale_date=day, items=[], total_cents=20000, payment_method="UPI", recorded_by="t"),
            Expense(outlet_id=outlet_a.id, expense_date=day, expense_type="Supplies", description="Milk",
                    amount_cents=5000, payment_method="Cash", recorded_by="t"),
            OnlineSale(outlet_id=outlet_a.id, platform="Zomato", order_id="Z-1",
                       order_at=parse_iso_datetime("2024-06-01T20:00:00"), payout_cents=30000, recorded_by="t"),
        ])
        db_session.commit()

        summary = client.get("/api/cash-reconciliation/sales-summary/2024-06-01", headers=admin_at_a).get_json()
        assert summary["sales_by_payment_method"] == {"Cash": 50000, "UPI": 20000}
        assert summary["total_sales_cents"] == 70000
        assert summary["expected_cash_cents"] == 45000
        assert summary["online_orders"] == 1
        assert summary["expected_online_cents"] == 30000
        assert db.session.query(Sale).count() == 2
