"""
Delivery-platform order tests: recording, duplicates, KPT analysis and uploads.
"""

import io

import pytest

from cafe_api.extensions import db
from cafe_api.models import OnlineSale


def _sale(order_id="Z-1001", **overrides):
    body = {
        "platform": "zomato",
        "order_id": order_id,
        "order_at": "2024-06-01T13:30:00",
        "ordered_items": "2 x Cold Coffee, 1 x Brownie",
        "bill_subtotal_cents": 48000,
        "discount_cents": 5000,
        "platform_deduction_cents": 9000,
        "payout_cents": 34000,
        "kpt_minutes": 18,
    }
    body.update(overrides)
    return body


def _record(client, headers, **overrides):
    resp = client.post("/api/online-sales", json=_sale(**overrides), headers=headers)
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()


class TestRecording:

    def test_create(self, client, manager_headers, outlet_a):
        sale = _record(client, manager_headers)
        assert sale["platform"] == "Zomato"
        assert sale["outlet_id"] == outlet_a.id
        assert sale["ordered_items"] == [
            {"name": "Cold Coffee", "quantity": 2},
            {"name": "Brownie", "quantity": 1},
        ]
        assert sale["recorded_by"] == "manager"

    def test_duplicate_order_id_per_platform(self, client, manager_headers):
        _record(client, manager_headers)
        dup = client.post("/api/online-sales", json=_sale(platform="Zomato"), headers=manager_headers)
        assert dup.status_code == 409
        # The same id on the other platform is a different order
        _record(client, manager_headers, platform="Swiggy")

    @pytest.mark.parametrize(
        "overrides",
        [
            {"platform": "UberEats"},
            {"order_id": None},
            {"payout_cents": None},
            {"order_at": "not a date"},
            {"rating": 6},
            {"ordered_items": [{"name": "Tea", "quantity": 0}]},
            {"ordered_items": 12},
        ],
    )
    def test_invalid(self, client, manager_headers, overrides):
        resp = client.post("/api/online-sales", json=_sale(**overrides), headers=manager_headers)
        assert resp.status_code == 400

    def test_update_and_delete(self, client, manager_headers):
        sale = _record(client, manager_headers)
        resp = client.put(
            f"/api/online-sales/{sale['id']}", json={"rating": 4.5, "review": "Great cold coffee"}, headers=manager_headers
        )
        assert resp.get_json()["rating"] == 4.5

        reviews = client.get("/api/online-sales/reviews?min_rating=4", headers=manager_headers).get_json()
        assert [r["id"] for r in reviews] == [sale["id"]]

        assert client.delete(f"/api/online-sales/{sale['id']}", headers=manager_headers).status_code == 200
        assert client.get(f"/api/online-sales/{sale['id']}", headers=manager_headers).status_code == 404

    def test_filters(self, client, manager_headers):
        _record(client, manager_headers, order_id="Z-1")
        _record(client, manager_headers, order_id="S-1", platform="Swiggy", order_at="2024-06-03T10:00:00")

        swiggy = client.get("/api/online-sales?platform=swiggy", headers=manager_headers).get_json()
        assert [s["order_id"] for s in swiggy] == ["S-1"]

        june_first = client.get(
            "/api/online-sales?start_date=2024-06-01&end_date=2024-06-01", headers=manager_headers
        ).get_json()
        assert [s["order_id"] for s in june_first] == ["Z-1"]

    def test_daily_income(self, client, manager_headers):
        _record(client, manager_headers, order_id="Z-1")
        _record(client, manager_headers, order_id="Z-2", payout_cents=10000)
        income = client.get("/api/online-sales/daily-income", headers=manager_headers).get_json()
        assert income == [{
            "date": "2024-06-01",
            "platform": "Zomato",
            "orders": 2,
            "bill_subtotal_cents": 96000,
            "discount_cents": 10000,
            "platform_deduction_cents": 18000,
            "payout_cents": 44000,
        }]

    def test_bulk_delete_stays_in_outlet(self, client, admin_headers, manager_headers, outlet_b):
        mine = _record(client, manager_headers, order_id="Z-1")
        other = _record(client, {**admin_headers, "X-Outlet-Id": str(outlet_b.id)}, order_id="Z-2")

        resp = client.post(
            "/api/online-sales/bulk-delete",
            json={"ids": [mine["id"], other["id"]]},
            headers={**admin_headers, "X-Outlet-Id": str(outlet_b.id)},
        )
        assert resp.get_json()["deleted"] == 1
        assert db.session.get(OnlineSale, mine["id"]) is not None


class TestKptAnalysis:

    def test_kpt_split_across_units(self, client, manager_headers):
        # 20 min over 4 units -> 5 min per unit
        _record(client, manager_headers, order_id="Z-1", kpt_minutes=20, ordered_items="2 x Coffee, 2 x Brownie")
        _record(
            client, manager_headers,
            order_id="Z-2", kpt_minutes=12, ordered_items="1 x Coffee", order_at="2024-06-03T09:00:00",
        )
        # Ignored: no kitchen time
        _record(client, manager_headers, order_id="Z-3", kpt_minutes=0, ordered_items="3 x Coffee")

        body = client.get("/api/online-sales/kpt-analysis", headers=manager_headers).get_json()
        rows = body["items"]
        assert [r["item_name"] for r in rows] == ["Coffee", "Brownie"]
        coffee, brownie = rows
        assert coffee["order_count"] == 2
        assert coffee["total_quantity"] == 3
        assert coffee["average_kpt"] == 11.0
        assert coffee["min_kpt"] == 10.0
        assert coffee["max_kpt"] == 12.0
        assert coffee["std_dev_kpt"] == 1.0
        assert brownie["average_kpt"] == 10.0

        assert body["summary"] == {
            "total_orders_analyzed": 2,
            "total_menu_items": 2,
            "start_date": "2024-06-01",
            "end_date": "2024-06-03",
            "platform": "All Platforms",
            "average_kpt": 16.0,
            "min_kpt": 12.0,
            "max_kpt": 20.0,
        }

    def test_empty_summary_keeps_requested_range(self, client, manager_headers):
        resp = client.get(
            "/api/online-sales/kpt-analysis?platform=Swiggy&start_date=2024-05-01&end_date=2024-05-31",
            headers=manager_headers,
        )
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["items"] == []
        assert body["summary"]["total_orders_analyzed"] == 0
        assert body["summary"]["start_date"] == "2024-05-01"
        assert body["summary"]["end_date"] == "2024-05-31"
        assert body["summary"]["platform"] == "Swiggy"
        assert body["summary"]["average_kpt"] == 0.0


class TestUpload:

    HEADER = (
        "OrderId,CustomerName,OrderDate,DistanceKm,OrderedItems,BillSubtotal,Packaging,"
        "Discount,PlatformDeduction,Payout,Rating,Review,KPT,RWT\n"
    )

    def _upload(self, client, headers, body, platform="Swiggy"):
        data = {"file": (io.BytesIO(body.encode()), "swiggy.csv")}
        if platform is not None:
            data["platform"] = platform
        return client.post("/api/online-sales/upload", data=data, headers=headers, content_type="multipart/form-data")

    def test_upload(self, client, manager_headers):
        body = self.HEADER + (
            'S-1,Asha,01/06/2024 12:30,2.5,"1 x Latte, 2 x Cookie",Rs. 450,20,50,90,330,5,Loved it,14,6\n'
            "S-2,Ravi,02/06/2024,,Latte,200,,,,₹150,,,,\n"
            "S-3,Bad,someday,,Latte,200,,,,150,,,,\n"
            ",No id,02/06/2024,,Latte,200,,,,150,,,,\n"
        )
        resp = self._upload(client, manager_headers, body)
        assert resp.status_code == 201
        result = resp.get_json()
        assert result["platform"] == "Swiggy"
        assert result["created"] == 2
        assert result["duplicates"] == []
        assert result["total_cents"] == 48000
        assert result["skipped"] == 1
        assert result["errors"] == ["Row 4: invalid order date 'someday'"]

        first = db.session.query(OnlineSale).filter_by(order_id="S-1").one()
        assert first.payout_cents == 33000
        assert first.bill_subtotal_cents == 45000
        assert first.ordered_items == [{"name": "Latte", "quantity": 1}, {"name": "Cookie", "quantity": 2}]

        again = self._upload(client, manager_headers, body).get_json()
        assert again["created"] == 0
        assert again["duplicates"] == ["S-1", "S-2"]

    def test_platform_required(self, client, manager_headers):
        resp = self._upload(client, manager_headers, self.HEADER + "S-1,,2024-06-01,,Latte,1,,,,1,,,,\n", platform=None)
        assert resp.status_code == 400

    def test_nothing_usable(self, client, manager_headers):
        resp = self._upload(client, manager_headers, self.HEADER)
        assert resp.status_code == 400
        assert resp.get_json()["processed"] == 0
