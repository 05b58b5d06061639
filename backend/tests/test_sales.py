"""
Counter sales and expense tests, including spreadsheet uploads.
"""

import io

import pytest
from openpyxl import Workbook

from cafe_api.extensions import db
from cafe_api.models import Expense, Sale


def _upload(client, url, headers, content, filename):
    return client.post(
        url,
        data={"file": (io.BytesIO(content), filename)},
        headers=headers,
        content_type="multipart/form-data",
    )


# =============================================================================
# SALES
# =============================================================================


class TestSales:

    def test_total_from_items(self, client, manager_headers, outlet_a):
        resp = client.post(
            "/api/sales",
            json={
                "sale_date": "2024-06-01",
                "payment_method": "upi",
                "items": [
                    {"item_name": "Latte", "quantity": 2, "unit_price_cents": 18000},
                    {"item_name": "Cookie", "quantity": 1, "unit_price_cents": 6000, "total_cents": 5000},
                ],
            },
            headers=manager_headers,
        )
        assert resp.status_code == 201
        sale = resp.get_json()
        assert sale["total_cents"] == 41000
        assert sale["payment_method"] == "UPI"
        assert sale["outlet_id"] == outlet_a.id

    def test_total_only(self, client, manager_headers):
        sale = client.post(
            "/api/sales", json={"sale_date": "2024-06-01", "total_cents": 9900}, headers=manager_headers
        ).get_json()
        assert sale["total_cents"] == 9900
        assert sale["payment_method"] == "Cash"

    @pytest.mark.parametrize(
        "payload",
        [
            {"sale_date": "2024-06-01"},
            {"total_cents": 100},
            {"sale_date": "2024-06-01", "total_cents": 100, "payment_method": "Barter"},
            {"sale_date": "2024-06-01", "items": [{"item_name": "Latte", "quantity": 0, "unit_price_cents": 1}]},
            {"sale_date": "2024-06-01", "items": "Latte"},
        ],
    )
    def test_invalid(self, client, manager_headers, payload):
        assert client.post("/api/sales", json=payload, headers=manager_headers).status_code == 400

    def test_daily_summary(self, client, manager_headers):
        client.post(
            "/api/sales",
            json={"sale_date": "2024-06-01", "items": [{"item_name": "Latte", "quantity": 3, "unit_price_cents": 100}]},
            headers=manager_headers,
        )
        client.post(
            "/api/sales", json={"sale_date": "2024-06-01", "total_cents": 500, "payment_method": "Card"}, headers=manager_headers
        )
        client.post("/api/sales", json={"sale_date": "2024-06-02", "total_cents": 700}, headers=manager_headers)

        summary = client.get("/api/sales/summary?date=2024-06-01", headers=manager_headers).get_json()
        assert summary["transactions"] == 2
        assert summary["items_sold"] == 3
        assert summary["total_cents"] == 800
        assert summary["by_payment_method"] == {"Cash": 300, "Card": 500}

    def test_update_recomputes_total(self, client, manager_headers):
        sale = client.post("/api/sales", json={"sale_date": "2024-06-01", "total_cents": 100}, headers=manager_headers).get_json()
        resp = client.put(
            f"/api/sales/{sale['id']}",
            json={"items": [{"item_name": "Mocha", "quantity": 2, "unit_price_cents": 2500}]},
            headers=manager_headers,
        )
        assert resp.get_json()["total_cents"] == 5000

    def test_only_admin_deletes(self, client, admin_headers, manager_headers):
        sale = client.post("/api/sales", json={"sale_date": "2024-06-01", "total_cents": 100}, headers=manager_headers).get_json()
        assert client.delete(f"/api/sales/{sale['id']}", headers=manager_headers).status_code == 403
        assert client.delete(f"/api/sales/{sale['id']}", headers=admin_headers).status_code == 200

    def test_date_range(self, client, manager_headers):
        for day in ("2024-06-01", "2024-06-15", "2024-07-01"):
            client.post("/api/sales", json={"sale_date": day, "total_cents": 100}, headers=manager_headers)
        june = client.get("/api/sales?start_date=2024-06-01&end_date=2024-06-30", headers=manager_headers).get_json()
        assert [s["sale_date"] for s in june] == ["2024-06-15", "2024-06-01"]
        assert client.get("/api/sales?start_date=2024-07-01&end_date=2024-06-01", headers=manager_headers).status_code == 400


class TestSalesUpload:

    def test_csv_groups_lines_under_dated_rows(self, client, manager_headers, outlet_a):
        body = (
            "Date,ItemName,Quantity,Price,TotalSale,PaymentMethod\n"
            "01/06/2024,Latte,2,180,,upi\n"
            ",Cookie,1,60,50,\n"
            "02/06/2024,Mocha,1,Rs. 200,,\n"
            ",Muffin,x,90,,\n"
        ).encode()
        resp = _upload(client, "/api/sales/upload", manager_headers, body, "sales.csv")
        assert resp.status_code == 201
        result = resp.get_json()
        assert result["processed"] == 2
        assert result["errors"] == ["Row 5: invalid quantity 'x'"]
        assert result["total_cents"] == 61000

        first, second = result["sales"]
        assert first["payment_method"] == "UPI"
        assert [i["item_name"] for i in first["items"]] == ["Latte", "Cookie"]
        assert first["total_cents"] == 41000
        assert second["total_cents"] == 20000
        assert second["outlet_id"] == outlet_a.id

    def test_xlsx(self, client, manager_headers):
        wb = Workbook()
        ws = wb.active
        ws.append(["Date", "ItemName", "Quantity", "Price", "TotalSale", "PaymentMethod"])
        ws.append(["2024-06-01", "Latte", 1, 180, None, "Cash"])
        buffer = io.BytesIO()
        wb.save(buffer)

        resp = _upload(client, "/api/sales/upload", manager_headers, buffer.getvalue(), "sales.xlsx")
        assert resp.status_code == 201
        assert db.session.query(Sale).count() == 1

    def test_no_rows(self, client, manager_headers):
        resp = _upload(client, "/api/sales/upload", manager_headers, b"Date,ItemName\n", "sales.csv")
        assert resp.status_code == 400
        assert resp.get_json()["processed"] == 0


# =============================================================================
# EXPENSES
# =============================================================================


@pytest.mark.usefixtures("expense_types")
class TestExpenses:

    def _expense(self, **overrides):
        body = {
            "expense_date": "2024-06-01",
            "expense_type": "Supplies",
            "description": "Milk crates",
            "amount_cents": 125000,
        }
        body.update(overrides)
        return body

    def test_create_defaults(self, client, manager_headers):
        resp = client.post("/api/expenses", json=self._expense(), headers=manager_headers)
        assert resp.status_code == 201
        expense = resp.get_json()
        assert expense["expense_source"] == "Offline"
        assert expense["payment_method"] == "Cash"
        assert expense["recorded_by"] == "manager"

    @pytest.mark.parametrize(
        "overrides",
        [
            {"amount_cents": 0},
            {"description": None},
            {"expense_date": "tomorrow"},
            {"expense_source": "Barter"},
            {"expense_type": "Lottery"},
            {"expense_type": "Supplies", "expense_source": "Online"},
        ],
    )
    def test_invalid(self, client, manager_headers, overrides):
        assert client.post("/api/expenses", json=self._expense(**overrides), headers=manager_headers).status_code == 400

    def test_summary_by_type(self, client, manager_headers):
        client.post("/api/expenses", json=self._expense(), headers=manager_headers)
        client.post("/api/expenses", json=self._expense(amount_cents=5000), headers=manager_headers)
        client.post("/api/expenses", json=self._expense(expense_type="Rent", amount_cents=3000000), headers=manager_headers)

        summary = client.get("/api/expenses/summary", headers=manager_headers).get_json()
        assert summary["total_cents"] == 3130000
        assert summary["count"] == 3
        assert summary["by_type"] == [
            {"expense_type": "Rent", "count": 1, "total_cents": 3000000},
            {"expense_type": "Supplies", "count": 2, "total_cents": 130000},
        ]

        rent = client.get("/api/expenses?expense_type=Rent", headers=manager_headers).get_json()
        assert len(rent) == 1

    def test_upload(self, client, manager_headers):
        body = (
            "Date,ExpenseType,Description,Amount,Vendor,PaymentMethod,InvoiceNumber,Notes\n"
            "01/06/2024,Supplies,Milk,\"INR 1,250.50\",Nandini,card,INV-1,\n"
            "02/06/2024,Rent,June rent,30000,,,,\n"
            "03/06/2024,Supplies,,100,,,,\n"
        ).encode()
        resp = _upload(client, "/api/expenses/upload", manager_headers, body, "expenses.csv")
        assert resp.status_code == 201
        result = resp.get_json()
        assert result["processed"] == 2
        assert result["skipped"] == 1
        assert result["total_cents"] == 3125050
        milk = next(e for e in result["expenses"] if e["description"] == "Milk")
        assert milk["amount_cents"] == 125050
        assert milk["payment_method"] == "Card"
        assert db.session.query(Expense).count() == 2

    def test_upload_reports_unknown_type(self, client, manager_headers):
        body = (
            "Date,ExpenseType,Description,Amount\n"
            "01/06/2024,supplies,Milk,100\n"
            "02/06/2024,Lottery,Tickets,500\n"
        ).encode()
        result = _upload(client, "/api/expenses/upload", manager_headers, body, "expenses.csv").get_json()
        assert result["processed"] == 1
        assert result["errors"] == ["Row 3: unknown expense type 'Lottery'"]
        assert result["expenses"][0]["expense_type"] == "Supplies"
