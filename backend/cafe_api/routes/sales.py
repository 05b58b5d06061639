# Overview: Flask API routes for counter sales and expenses, including spreadsheet uploads.

"""
Sales & Expense routes.

SECURITY: admin or manager for everything except deletes (admin only).
Lists and summaries are scoped to the read outlet; creates and uploads land
on the write outlet.

Uploads are multipart (field "file", .csv/.txt/.tsv/.xlsx). Bad rows are
skipped and reported, never fatal; the response carries the import summary.
"""

from flask import Blueprint, current_app, jsonify, request

from ..decorators import current_identity, require_admin, require_admin_or_manager
from ..errors import ValidationError
from ..models.finance import EXPENSE_SOURCES
from ..models.sales import PAYMENT_METHODS
from ..models.security import FILE_OPERATION, LOW
from ..multipart import read_upload
from ..services import audit_service, expense_type_service, import_service, outlet_service, sales_service
from ..validation import (
    cents_field,
    choice_field,
    date_field,
    get_json_payload,
    int_field,
    query_date,
    text_field,
)
from cafe_api.time_utils import utcnow


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")
expenses_bp = Blueprint("expenses", __name__, url_prefix="/api/expenses")


def _owned(record):
    outlet_service.ensure_record_outlet(current_identity(), record.outlet_id)
    return record


def _date_range():
    start = query_date("start_date")
    end = query_date("end_date")
    if start and end and start > end:
        raise ValidationError("start_date must be on or before end_date")
    return start, end


def _log_upload(kind: str, filename: str | None, outlet_id: int, processed: int) -> None:
    identity = current_identity()
    audit_service.log_event(
        category=FILE_OPERATION,
        event_type="FILE_UPLOADED",
        success=True,
        severity=LOW,
        user_id=identity.user_id,
        username=identity.username,
        outlet_id=outlet_id,
        reason=f"{kind}: {filename} ({processed} records)",
    )


# ---------------------------------------------------------------------------
# Sales
# ---------------------------------------------------------------------------

def _sale_items(data: dict) -> list[dict] | None:
    raw_items = data.get("items")
    if raw_items is None:
        return None
    if not isinstance(raw_items, list):
        raise ValidationError("items must be a list")
    items = []
    for index, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{index}] must be an object")
        quantity = int_field(raw, "quantity", required=True, minimum=1)
        unit_price = cents_field(raw, "unit_price_cents", required=True)
        total = cents_field(raw, "total_cents")
        items.append({
            "menu_item_id": int_field(raw, "menu_item_id", minimum=1),
            "item_name": text_field(raw, "item_name", required=True, max_length=128),
            "quantity": quantity,
            "unit_price_cents": unit_price,
            "total_cents": total if total is not None else quantity * unit_price,
        })
    return items


def _sale_payload(data: dict, *, partial: bool) -> dict:
    payload = {
        "sale_date": date_field(data, "sale_date", required=not partial),
        "items": _sale_items(data),
        "total_cents": cents_field(data, "total_cents"),
        "payment_method": choice_field(data, "payment_method", PAYMENT_METHODS, case_insensitive=True),
        "notes": text_field(data, "notes"),
    }
    if not partial and not payload["items"] and payload["total_cents"] is None:
        raise ValidationError("Provide items or total_cents")
    return payload


@sales_bp.get("")
@require_admin_or_manager
def list_sales_route():
    outlet_id = outlet_service.require_read_outlet(current_identity())
    start, end = _date_range()
    return jsonify([sale.to_dict() for sale in sales_service.list_sales(outlet_id=outlet_id, start=start, end=end)])


@sales_bp.get("/summary")
@require_admin_or_manager
def sales_summary_route():
    outlet_id = outlet_service.require_read_outlet(current_identity())
    day = query_date("date") or utcnow().date()
    return jsonify(sales_service.daily_sales_summary(day, outlet_id=outlet_id))


@sales_bp.get("/<int:sale_id>")
@require_admin_or_manager
def get_sale_route(sale_id: int):
    return jsonify(_owned(sales_service.get_sale(sale_id)).to_dict())


@sales_bp.post("")
@require_admin_or_manager
def create_sale_route():
    identity = current_identity()
    outlet_id = outlet_service.require_write_outlet(identity)
    payload = _sale_payload(get_json_payload(), partial=False)
    sale = sales_service.create_sale(payload, outlet_id=outlet_id, recorded_by=identity.username)
    return jsonify(sale.to_dict()), 201


@sales_bp.put("/<int:sale_id>")
@require_admin_or_manager
def update_sale_route(sale_id: int):
    _owned(sales_service.get_sale(sale_id))
    payload = _sale_payload(get_json_payload(), partial=True)
    return jsonify(sales_service.update_sale(sale_id, payload).to_dict())


@sales_bp.delete("/<int:sale_id>")
@require_admin
def delete_sale_route(sale_id: int):
    _owned(sales_service.get_sale(sale_id))
    sales_service.delete_sale(sale_id)
    return jsonify({"message": "Sale deleted"})


@sales_bp.post("/upload")
@require_admin_or_manager
def upload_sales_route():
    """Columns: Date, ItemName, Quantity, Price, TotalSale, PaymentMethod."""
    identity = current_identity()
    outlet_id = outlet_service.require_write_outlet(identity)
    upload, _parts = read_upload()
    rows = import_service.read_rows(upload.content, upload.filename)
    result = import_service.import_sales(rows, identity.username)
    if not result.records:
        current_app.logger.warning("Sales upload %r contained no usable rows", upload.filename)
        return jsonify({"error": "No valid sales found in the uploaded file", **result.summary()}), 400

    sales = sales_service.save_imported_sales(result.records, outlet_id=outlet_id)
    _log_upload("sales", upload.filename, outlet_id, len(sales))
    return jsonify({**result.summary(), "sales": [sale.to_dict() for sale in sales]}), 201


# ---------------------------------------------------------------------------
# Expenses
# ---------------------------------------------------------------------------

def _expense_payload(data: dict, *, partial: bool) -> dict:
    return {
        "expense_date": date_field(data, "expense_date", required=not partial),
        "expense_type": text_field(data, "expense_type", required=not partial, max_length=64),
        "expense_source": choice_field(data, "expense_source", EXPENSE_SOURCES, case_insensitive=True),
        "description": text_field(data, "description", required=not partial, max_length=255),
        "amount_cents": int_field(data, "amount_cents", required=not partial, minimum=1),
        "vendor": text_field(data, "vendor", max_length=128),
        "payment_method": choice_field(data, "payment_method", PAYMENT_METHODS, case_insensitive=True),
        "invoice_number": text_field(data, "invoice_number", max_length=64),
        "notes": text_field(data, "notes"),
    }


@expenses_bp.get("")
@require_admin_or_manager
def list_expenses_route():
    outlet_id = outlet_service.require_read_outlet(current_identity())
    start, end = _date_range()
    expenses = sales_service.list_expenses(
        outlet_id=outlet_id,
        start=start,
        end=end,
        expense_type=request.args.get("expense_type") or None,
    )
    return jsonify([expense.to_dict() for expense in expenses])


@expenses_bp.get("/summary")
@require_admin_or_manager
def expense_summary_route():
    outlet_id = outlet_service.require_read_outlet(current_identity())
    start, end = _date_range()
    return jsonify(sales_service.expense_summary(outlet_id=outlet_id, start=start, end=end))


@expenses_bp.get("/<int:expense_id>")
@require_admin_or_manager
def get_expense_route(expense_id: int):
    return jsonify(_owned(sales_service.get_expense(expense_id)).to_dict())


@expenses_bp.post("")
@require_admin_or_manager
def create_expense_route():
    identity = current_identity()
    outlet_id = outlet_service.require_write_outlet(identity)
    payload = _expense_payload(get_json_payload(), partial=False)
    expense = sales_service.create_expense(payload, outlet_id=outlet_id, recorded_by=identity.username)
    return jsonify(expense.to_dict()), 201


@expenses_bp.put("/<int:expense_id>")
@require_admin_or_manager
def update_expense_route(expense_id: int):
    _owned(sales_service.get_expense(expense_id))
    payload = _expense_payload(get_json_payload(), partial=True)
    return jsonify(sales_service.update_expense(expense_id, payload).to_dict())


@expenses_bp.delete("/<int:expense_id>")
@require_admin
def delete_expense_route(expense_id: int):
    _owned(sales_service.get_expense(expense_id))
    sales_service.delete_expense(expense_id)
    return jsonify({"message": "Expense deleted"})


@expenses_bp.post("/upload")
@require_admin_or_manager
def upload_expenses_route():
    """
    Columns: Date, ExpenseType, Description, Amount, Vendor, PaymentMethod, InvoiceNumber, Notes.
    Rows are offline expenses and their type must be an active offline type.
    """
    identity = current_identity()
    outlet_id = outlet_service.require_write_outlet(identity)
    upload, _parts = read_upload()
    rows = import_service.read_rows(upload.content, upload.filename)
    result = import_service.import_expenses(rows, identity.username, expense_type_service.type_lookup("Offline"))
    if not result.records:
        current_app.logger.warning("Expense upload %r contained no usable rows", upload.filename)
        return jsonify({"error": "No valid expenses found in the uploaded file", **result.summary()}), 400

    expenses = sales_service.save_imported_expenses(result.records, outlet_id=outlet_id)
    _log_upload("expenses", upload.filename, outlet_id, len(expenses))
    return jsonify({**result.summary(), "expenses": [expense.to_dict() for expense in expenses]}), 201
