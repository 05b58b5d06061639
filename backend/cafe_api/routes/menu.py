# Overview: Flask API routes for the menu, categories and subcategories; parses input and returns JSON responses.

"""
Menu Routes

Reads are public so the storefront can render the menu without logging in;
an X-Outlet-Id header narrows them to one outlet (plus shared rows). Writes
are admin-only. Menu rows written without an outlet header are shared by
every outlet.
"""

import csv
import io

from flask import Blueprint, Response, current_app, jsonify, request
from openpyxl import Workbook

from ..decorators import current_identity, require_admin, require_admin_or_manager
from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Outlet
from ..models.security import FILE_OPERATION, LOW
from ..multipart import read_upload
from ..services import audit_service, import_service, menu_service, outlet_service
from ..validation import bool_field, cents_field, get_json_payload, int_field, text_field


menu_bp = Blueprint("menu", __name__, url_prefix="/api/menu")
categories_bp = Blueprint("categories", __name__, url_prefix="/api/categories")
subcategories_bp = Blueprint("subcategories", __name__, url_prefix="/api/subcategories")

XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _header_outlet() -> int | None:
    """Outlet named by the header, which must exist; None when absent."""
    outlet_id = outlet_service.header_outlet_id()
    if outlet_id is not None and db.session.get(Outlet, outlet_id) is None:
        raise NotFoundError("Outlet not found")
    return outlet_id


# ---------------------------------------------------------------------------
# Menu items
# ---------------------------------------------------------------------------

def _item_payload(data: dict, *, partial: bool) -> dict:
    fields = {
        "name": lambda: text_field(data, "name", required=not partial, max_length=128),
        "description": lambda: text_field(data, "description"),
        "price_cents": lambda: cents_field(data, "price_cents", required=not partial),
        "online_price_cents": lambda: cents_field(data, "online_price_cents"),
        "category_id": lambda: int_field(data, "category_id", minimum=1),
        "subcategory_id": lambda: int_field(data, "subcategory_id", minimum=1),
        "is_available": lambda: bool_field(data, "is_available", default=True if not partial else None),
    }
    payload = {}
    for key, read in fields.items():
        if partial and key not in data:
            continue
        value = read()
        if partial and value is None and key in ("name", "price_cents", "is_available"):
            raise ValidationError(f"{key} cannot be null")
        payload[key] = value
    return payload


@menu_bp.get("")
def list_menu_route():
    """Available items only."""
    items = menu_service.list_menu_items(outlet_id=_header_outlet(), available_only=True)
    return jsonify([item.to_dict() for item in items])


@menu_bp.get("/all")
@require_admin_or_manager
def list_all_menu_route():
    """Every item including unavailable ones, for the back office."""
    outlet_id = outlet_service.require_read_outlet(current_identity())
    return jsonify([item.to_dict() for item in menu_service.list_menu_items(outlet_id=outlet_id)])


@menu_bp.get("/<int:item_id>")
def get_menu_item_route(item_id: int):
    return jsonify(menu_service.get_menu_item(item_id).to_dict())


@menu_bp.post("")
@require_admin
def create_menu_item_route():
    payload = _item_payload(get_json_payload(), partial=False)
    item = menu_service.create_menu_item(payload, outlet_id=_header_outlet())
    return jsonify(item.to_dict()), 201


@menu_bp.put("/<int:item_id>")
@require_admin
def update_menu_item_route(item_id: int):
    payload = _item_payload(get_json_payload(), partial=True)
    return jsonify(menu_service.update_menu_item(item_id, payload).to_dict())


@menu_bp.delete("/<int:item_id>")
@require_admin
def delete_menu_item_route(item_id: int):
    menu_service.delete_menu_item(item_id)
    return jsonify({"message": "Menu item deleted"})


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------

@categories_bp.get("")
def list_categories_route():
    include_subs = request.args.get("include_subcategories", "").lower() in {"1", "true", "yes"}
    categories = menu_service.list_categories(outlet_id=_header_outlet())
    return jsonify([c.to_dict(include_subcategories=include_subs) for c in categories])


@categories_bp.get("/<int:category_id>")
def get_category_route(category_id: int):
    return jsonify(menu_service.get_category(category_id).to_dict(include_subcategories=True))


@categories_bp.post("")
@require_admin
def create_category_route():
    data = get_json_payload()
    category = menu_service.create_category(
        name=text_field(data, "name", required=True, max_length=128),
        description=text_field(data, "description"),
        outlet_id=_header_outlet(),
    )
    return jsonify(category.to_dict()), 201


@categories_bp.put("/<int:category_id>")
@require_admin
def update_category_route(category_id: int):
    data = get_json_payload()
    payload = {
        "name": text_field(data, "name", max_length=128),
        "description": text_field(data, "description"),
        "is_active": bool_field(data, "is_active"),
    }
    return jsonify(menu_service.update_category(category_id, payload).to_dict())


@categories_bp.delete("/<int:category_id>")
@require_admin
def delete_category_route(category_id: int):
    menu_service.delete_category(category_id)
    return jsonify({"message": "Category deleted"})


@categories_bp.post("/upload")
@require_admin
def upload_categories_route():
    """Multipart upload (field "file") of CategoryName, SubCategoryName rows."""
    identity = current_identity()
    upload, _parts = read_upload()
    rows = import_service.read_rows(upload.content, upload.filename)
    result = import_service.import_categories(rows, identity.username)
    if not result.records:
        current_app.logger.warning("Category upload %r contained no usable rows", upload.filename)
        raise ValidationError("No categories found in the uploaded file")

    outcome = menu_service.apply_category_import(result.records, outlet_id=_header_outlet())
    audit_service.log_event(
        category=FILE_OPERATION,
        event_type="FILE_UPLOADED",
        success=True,
        severity=LOW,
        user_id=identity.user_id,
        username=identity.username,
        reason=f"categories: {upload.filename}",
    )
    return jsonify({**result.summary(), **outcome}), 201


@categories_bp.get("/template")
@require_admin
def category_template_route():
    fmt = (request.args.get("format") or "xlsx").lower()
    rows = import_service.category_template_rows()

    if fmt == "csv":
        buffer = io.StringIO()
        csv.writer(buffer).writerows(rows)
        return Response(
            buffer.getvalue(),
            mimetype="text/csv",
            headers={"Content-Disposition": "attachment; filename=category_template.csv"},
        )
    if fmt == "xlsx":
        wb = Workbook()
        ws = wb.active
        ws.title = "Categories"
        for row in rows:
            ws.append(row)
        buffer = io.BytesIO()
        wb.save(buffer)
        return Response(
            buffer.getvalue(),
            mimetype=XLSX_MIMETYPE,
            headers={"Content-Disposition": "attachment; filename=category_template.xlsx"},
        )
    raise ValidationError("format must be csv or xlsx")


# ---------------------------------------------------------------------------
# Subcategories
# ---------------------------------------------------------------------------

@subcategories_bp.get("")
def list_subcategories_route():
    category_id = int_field(request.args, "category_id", minimum=1)
    subs = menu_service.list_subcategories(category_id=category_id, outlet_id=_header_outlet())
    return jsonify([sub.to_dict() for sub in subs])


@subcategories_bp.get("/<int:subcategory_id>")
def get_subcategory_route(subcategory_id: int):
    return jsonify(menu_service.get_subcategory(subcategory_id).to_dict())


@subcategories_bp.post("")
@require_admin
def create_subcategory_route():
    data = get_json_payload()
    sub = menu_service.create_subcategory(
        category_id=int_field(data, "category_id", required=True, minimum=1),
        name=text_field(data, "name", required=True, max_length=128),
        description=text_field(data, "description"),
    )
    return jsonify(sub.to_dict()), 201


@subcategories_bp.put("/<int:subcategory_id>")
@require_admin
def update_subcategory_route(subcategory_id: int):
    data = get_json_payload()
    payload = {
        "category_id": int_field(data, "category_id", minimum=1),
        "name": text_field(data, "name", max_length=128),
        "description": text_field(data, "description"),
    }
    return jsonify(menu_service.update_subcategory(subcategory_id, payload).to_dict())


@subcategories_bp.delete("/<int:subcategory_id>")
@require_admin
def delete_subcategory_route(subcategory_id: int):
    menu_service.delete_subcategory(subcategory_id)
    return jsonify({"message": "Subcategory deleted"})
