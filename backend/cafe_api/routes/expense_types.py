# Overview: Flask API routes for the offline/online expense type catalogues.

from flask import Blueprint, jsonify

from ..decorators import require_admin, require_admin_or_manager
from ..errors import NotFoundError
from ..services import expense_type_service
from ..validation import bool_field, get_json_payload, text_field


expense_types_bp = Blueprint("expense_types", __name__, url_prefix="/api/expense-types")


def _source(source: str) -> str:
    return source.capitalize()


def _entry(source: str, type_id: int):
    entry = expense_type_service.get_type(type_id)
    if entry.source != _source(source):
        raise NotFoundError("Expense type not found")
    return entry


@expense_types_bp.get("/<source>")
@require_admin_or_manager
def list_types_route(source: str):
    return jsonify([entry.to_dict() for entry in expense_type_service.list_types(_source(source))])


@expense_types_bp.get("/<source>/active")
@require_admin_or_manager
def list_active_types_route(source: str):
    types = expense_type_service.list_types(_source(source), active_only=True)
    return jsonify([entry.to_dict() for entry in types])


@expense_types_bp.post("/<source>")
@require_admin
def create_type_route(source: str):
    name = text_field(get_json_payload(), "expense_type", required=True, max_length=64)
    return jsonify(expense_type_service.create_type(_source(source), name).to_dict()), 201


@expense_types_bp.put("/<source>/<int:type_id>")
@require_admin
def update_type_route(source: str, type_id: int):
    data = get_json_payload()
    _entry(source, type_id)
    entry = expense_type_service.update_type(
        type_id,
        name=text_field(data, "expense_type", max_length=64),
        is_active=bool_field(data, "is_active"),
    )
    return jsonify(entry.to_dict())


@expense_types_bp.delete("/<source>/<int:type_id>")
@require_admin
def delete_type_route(source: str, type_id: int):
    _entry(source, type_id)
    expense_type_service.delete_type(type_id)
    return jsonify({"message": "Expense type deleted"})


@expense_types_bp.post("/<source>/initialize")
@require_admin
def initialize_types_route(source: str):
    """Seed the default types; existing entries are left alone."""
    added = expense_type_service.initialize_defaults(_source(source))
    return jsonify({"message": f"Added {added} default expense types", "added": added})
