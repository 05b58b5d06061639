# Overview: Flask API routes for loyalty points and rewards; parses input and returns JSON responses.

from flask import Blueprint, jsonify, request

from ..decorators import current_identity, require_admin, require_auth
from ..models.security import ADMINISTRATION, MEDIUM
from ..services import audit_service, loyalty_service
from ..validation import bool_field, get_json_payload, int_field, query_int, text_field


loyalty_bp = Blueprint("loyalty", __name__, url_prefix="/api/loyalty")


@loyalty_bp.get("/account")
@require_auth
def account_route():
    identity = current_identity()
    account = loyalty_service.get_or_create_account(identity.user_id, identity.username)
    return jsonify(loyalty_service.account_to_dict(account))


@loyalty_bp.get("/transactions")
@require_auth
def transactions_route():
    identity = current_identity()
    limit = query_int("limit", default=100, minimum=1, maximum=500)
    txns = loyalty_service.list_transactions(
        identity.user_id,
        transaction_type=request.args.get("type") or None,
        limit=limit,
    )
    return jsonify([txn.to_dict() for txn in txns])


@loyalty_bp.get("/rewards")
def rewards_route():
    return jsonify([reward.to_dict() for reward in loyalty_service.list_rewards()])


@loyalty_bp.post("/rewards/<int:reward_id>/redeem")
@require_auth
def redeem_route(reward_id: int):
    identity = current_identity()
    txn, account = loyalty_service.redeem_reward(identity.user_id, reward_id, username=identity.username)
    return jsonify({
        "message": "Reward redeemed",
        "transaction": txn.to_dict(),
        "account": loyalty_service.account_to_dict(account),
    })


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------

@loyalty_bp.get("/admin/accounts")
@require_admin
def admin_accounts_route():
    return jsonify([loyalty_service.account_to_dict(a) for a in loyalty_service.list_accounts()])


@loyalty_bp.get("/admin/rewards")
@require_admin
def admin_rewards_route():
    return jsonify([reward.to_dict() for reward in loyalty_service.list_rewards(active_only=False)])


def _reward_payload(data: dict, *, partial: bool) -> dict:
    return {
        "name": text_field(data, "name", required=not partial, max_length=128),
        "description": text_field(data, "description"),
        "points_cost": int_field(data, "points_cost", required=not partial, minimum=1),
        "is_active": bool_field(data, "is_active"),
    }


@loyalty_bp.post("/admin/rewards")
@require_admin
def create_reward_route():
    reward = loyalty_service.create_reward(_reward_payload(get_json_payload(), partial=False))
    return jsonify(reward.to_dict()), 201


@loyalty_bp.put("/admin/rewards/<int:reward_id>")
@require_admin
def update_reward_route(reward_id: int):
    reward = loyalty_service.update_reward(reward_id, _reward_payload(get_json_payload(), partial=True))
    return jsonify(reward.to_dict())


@loyalty_bp.delete("/admin/rewards/<int:reward_id>")
@require_admin
def delete_reward_route(reward_id: int):
    loyalty_service.delete_reward(reward_id)
    return jsonify({"message": "Reward deleted"})


@loyalty_bp.get("/admin/redemptions")
@require_admin
def redemptions_route():
    limit = query_int("limit", default=200, minimum=1, maximum=1000)
    return jsonify([txn.to_dict() for txn in loyalty_service.list_redemptions(limit=limit)])


@loyalty_bp.post("/admin/adjust")
@require_admin
def adjust_route():
    identity = current_identity()
    data = get_json_payload()
    user_id = int_field(data, "user_id", required=True, minimum=1)
    points = int_field(data, "points", required=True)
    reason = text_field(data, "reason", required=True, max_length=255)

    account = loyalty_service.adjust_points(user_id, points, reason=reason)
    audit_service.log_event(
        category=ADMINISTRATION,
        event_type="LOYALTY_ADJUSTED",
        success=True,
        severity=MEDIUM,
        user_id=identity.user_id,
        username=identity.username,
        reason=f"user {user_id}: {points:+d} ({reason})",
    )
    return jsonify(loyalty_service.account_to_dict(account))
