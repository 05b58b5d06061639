# Overview: Service-layer operations for loyalty; accounts, tiers, point movements and rewards.

"""
Loyalty Service

Point balances only move through single-statement UPDATEs (see
concurrency.atomic_update), each paired with a PointsTransaction row in the
same commit. Redemption guards on current_points >= cost inside the UPDATE, so
two concurrent redemptions can never overdraw an account.

TIERS (by lifetime points earned; redeeming never demotes):
    Bronze 0, Silver 500, Gold 1500, Platinum 3000
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import LoyaltyAccount, PointsTransaction, Reward, User
from .concurrency import atomic_update


EARNED = "earned"
REDEEMED = "redeemed"
ADJUSTED = "adjusted"
EXPIRED = "expired"
TRANSACTION_TYPES = (EARNED, REDEEMED, ADJUSTED, EXPIRED)

TIERS = (
    ("Bronze", 0),
    ("Silver", 500),
    ("Gold", 1500),
    ("Platinum", 3000),
)

# One point per this many cents of a delivered order's total
CENTS_PER_POINT = 1000


def points_for_order_total(total_cents: int) -> int:
    return max(0, total_cents // CENTS_PER_POINT)


def tier_info(total_points_earned: int) -> dict:
    current_name = TIERS[0][0]
    next_tier = None
    for name, threshold in TIERS:
        if total_points_earned >= threshold:
            current_name = name
        elif next_tier is None:
            next_tier = (name, threshold)

    info = {"tier": current_name, "next_tier": None, "points_to_next_tier": None, "progress_percent": 100.0}
    if next_tier is not None:
        name, threshold = next_tier
        floor = dict(TIERS)[current_name]
        span = threshold - floor
        info.update({
            "next_tier": name,
            "points_to_next_tier": threshold - total_points_earned,
            "progress_percent": round((total_points_earned - floor) * 100.0 / span, 1),
        })
    return info


def account_to_dict(account: LoyaltyAccount) -> dict:
    data = account.to_dict()
    data.update(tier_info(account.total_points_earned))
    return data


def get_or_create_account(user_id: int, username: str | None = None) -> LoyaltyAccount:
    account = db.session.query(LoyaltyAccount).filter_by(user_id=user_id).first()
    if account:
        return account

    if username is None:
        user = db.session.get(User, user_id)
        if not user:
            raise NotFoundError("User not found")
        username = user.username

    account = LoyaltyAccount(user_id=user_id, username=username)
    db.session.add(account)
    try:
        db.session.commit()
    except IntegrityError:
        # Created concurrently by another request
        db.session.rollback()
        account = db.session.query(LoyaltyAccount).filter_by(user_id=user_id).one()
    return account


def list_transactions(user_id: int, *, transaction_type: str | None = None, limit: int = 100) -> list[PointsTransaction]:
    q = db.session.query(PointsTransaction).filter_by(user_id=user_id)
    if transaction_type:
        q = q.filter(PointsTransaction.transaction_type == transaction_type)
    return q.order_by(PointsTransaction.created_at.desc(), PointsTransaction.id.desc()).limit(limit).all()


def list_accounts() -> list[LoyaltyAccount]:
    return db.session.query(LoyaltyAccount).order_by(LoyaltyAccount.total_points_earned.desc(), LoyaltyAccount.id.asc()).all()


def list_redemptions(*, limit: int = 200) -> list[PointsTransaction]:
    return (
        db.session.query(PointsTransaction)
        .filter(PointsTransaction.transaction_type == REDEEMED)
        .order_by(PointsTransaction.created_at.desc(), PointsTransaction.id.desc())
        .limit(limit)
        .all()
    )


def award_points(user_id: int, points: int, *, description: str, order_id: int | None = None, username: str | None = None) -> PointsTransaction:
    if points <= 0:
        raise ValidationError("points must be positive")
    account = get_or_create_account(user_id, username)

    atomic_update(
        LoyaltyAccount,
        LoyaltyAccount.id == account.id,
        values={
            "current_points": LoyaltyAccount.current_points + points,
            "total_points_earned": LoyaltyAccount.total_points_earned + points,
        },
    )
    txn = PointsTransaction(
        user_id=user_id,
        points=points,
        transaction_type=EARNED,
        description=description,
        order_id=order_id,
    )
    db.session.add(txn)
    db.session.commit()
    current_app.logger.info("Awarded %d points to user %s", points, user_id)
    return txn


def adjust_points(user_id: int, points: int, *, reason: str) -> LoyaltyAccount:
    """Admin correction; a negative adjustment may not take the balance below zero."""
    if points == 0:
        raise ValidationError("points must be non-zero")
    account = get_or_create_account(user_id)

    values = {"current_points": LoyaltyAccount.current_points + points}
    if points > 0:
        values["total_points_earned"] = LoyaltyAccount.total_points_earned + points
    updated = atomic_update(
        LoyaltyAccount,
        LoyaltyAccount.id == account.id,
        LoyaltyAccount.current_points + points >= 0,
        values=values,
    )
    if not updated:
        db.session.rollback()
        raise ValidationError("Adjustment would make the points balance negative")

    db.session.add(PointsTransaction(user_id=user_id, points=points, transaction_type=ADJUSTED, description=reason))
    db.session.commit()
    db.session.refresh(account)
    return account


# ---------------------------------------------------------------------------
# Rewards
# ---------------------------------------------------------------------------

def list_rewards(*, active_only: bool = True) -> list[Reward]:
    q = db.session.query(Reward)
    if active_only:
        q = q.filter(Reward.is_active.is_(True))
    return q.order_by(Reward.points_cost.asc(), Reward.id.asc()).all()


def get_reward(reward_id: int) -> Reward:
    reward = db.session.get(Reward, reward_id)
    if not reward:
        raise NotFoundError("Reward not found")
    return reward


def create_reward(data: dict) -> Reward:
    reward = Reward(
        name=data["name"],
        description=data.get("description"),
        points_cost=data["points_cost"],
        is_active=data.get("is_active", True),
    )
    db.session.add(reward)
    db.session.commit()
    return reward


def update_reward(reward_id: int, data: dict) -> Reward:
    reward = get_reward(reward_id)
    for key in ("name", "description", "points_cost", "is_active"):
        if key in data and data[key] is not None:
            setattr(reward, key, data[key])
    db.session.commit()
    return reward


def delete_reward(reward_id: int) -> None:
    reward = get_reward(reward_id)
    db.session.delete(reward)
    db.session.commit()


def redeem_reward(user_id: int, reward_id: int, *, username: str | None = None) -> tuple[PointsTransaction, LoyaltyAccount]:
    reward = get_reward(reward_id)
    if not reward.is_active:
        raise ValidationError("Reward is not available")

    account = get_or_create_account(user_id, username)
    cost = reward.points_cost
    updated = atomic_update(
        LoyaltyAccount,
        LoyaltyAccount.id == account.id,
        LoyaltyAccount.current_points >= cost,
        values={
            "current_points": LoyaltyAccount.current_points - cost,
            "total_points_redeemed": LoyaltyAccount.total_points_redeemed + cost,
        },
    )
    if not updated:
        db.session.rollback()
        raise ValidationError("Insufficient points")

    txn = PointsTransaction(
        user_id=user_id,
        points=-cost,
        transaction_type=REDEEMED,
        description=f"Redeemed: {reward.name}",
        reward_id=reward.id,
    )
    db.session.add(txn)
    db.session.commit()
    db.session.refresh(account)
    return txn, account
