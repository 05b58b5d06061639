from __future__ import annotations

from ..extensions import db
from cafe_api.time_utils import to_utc_z


ROLE_USER = "user"
ROLE_MANAGER = "manager"
ROLE_ADMIN = "admin"
ROLES = (ROLE_USER, ROLE_MANAGER, ROLE_ADMIN)


class User(db.Model):
    """
    User accounts for authentication and attribution.

    Customers self-register with role "user"; managers and admins are
    promoted by an admin. Outlet entitlement is the default outlet plus the
    rows in user_outlet_access.

    WHY: Every action must be attributable. No shared logins.
    """
    __tablename__ = "users"
    __table_args__ = (
        db.UniqueConstraint("username", name="uq_users_username"),
        db.UniqueConstraint("email", name="uq_users_email"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    username = db.Column(db.String(64), nullable=False, index=True)
    email = db.Column(db.String(255), nullable=False)

    # Bcrypt hashed password
    password_hash = db.Column(db.String(255), nullable=False)

    role = db.Column(db.String(16), nullable=False, default=ROLE_USER)

    first_name = db.Column(db.String(128), nullable=True)
    last_name = db.Column(db.String(128), nullable=True)
    phone_number = db.Column(db.String(32), nullable=True)

    default_outlet_id = db.Column(db.Integer, db.ForeignKey("outlets.id"), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)

    default_outlet = db.relationship("Outlet", foreign_keys=[default_outlet_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "role": self.role,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "phone_number": self.phone_number,
            "default_outlet_id": self.default_outlet_id,
            "assigned_outlet_ids": sorted(access.outlet_id for access in self.outlet_access),
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "last_login_at": to_utc_z(self.last_login_at) if self.last_login_at else None,
        }


class UserOutletAccess(db.Model):
    """
    Outlets a user may read from and write into.

    WHY: Managers and staff operate one or more physical locations; writes
    outside this set are rejected by the outlet resolver.
    """
    __tablename__ = "user_outlet_access"
    __table_args__ = (
        db.UniqueConstraint("user_id", "outlet_id", name="uq_user_outlet_access"),
        db.Index("ix_user_outlet_access_user", "user_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    outlet_id = db.Column(db.Integer, db.ForeignKey("outlets.id", ondelete="CASCADE"), nullable=False)
    granted_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    user = db.relationship(
        "User",
        foreign_keys=[user_id],
        backref=db.backref("outlet_access", lazy=True, cascade="all, delete-orphan"),
    )
    outlet = db.relationship("Outlet", backref=db.backref("user_access", lazy=True, cascade="all, delete-orphan"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "outlet_id": self.outlet_id,
            "granted_by_user_id": self.granted_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }
