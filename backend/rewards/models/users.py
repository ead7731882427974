from __future__ import annotations

from ..extensions import db
from ..permissions import Role
from rewards.time_utils import to_utc_z


class User(db.Model):
    """
    Campus member account and points balance holder.

    WHY: `points` is a cached running total. It is only ever moved by the
    ledger service, in the same commit as the Transaction row that explains
    the movement.
    """
    __tablename__ = "users"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)

    utorid = db.Column(db.String(8), nullable=False, unique=True, index=True)
    email = db.Column(db.String(255), nullable=False, unique=True)
    name = db.Column(db.String(50), nullable=False)

    # Bcrypt hashed password
    password_hash = db.Column(db.String(255), nullable=False)

    role = db.Column(db.String(16), nullable=False, default=Role.REGULAR.label, index=True)
    points = db.Column(db.Integer, nullable=False, default=0)

    verified = db.Column(db.Boolean, nullable=False, default=False)
    # Cashier flag: purchases they record are logged but not credited
    suspicious = db.Column(db.Boolean, nullable=False, default=False)

    birthday = db.Column(db.Date, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def role_enum(self) -> Role:
        return Role.from_label(self.role)

    def to_summary(self) -> dict:
        return {"id": self.id, "utorid": self.utorid, "name": self.name}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "utorid": self.utorid,
            "name": self.name,
            "email": self.email,
            "birthday": self.birthday.isoformat() if self.birthday else None,
            "role": self.role,
            "points": self.points,
            "verified": self.verified,
            "suspicious": self.suspicious,
            "createdAt": to_utc_z(self.created_at),
            "lastLogin": to_utc_z(self.last_login_at) if self.last_login_at else None,
        }

    def to_cashier_view(self) -> dict:
        return {
            "id": self.id,
            "utorid": self.utorid,
            "name": self.name,
            "points": self.points,
            "verified": self.verified,
        }


class SessionToken(db.Model):
    """
    Bearer session tokens.

    SECURITY: Only the SHA-256 hash of the token is stored. The plaintext is
    returned to the client once, at login.
    """
    __tablename__ = "session_tokens"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    token_hash = db.Column(db.String(64), nullable=False, unique=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False)
    last_used_at = db.Column(db.DateTime(timezone=True), nullable=False)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)

    is_revoked = db.Column(db.Boolean, nullable=False, default=False)
    revoked_at = db.Column(db.DateTime(timezone=True), nullable=True)

    user_agent = db.Column(db.String(255), nullable=True)
    ip_address = db.Column(db.String(64), nullable=True)

    user = db.relationship("User", backref=db.backref("sessions", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "created_at": to_utc_z(self.created_at),
            "last_used_at": to_utc_z(self.last_used_at),
            "expires_at": to_utc_z(self.expires_at),
            "is_revoked": self.is_revoked,
        }


class ResetToken(db.Model):
    """
    Single-use tokens for account activation and password resets.

    kind: "activation" (issued at registration) or "password" (reset request).
    """
    __tablename__ = "reset_tokens"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    token = db.Column(db.String(36), nullable=False, unique=True, index=True)
    kind = db.Column(db.String(16), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)
    consumed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    user = db.relationship("User", backref=db.backref("reset_tokens", lazy=True))
