from __future__ import annotations

from ..extensions import db
from rewards.time_utils import to_utc_z


TRANSACTION_TYPE_PURCHASE = "purchase"
TRANSACTION_TYPE_ADJUSTMENT = "adjustment"
TRANSACTION_TYPE_REDEMPTION = "redemption"
TRANSACTION_TYPE_TRANSFER = "transfer"
TRANSACTION_TYPE_EVENT = "event"

TRANSACTION_TYPES = (
    TRANSACTION_TYPE_PURCHASE,
    TRANSACTION_TYPE_ADJUSTMENT,
    TRANSACTION_TYPE_REDEMPTION,
    TRANSACTION_TYPE_TRANSFER,
    TRANSACTION_TYPE_EVENT,
)


class Transaction(db.Model):
    """
    Append-only points ledger.

    IMMUTABLE: type, amount and user_id never change after insert. Only
    `suspicious` and `processed` move, and only through ledger_service, which
    applies the matching balance delta in the same commit.

    amount is signed: redemptions and outgoing transfers are negative.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.Index("ix_transactions_user_type", "user_id", "type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    type = db.Column(db.String(16), nullable=False, index=True)
    amount = db.Column(db.Integer, nullable=False)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    created_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    remark = db.Column(db.Text, nullable=False, default="")

    # Event awards only
    event_id = db.Column(db.Integer, db.ForeignKey("events.id"), nullable=True, index=True)
    # Adjustments only: the transaction being corrected
    related_transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=True, index=True)

    # Snapshot of the creator's suspicious flag, toggled by managers afterwards
    suspicious = db.Column(db.Boolean, nullable=False, default=False, index=True)

    # Redemptions only
    processed = db.Column(db.Boolean, nullable=False, default=False)
    processed_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    processed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    user = db.relationship("User", foreign_keys=[user_id], backref=db.backref("transactions", lazy="dynamic"))
    created_by = db.relationship("User", foreign_keys=[created_by_id])
    processed_by = db.relationship("User", foreign_keys=[processed_by_id])
    event = db.relationship("Event", backref=db.backref("transactions", lazy=True, passive_deletes="all"))
    related_transaction = db.relationship("Transaction", remote_side=[id])

    @property
    def applied_amount(self) -> int:
        """
        The part of `amount` currently reflected in the user's balance.

        Suspicious transactions and unprocessed redemptions are recorded but
        not applied.
        """
        if self.suspicious:
            return 0
        if self.type == TRANSACTION_TYPE_REDEMPTION and not self.processed:
            return 0
        return self.amount

    @property
    def related_id(self) -> int | None:
        if self.type == TRANSACTION_TYPE_EVENT:
            return self.event_id
        if self.type == TRANSACTION_TYPE_ADJUSTMENT:
            return self.related_transaction_id
        return None

    @property
    def promotion_ids(self) -> list[int]:
        return sorted(usage.promotion_id for usage in self.promotion_usages)

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "utorid": self.user.utorid if self.user else None,
            "type": self.type,
            "amount": self.amount,
            "promotionIds": self.promotion_ids,
            "suspicious": self.suspicious,
            "remark": self.remark or "",
            "createdBy": self.created_by.utorid if self.created_by else None,
            "relatedId": self.related_id,
            "createdAt": to_utc_z(self.created_at),
        }
        if self.type == TRANSACTION_TYPE_PURCHASE and self.purchase_detail is not None:
            data["spent"] = self.purchase_detail.spent
        if self.type == TRANSACTION_TYPE_REDEMPTION:
            data["processed"] = self.processed
            data["processedBy"] = self.processed_by.utorid if self.processed_by else None
        return data


class PurchaseDetail(db.Model):
    """
    Purchase-only facts owned one-to-one by a purchase Transaction.

    Applied promotions live in PromotionUsage rows keyed by the same
    transaction.
    """
    __tablename__ = "purchase_details"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=False, unique=True)
    spent_cents = db.Column(db.Integer, nullable=False)
    comment = db.Column(db.Text, nullable=False, default="")

    transaction = db.relationship(
        "Transaction",
        backref=db.backref("purchase_detail", uselist=False, lazy=True),
    )

    @property
    def spent(self) -> float:
        return round(self.spent_cents / 100, 2)


class PromotionUsage(db.Model):
    """
    One row per promotion applied to a purchase.

    The one-time rule reads this table: a onetime promotion with any row for
    (user_id, promotion_id) is spent for that user.
    """
    __tablename__ = "promotion_usages"
    __table_args__ = (
        db.UniqueConstraint("transaction_id", "promotion_id", name="uq_promotion_usage_txn_promo"),
        db.Index("ix_promotion_usages_user_promo", "user_id", "promotion_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    promotion_id = db.Column(db.Integer, db.ForeignKey("promotions.id"), nullable=False, index=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=False, index=True)

    transaction = db.relationship("Transaction", backref=db.backref("promotion_usages", lazy=True))
    promotion = db.relationship("Promotion", backref=db.backref("usages", lazy=True))
