from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from rewards.time_utils import to_utc_z


PROMOTION_TYPE_AUTOMATIC = "automatic"
PROMOTION_TYPE_ONETIME = "onetime"
PROMOTION_TYPES = (PROMOTION_TYPE_AUTOMATIC, PROMOTION_TYPE_ONETIME)


class Promotion(db.Model):
    """
    Point-earning promotions.

    automatic: applied to every eligible purchase inside the window.
    onetime: must be named on the purchase and is usable once per user.

    min_spending is in dollars; rate multiplies the dollars spent; points is
    a flat bonus. Any combination may be set.
    """
    __tablename__ = "promotions"
    __table_args__ = (
        db.Index("ix_promotions_type_window", "type", "start_time", "end_time"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=False, default="")
    type = db.Column(db.String(16), nullable=False)

    start_time = db.Column(db.DateTime(timezone=True), nullable=False)
    end_time = db.Column(db.DateTime(timezone=True), nullable=False)

    min_spending = db.Column(db.Float, nullable=True)
    rate = db.Column(db.Float, nullable=True)
    points = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    @property
    def min_spending_decimal(self) -> Decimal | None:
        return None if self.min_spending is None else Decimal(str(self.min_spending))

    @property
    def rate_decimal(self) -> Decimal | None:
        return None if self.rate is None else Decimal(str(self.rate))

    def is_active(self, now) -> bool:
        return self.start_time <= now <= self.end_time

    def to_summary(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "minSpending": self.min_spending,
            "rate": self.rate,
            "points": self.points,
        }

    def to_dict(self, *, include_description: bool = True) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "startTime": to_utc_z(self.start_time),
            "endTime": to_utc_z(self.end_time),
            "minSpending": self.min_spending,
            "rate": self.rate,
            "points": self.points,
        }
        if include_description:
            data["description"] = self.description
        return data
