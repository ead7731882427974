from __future__ import annotations

from ..extensions import db
from rewards.time_utils import to_utc_z


class Event(db.Model):
    """
    Campus event with a guest capacity and a points budget.

    BUDGET: points_remain + points_awarded is the total budget.
    points_remain never goes below zero.

    CAPACITY: NULL means unlimited. Confirmed guests never exceed it.
    RSVPs bump version_id so two concurrent RSVPs for the last seat
    cannot both commit.
    """
    __tablename__ = "events"
    __table_args__ = (
        db.Index("ix_events_published_start", "published", "start_time"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=False)
    location = db.Column(db.String(255), nullable=False)

    start_time = db.Column(db.DateTime(timezone=True), nullable=False)
    end_time = db.Column(db.DateTime(timezone=True), nullable=False)

    capacity = db.Column(db.Integer, nullable=True)

    points_remain = db.Column(db.Integer, nullable=False, default=0)
    points_awarded = db.Column(db.Integer, nullable=False, default=0)

    published = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    organizers = db.relationship("EventOrganizer", backref="event", lazy=True, cascade="all, delete-orphan")
    guests = db.relationship("EventGuest", backref="event", lazy=True, cascade="all, delete-orphan")

    @property
    def total_points(self) -> int:
        return self.points_remain + self.points_awarded

    @property
    def confirmed_guests(self) -> list["EventGuest"]:
        return [g for g in self.guests if g.confirmed]

    @property
    def num_guests(self) -> int:
        return len(self.confirmed_guests)

    def is_full(self) -> bool:
        return self.capacity is not None and self.num_guests >= self.capacity

    def has_organizer(self, user_id: int) -> bool:
        return any(o.user_id == user_id for o in self.organizers)

    def has_guest(self, user_id: int) -> bool:
        return any(g.user_id == user_id for g in self.guests)

    def to_summary(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "location": self.location,
            "startTime": to_utc_z(self.start_time),
            "endTime": to_utc_z(self.end_time),
            "capacity": self.capacity,
            "numGuests": self.num_guests,
        }

    def to_dict(self, *, full: bool = False) -> dict:
        data = self.to_summary()
        data["description"] = self.description
        data["organizers"] = [o.user.to_summary() for o in self.organizers]
        if full:
            data["pointsRemain"] = self.points_remain
            data["pointsAwarded"] = self.points_awarded
            data["published"] = self.published
            data["guests"] = [g.user.to_summary() for g in self.guests]
        return data


class EventOrganizer(db.Model):
    __tablename__ = "event_organizers"
    __table_args__ = (
        db.UniqueConstraint("event_id", "user_id", name="uq_event_organizers_event_user"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    event_id = db.Column(db.Integer, db.ForeignKey("events.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    user = db.relationship("User", backref=db.backref("organized_events", lazy=True))


class EventGuest(db.Model):
    __tablename__ = "event_guests"
    __table_args__ = (
        db.UniqueConstraint("event_id", "user_id", name="uq_event_guests_event_user"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    event_id = db.Column(db.Integer, db.ForeignKey("events.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    confirmed = db.Column(db.Boolean, nullable=False, default=True)
    confirmed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    user = db.relationship("User", backref=db.backref("guest_of", lazy=True))
