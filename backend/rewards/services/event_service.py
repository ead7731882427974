# Overview: Event budget and capacity engine; event CRUD, organizers, guests and RSVP.

"""
Event Service

CAPACITY: confirmed guests never exceed `capacity` (NULL = unlimited).
Every guest insert locks the event row, recounts confirmed guests and bumps
the event's version_id in the same commit. Two RSVPs racing for the last
seat both read the same version; the second flush raises StaleDataError and
run_atomic re-runs it against the new count, where it fails with EventFull.

BUDGET: points_remain + points_awarded is the total budget and
points_remain >= 0. Awards live in ledger_service; budget edits here.

MEMBERSHIP: a user is never both organizer and guest of one event.
"""

from __future__ import annotations

import logging

from ..extensions import db
from ..models import Event, EventGuest, EventOrganizer, User
from ..permissions import Role
from .concurrency import lock_for_update
from . import permission_service
from rewards.errors import (
    AlreadyGuest,
    AlreadyOrganizer,
    EventEnded,
    EventFull,
    InvalidInput,
    InvalidTransition,
    NotFound,
)
from rewards.time_utils import utcnow
from rewards.validation import (
    parse_datetime_field,
    parse_int,
    parse_optional_bool,
    parse_pagination,
    parse_positive_int,
    parse_required_text,
    parse_utorid,
)


logger = logging.getLogger(__name__)


def _is_manager(user: User) -> bool:
    return user.role_enum >= Role.MANAGER


def can_view_details(user: User, event: Event) -> bool:
    return permission_service.has_capability(user, "VIEW_EVENT_DETAILS", event=event)


def _get_event(event_id: int, *, lock: bool = False) -> Event:
    query = db.session.query(Event).filter(Event.id == event_id)
    if lock:
        query = lock_for_update(query)
    event = query.first()
    if not event:
        raise NotFound("Event not found")
    return event


def _user_by_utorid(utorid) -> User:
    user = db.session.query(User).filter_by(utorid=parse_utorid(utorid)).first()
    if not user:
        raise NotFound("User not found")
    return user


def _parse_capacity(value) -> int | None:
    if value is None:
        return None
    return parse_positive_int(value, "capacity")


def _touch(event: Event) -> None:
    # Forces an UPDATE so the version_id check runs on flush
    event.updated_at = utcnow()


# -- CRUD --

def create_event(data: dict) -> Event:
    name = parse_required_text(data.get("name"), "name", max_length=255)
    description = parse_required_text(data.get("description"), "description")
    location = parse_required_text(data.get("location"), "location", max_length=255)

    points = data.get("points")
    if isinstance(points, bool) or not isinstance(points, int) or points <= 0:
        raise InvalidInput("Invalid points")

    capacity = _parse_capacity(data.get("capacity"))

    start = parse_datetime_field(data.get("startTime"), "startTime")
    end = parse_datetime_field(data.get("endTime"), "endTime")
    if end <= start:
        raise InvalidInput("Invalid startTime/endTime")
    if start <= utcnow():
        raise InvalidInput("Event time cannot be in the past")

    event = Event(
        name=name,
        description=description,
        location=location,
        start_time=start,
        end_time=end,
        capacity=capacity,
        points_remain=points,
        points_awarded=0,
        published=False,
    )
    db.session.add(event)
    db.session.flush()

    logger.info("Event created id=%s name=%s budget=%s capacity=%s", event.id, name, points, capacity)
    return event


def list_events(user: User, args) -> tuple[int, list[Event]]:
    """
    Browse events ordered by start time.

    Non-managers only ever see published events. Full events are hidden
    unless showFull=true.
    """
    page, limit = parse_pagination(args)
    now = utcnow()

    started = parse_optional_bool(args.get("started"), "started filter")
    ended = parse_optional_bool(args.get("ended"), "ended filter")
    if started is not None and ended is not None:
        raise InvalidInput("Cannot specify both started and ended")
    show_full = parse_optional_bool(args.get("showFull"), "showFull filter") or False

    query = db.session.query(Event)

    name = args.get("name")
    if name and name.strip():
        query = query.filter(Event.name.ilike(f"%{name.strip()}%"))
    location = args.get("location")
    if location and location.strip():
        query = query.filter(Event.location.ilike(f"%{location.strip()}%"))

    if started is not None:
        query = query.filter(Event.start_time <= now if started else Event.start_time > now)
    if ended is not None:
        query = query.filter(Event.end_time <= now if ended else Event.end_time > now)

    if _is_manager(user):
        published = parse_optional_bool(args.get("published"), "published filter")
        if published is not None:
            query = query.filter(Event.published == published)
    else:
        query = query.filter(Event.published.is_(True))

    events = query.order_by(Event.start_time.asc(), Event.id.asc()).all()
    if not show_full:
        events = [e for e in events if not e.is_full()]

    start_index = (page - 1) * limit
    return len(events), events[start_index:start_index + limit]


def get_event(user: User, event_id: int) -> tuple[Event, bool]:
    """
    Returns (event, full_view). Unpublished events are hidden from anyone
    who cannot see event details.
    """
    event = _get_event(event_id)
    full = can_view_details(user, event)
    if not full and not event.published:
        raise NotFound("Event not found")
    return event, full


def update_event(actor: User, event_id: int, data: dict) -> tuple[Event, set[str]]:
    """
    Partial update by a manager or organizer.

    Before start: every field. After start: only endTime, until the end.
    Publishing is manager-only and one-way.
    Returns (event, names of changed fields).
    """
    event = _get_event(event_id, lock=True)
    permission_service.require_capability(actor, "EDIT_EVENT", event=event, resource=f"event:{event_id}")

    provided = {k: v for k, v in data.items() if v is not None or k == "capacity"}
    if not provided:
        raise InvalidInput("No valid fields to update")

    if "published" in provided:
        permission_service.require_capability(actor, "PUBLISH_EVENT", resource=f"event:{event_id}")

    now = utcnow()
    started = event.start_time <= now
    changed: set[str] = set()

    def _require_not_started(field: str) -> None:
        if started:
            raise InvalidInput(f"Cannot update {field} after start")

    for field, max_length in (("name", 255), ("description", None), ("location", 255)):
        if field in provided:
            _require_not_started(field)
            setattr(event, field, parse_required_text(provided[field], field, max_length=max_length))
            changed.add(field)

    final_start, final_end = event.start_time, event.end_time
    if "startTime" in provided:
        _require_not_started("startTime")
        final_start = parse_datetime_field(provided["startTime"], "startTime")
        if final_start <= now:
            raise InvalidInput("Invalid startTime")
        changed.add("startTime")

    if "endTime" in provided:
        if event.end_time <= now:
            raise InvalidInput("Cannot update endTime after it has passed")
        final_end = parse_datetime_field(provided["endTime"], "endTime")
        if final_end <= now:
            raise InvalidInput("Invalid endTime")
        changed.add("endTime")

    if final_end <= final_start:
        raise InvalidInput("endTime must be after startTime")
    event.start_time, event.end_time = final_start, final_end

    if "capacity" in provided:
        _require_not_started("capacity")
        capacity = _parse_capacity(provided["capacity"])
        if capacity is not None and capacity < event.num_guests:
            raise InvalidInput("Capacity less than confirmed guests")
        event.capacity = capacity
        changed.add("capacity")

    if "points" in provided:
        _require_not_started("points")
        total = parse_int(provided["points"], "points", minimum=0)
        remain = total - event.points_awarded
        if remain < 0:
            raise InvalidInput("Points cannot go below zero")
        event.points_remain = remain
        changed.add("points")

    if "published" in provided:
        if provided["published"] is not True:
            raise InvalidTransition("Published can only be set to true")
        event.published = True
        changed.add("published")

    db.session.flush()
    logger.info("Event updated id=%s actor=%s fields=%s", event.id, actor.utorid, sorted(changed))
    return event, changed


def delete_event(event_id: int) -> None:
    event = _get_event(event_id, lock=True)
    if event.published:
        raise InvalidInput("Cannot delete published event")
    # Award rows keep their event_id for good
    if event.points_awarded > 0 or event.transactions:
        raise InvalidInput("Cannot delete event with awarded points")
    db.session.delete(event)
    db.session.flush()
    logger.info("Event deleted id=%s", event_id)


# -- Organizers --

def add_organizer(event_id: int, utorid) -> Event:
    event = _get_event(event_id, lock=True)
    if event.end_time <= utcnow():
        raise EventEnded()

    user = _user_by_utorid(utorid)
    if event.has_guest(user.id):
        raise AlreadyGuest("User is already a guest")
    if event.has_organizer(user.id):
        raise AlreadyOrganizer()

    event.organizers.append(EventOrganizer(user_id=user.id))
    _touch(event)
    db.session.flush()
    logger.info("Organizer added event=%s user=%s", event.id, user.utorid)
    return event


def remove_organizer(event_id: int, user_id: int) -> None:
    event = _get_event(event_id, lock=True)
    organizer = db.session.query(EventOrganizer).filter_by(event_id=event.id, user_id=user_id).first()
    if not organizer:
        raise NotFound("Organizer not found")
    event.organizers.remove(organizer)
    _touch(event)
    db.session.flush()


# -- Guests --

def _admit_guest(event: Event, user: User) -> EventGuest:
    """
    Shared RSVP path. The caller holds the event row lock.
    """
    if event.end_time <= utcnow():
        raise EventEnded()
    if event.has_organizer(user.id):
        raise AlreadyOrganizer()
    if event.has_guest(user.id):
        raise AlreadyGuest()

    confirmed = db.session.query(EventGuest).filter_by(event_id=event.id, confirmed=True).count()
    if event.capacity is not None and confirmed >= event.capacity:
        raise EventFull()

    guest = EventGuest(user_id=user.id, confirmed=True, confirmed_at=utcnow())
    event.guests.append(guest)
    _touch(event)
    db.session.flush()

    logger.info("Guest admitted event=%s user=%s guests=%s", event.id, user.utorid, confirmed + 1)
    return guest


def add_guest(actor: User, event_id: int, utorid) -> tuple[Event, User]:
    """Manager or organizer puts someone on the guest list."""
    event = _get_event(event_id, lock=True)
    if not permission_service.has_capability(actor, "ADD_GUEST", event=event):
        if not event.published:
            raise NotFound("Event not found")
        permission_service.require_capability(actor, "ADD_GUEST", event=event, resource=f"event:{event_id}")

    user = _user_by_utorid(utorid)
    _admit_guest(event, user)
    return event, user


def rsvp(user: User, event_id: int) -> Event:
    event = _get_event(event_id, lock=True)
    if not event.published:
        raise NotFound("Event not found")
    _admit_guest(event, user)
    return event


def cancel_rsvp(user: User, event_id: int) -> None:
    event = _get_event(event_id, lock=True)
    if not event.published:
        raise NotFound("Event not found")
    if event.end_time <= utcnow():
        raise EventEnded()

    guest = db.session.query(EventGuest).filter_by(event_id=event.id, user_id=user.id).first()
    if not guest:
        raise NotFound("Guest not found")
    event.guests.remove(guest)
    _touch(event)
    db.session.flush()
    logger.info("Guest left event=%s user=%s", event.id, user.utorid)


def remove_guest(event_id: int, user_id: int) -> None:
    event = _get_event(event_id, lock=True)
    guest = db.session.query(EventGuest).filter_by(event_id=event.id, user_id=user_id).first()
    if not guest:
        raise NotFound("Guest not found")
    event.guests.remove(guest)
    _touch(event)
    db.session.flush()
