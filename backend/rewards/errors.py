# Overview: Domain exception hierarchy shared by services and routes.

"""
Every exception carries the HTTP status it maps to. Services raise these
before touching the session; routes roll back and render {"error": message}.
"""

from __future__ import annotations


class RewardsError(Exception):
    """Base class for expected, user-facing failures."""
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message)


class Unauthorized(RewardsError):
    status_code = 401
    default_message = "Unauthorized"


class Forbidden(RewardsError):
    status_code = 403
    default_message = "Forbidden"


class NotFound(RewardsError):
    status_code = 404
    default_message = "Not found"


class InvalidInput(RewardsError):
    status_code = 400
    default_message = "Invalid input"


class WrongType(InvalidInput):
    default_message = "Wrong transaction type"


class InvalidTransition(InvalidInput):
    default_message = "Invalid state transition"


class InsufficientPoints(RewardsError):
    status_code = 400
    default_message = "Insufficient points"


class InsufficientBudget(RewardsError):
    status_code = 400
    default_message = "Insufficient points remaining"


class Conflict(RewardsError):
    status_code = 409
    default_message = "Conflict"


class AlreadyProcessed(Conflict):
    default_message = "Transaction already processed"


class AlreadyGuest(Conflict):
    default_message = "User is already a guest"


class AlreadyOrganizer(Conflict):
    default_message = "User is already an organizer"


class Gone(RewardsError):
    status_code = 410
    default_message = "Gone"


class EventEnded(Gone):
    default_message = "Event has ended"


class EventFull(Gone):
    default_message = "Event is full"


class TooManyRequests(RewardsError):
    status_code = 429
    default_message = "Too Many Requests"
