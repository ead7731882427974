# Overview: Service-layer permission checks; turns capability decisions into Forbidden errors.

"""
Permission Checking

WHY: Routes and services share one answer to "may this user do this?".
The decision itself lives in rewards.permissions; this module enforces it
and leaves an audit line in the log for every denial.

DESIGN PRINCIPLES:
- Fail closed: unknown capabilities and unknown roles are denied
- Log denials only: grants are not logged
"""

import logging

from ..models import Event, User
from ..permissions import CapabilityDecision, check_capability
from rewards.errors import Forbidden


logger = logging.getLogger(__name__)


def is_event_organizer(user: User, event: Event | None) -> bool:
    return event is not None and event.has_organizer(user.id)


def has_capability(user: User, capability: str, *, event: Event | None = None) -> bool:
    return check_capability(
        user.role, capability, is_organizer=is_event_organizer(user, event)
    ).allowed


def require_capability(
    user: User,
    capability: str,
    *,
    event: Event | None = None,
    resource: str | None = None,
) -> CapabilityDecision:
    """
    Raise Forbidden unless `user` may use `capability`.

    Pass `event` for organizer-aware capabilities so an organizer of that
    event passes regardless of role.
    """
    decision = check_capability(
        user.role, capability, is_organizer=is_event_organizer(user, event)
    )
    if not decision.allowed:
        logger.warning(
            "Permission denied: user=%s role=%s capability=%s resource=%s reason=%s",
            user.utorid, user.role, capability, resource, decision.reason,
        )
        raise Forbidden("Permission denied")
    return decision
