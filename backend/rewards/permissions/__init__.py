# Overview: Authorization policy package.
# Re-exports the role hierarchy and the capability check.

from .categories import CapabilityCategory
from .definitions import (
    CAPABILITY_DEFINITIONS,
    TRANSACTION_CAPABILITIES,
    EVENT_CAPABILITIES,
    PROMOTION_CAPABILITIES,
    USER_CAPABILITIES,
)
from .roles import Role, ROLE_LABELS, ASSIGNABLE_ROLES, can_assign_role
from .helpers import (
    CAPABILITIES,
    CapabilityDecision,
    CapabilityRule,
    check_capability,
    get_capabilities_by_category,
)

__all__ = [
    "CapabilityCategory",
    "CAPABILITY_DEFINITIONS",
    "TRANSACTION_CAPABILITIES",
    "EVENT_CAPABILITIES",
    "PROMOTION_CAPABILITIES",
    "USER_CAPABILITIES",
    "Role",
    "ROLE_LABELS",
    "ASSIGNABLE_ROLES",
    "can_assign_role",
    "CAPABILITIES",
    "CapabilityDecision",
    "CapabilityRule",
    "check_capability",
    "get_capabilities_by_category",
]
