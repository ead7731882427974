# Overview: The capability check consumed uniformly by every route and service.

from __future__ import annotations

from dataclasses import dataclass

from .definitions import CAPABILITY_DEFINITIONS
from .roles import Role


@dataclass(frozen=True)
class CapabilityRule:
    code: str
    description: str
    minimum_role: Role
    organizer_allowed: bool
    category: str


@dataclass(frozen=True)
class CapabilityDecision:
    allowed: bool
    capability: str
    required_role: Role
    reason: str | None = None

    def __bool__(self) -> bool:
        return self.allowed


CAPABILITIES: dict[str, CapabilityRule] = {
    code: CapabilityRule(code, description, minimum_role, organizer_allowed, category)
    for code, description, minimum_role, organizer_allowed, category in CAPABILITY_DEFINITIONS
}


def get_capabilities_by_category(category: str) -> list[CapabilityRule]:
    return [rule for rule in CAPABILITIES.values() if rule.category == category]


def check_capability(role: Role | str, capability: str, *, is_organizer: bool = False) -> CapabilityDecision:
    """
    Decide whether a caller holding `role` may use `capability`.

    Unknown capability codes are denied. Organizers pass rules that are
    flagged organizer_allowed even below the minimum role.
    """
    rule = CAPABILITIES.get(capability)
    if rule is None:
        return CapabilityDecision(False, capability, Role.SUPERUSER, f"Unknown capability {capability}")

    if isinstance(role, str):
        try:
            role = Role.from_label(role)
        except ValueError:
            return CapabilityDecision(False, capability, rule.minimum_role, "Unknown role")

    if role >= rule.minimum_role:
        return CapabilityDecision(True, capability, rule.minimum_role)
    if rule.organizer_allowed and is_organizer:
        return CapabilityDecision(True, capability, rule.minimum_role, "event organizer")
    return CapabilityDecision(
        False,
        capability,
        rule.minimum_role,
        f"{capability} requires {rule.minimum_role.label} or higher",
    )
