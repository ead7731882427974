# Overview: Ordered role hierarchy and role-assignment rules.

from __future__ import annotations

from enum import IntEnum


class Role(IntEnum):
    """
    Role hierarchy. Comparison follows privilege:
    REGULAR < CASHIER < MANAGER < SUPERUSER.
    """
    REGULAR = 1
    CASHIER = 2
    MANAGER = 3
    SUPERUSER = 4

    @property
    def label(self) -> str:
        return self.name.lower()

    @classmethod
    def from_label(cls, label: str) -> "Role":
        try:
            return cls[label.strip().upper()]
        except (KeyError, AttributeError):
            raise ValueError(f"Unknown role: {label!r}")


ROLE_LABELS = [role.label for role in Role]

# Which roles each actor may hand out via PATCH /users/:id
ASSIGNABLE_ROLES = {
    Role.MANAGER: {Role.REGULAR, Role.CASHIER},
    Role.SUPERUSER: set(Role),
}


def can_assign_role(actor: Role, target: Role) -> bool:
    return target in ASSIGNABLE_ROLES.get(actor, set())
