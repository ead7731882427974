# Overview: All capability definitions organized by category.
# Each capability is defined as: (code, description, minimum role, organizer_allowed, category)
#
# organizer_allowed: an organizer of the target event passes the check
# regardless of role.

from .categories import CapabilityCategory
from .roles import Role


# -- TRANSACTIONS --

TRANSACTION_CAPABILITIES = [
    ("CREATE_PURCHASE", "Record a purchase for a customer", Role.CASHIER, False, CapabilityCategory.TRANSACTIONS),
    ("CREATE_ADJUSTMENT", "Adjust a customer's balance", Role.MANAGER, False, CapabilityCategory.TRANSACTIONS),
    ("CREATE_REDEMPTION_FOR_USER", "Open a redemption on a customer's behalf", Role.CASHIER, False, CapabilityCategory.TRANSACTIONS),
    ("PROCESS_REDEMPTION", "Fulfil a pending redemption", Role.CASHIER, False, CapabilityCategory.TRANSACTIONS),
    ("VIEW_TRANSACTIONS", "Browse the full transaction ledger", Role.MANAGER, False, CapabilityCategory.TRANSACTIONS),
    ("FLAG_TRANSACTION", "Mark a transaction suspicious or clear the flag", Role.MANAGER, False, CapabilityCategory.TRANSACTIONS),
    ("REDEEM_OWN_POINTS", "Request a redemption of one's own points", Role.REGULAR, False, CapabilityCategory.TRANSACTIONS),
    ("TRANSFER_POINTS", "Send points to another user", Role.REGULAR, False, CapabilityCategory.TRANSACTIONS),
    ("VIEW_OWN_TRANSACTIONS", "Browse one's own transactions", Role.REGULAR, False, CapabilityCategory.TRANSACTIONS),
]


# -- EVENTS --

EVENT_CAPABILITIES = [
    ("VIEW_EVENTS", "List and view published events", Role.REGULAR, False, CapabilityCategory.EVENTS),
    ("VIEW_EVENT_DETAILS", "See budget, guests and unpublished events", Role.MANAGER, True, CapabilityCategory.EVENTS),
    ("CREATE_EVENT", "Create events", Role.MANAGER, False, CapabilityCategory.EVENTS),
    ("EDIT_EVENT", "Edit event details, capacity and budget", Role.MANAGER, True, CapabilityCategory.EVENTS),
    ("PUBLISH_EVENT", "Publish an event", Role.MANAGER, False, CapabilityCategory.EVENTS),
    ("DELETE_EVENT", "Delete an unpublished event", Role.MANAGER, False, CapabilityCategory.EVENTS),
    ("MANAGE_ORGANIZERS", "Add or remove event organizers", Role.MANAGER, False, CapabilityCategory.EVENTS),
    ("ADD_GUEST", "Add another user to an event guest list", Role.MANAGER, True, CapabilityCategory.EVENTS),
    ("REMOVE_GUEST", "Remove another user from an event guest list", Role.MANAGER, False, CapabilityCategory.EVENTS),
    ("RSVP", "Join or leave an event guest list", Role.REGULAR, False, CapabilityCategory.EVENTS),
    ("AWARD_EVENT_POINTS", "Award event points to guests", Role.MANAGER, True, CapabilityCategory.EVENTS),
]


# -- PROMOTIONS --

PROMOTION_CAPABILITIES = [
    ("VIEW_PROMOTIONS", "View active promotions", Role.REGULAR, False, CapabilityCategory.PROMOTIONS),
    ("MANAGE_PROMOTIONS", "Create, edit, delete and browse all promotions", Role.MANAGER, False, CapabilityCategory.PROMOTIONS),
]


# -- USERS --

USER_CAPABILITIES = [
    ("VIEW_SELF", "View and edit one's own profile", Role.REGULAR, False, CapabilityCategory.USERS),
    ("REGISTER_USER", "Register a new user account", Role.CASHIER, False, CapabilityCategory.USERS),
    ("LOOKUP_USER", "Look up a user by id", Role.CASHIER, False, CapabilityCategory.USERS),
    ("VIEW_USER_DETAILS", "See a user's full profile", Role.MANAGER, False, CapabilityCategory.USERS),
    ("LIST_USERS", "Browse all users", Role.MANAGER, False, CapabilityCategory.USERS),
    ("MANAGE_USERS", "Verify, flag and change roles of users", Role.MANAGER, False, CapabilityCategory.USERS),
]


CAPABILITY_DEFINITIONS = (
    TRANSACTION_CAPABILITIES
    + EVENT_CAPABILITIES
    + PROMOTION_CAPABILITIES
    + USER_CAPABILITIES
)
