# Overview: Capability category constants for grouping related capabilities.


class CapabilityCategory:
    """Capability categories for organization and display."""
    TRANSACTIONS = "TRANSACTIONS"
    EVENTS = "EVENTS"
    PROMOTIONS = "PROMOTIONS"
    USERS = "USERS"
