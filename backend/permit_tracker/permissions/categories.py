# Overview: Capability category constants for grouping related capabilities.


class CapabilityCategory:
    """Capability categories for organization and UI display."""
    PERMITS = "PERMITS"
    USERS = "USERS"
    REPORTING = "REPORTING"
    SYSTEM = "SYSTEM"
