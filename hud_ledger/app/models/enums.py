"""
Organization member roles enumeration.

Defines the role a principal holds inside a property-management organization.
"""

import enum


class MemberRole(str, enum.Enum):
    """
    Organization member role enumeration.

    Roles:
        SUPER_ADMIN: May close accounting periods
        PROPERTY_MANAGER: Day-to-day ledger operator
        TENANT: Resident with read access to their organization
        ADMIN / EDITOR / VIEWER: Back-office staff roles
    """
    SUPER_ADMIN = "SUPER_ADMIN"
    PROPERTY_MANAGER = "PROPERTY_MANAGER"
    TENANT = "TENANT"
    ADMIN = "ADMIN"
    EDITOR = "EDITOR"
    VIEWER = "VIEWER"
