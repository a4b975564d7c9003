"""
Admin Permissions Registry
============================
Central registry of capabilities and which roles hold them.
Used by route protection (modules.auth.deps.require_capability) and by
services that widen access for staff (e.g. reading another user's order).

Roles are the closed enum modules.user.models.UserRole. A capability not in
the registry is denied to everyone.
"""

from modules.user.models import UserRole

# --- Capability registry ---

CAPABILITY_REGISTRY = {
    "orders":  "Read and manage every customer's orders",
    "catalog": "Create, edit and delete catalog entries",
    "reports": "Dashboard statistics and sales reports",
    "users":   "List customer accounts",
    "staff":   "Change user roles",
}

ALL_CAPABILITIES = list(CAPABILITY_REGISTRY.keys())

_STAFF_ROLES = frozenset({UserRole.ADMIN, UserRole.OWNER})

ROLE_CAPABILITIES = {
    UserRole.USER:  frozenset(),
    UserRole.ADMIN: frozenset({"orders", "catalog", "reports", "users"}),
    UserRole.OWNER: frozenset(ALL_CAPABILITIES),
}


def parse_role(role):
    """Return the UserRole for a stored value, or None if it is not a known role."""
    if isinstance(role, UserRole):
        return role
    try:
        return UserRole(role)
    except ValueError:
        return None


def is_allowed(role, capability: str) -> bool:
    """Single decision point: may a subject with `role` exercise `capability`?"""
    if capability not in CAPABILITY_REGISTRY:
        return False
    parsed = parse_role(role)
    if parsed is None:
        return False
    return capability in ROLE_CAPABILITIES.get(parsed, frozenset())


def is_staff_role(role) -> bool:
    return parse_role(role) in _STAFF_ROLES
