import pytest

from modules.admin.permissions import CAPABILITY_REGISTRY, is_allowed, parse_role, is_staff_role
from modules.user.models import UserRole


@pytest.mark.parametrize("capability", ["orders", "catalog", "reports", "users"])
def test_admin_and_owner_share_staff_capabilities(capability):
    assert is_allowed(UserRole.ADMIN, capability)
    assert is_allowed(UserRole.OWNER, capability)
    assert not is_allowed(UserRole.USER, capability)


def test_role_changes_are_owner_only():
    assert is_allowed(UserRole.OWNER, "staff")
    assert not is_allowed(UserRole.ADMIN, "staff")
    assert not is_allowed(UserRole.USER, "staff")


def test_stored_strings_and_unknowns():
    assert is_allowed("ADMIN", "orders")
    assert not is_allowed("admin", "orders")
    assert not is_allowed("SUPERUSER", "orders")
    assert not is_allowed(None, "orders")
    assert not is_allowed(UserRole.OWNER, "launch-missiles")
    assert parse_role("OWNER") is UserRole.OWNER
    assert parse_role("nobody") is None


def test_every_registered_capability_has_a_holder():
    for capability in CAPABILITY_REGISTRY:
        assert any(is_allowed(role, capability) for role in UserRole)


def test_staff_roles():
    assert is_staff_role("ADMIN")
    assert is_staff_role(UserRole.OWNER)
    assert not is_staff_role(UserRole.USER)
