from datetime import timedelta

import pytest

from qrdine.core.errors import AuthenticationError, PermissionDeniedError
from qrdine.models import UserRole
from qrdine.services.auth import (
    CredentialStore,
    Identity,
    IdentityGate,
    create_access_token,
    decode_access_token,
    hash_password,
    verify_password,
)

from tests.conftest import TEST_PASSWORD


@pytest.fixture
def gate(session):
    return IdentityGate(CredentialStore(session))


def bearer(user) -> str:
    return f"Bearer {create_access_token(user.id, user.role.value)}"


# =============================================================================
# CREDENTIAL PRIMITIVES
# =============================================================================

def test_password_hash_round_trip():
    hashed = hash_password("hunter22")
    assert hashed != "hunter22"
    assert verify_password("hunter22", hashed)
    assert not verify_password("wrong", hashed)


def test_malformed_stored_hash_does_not_verify():
    assert not verify_password("anything", "not-a-bcrypt-hash")


def test_token_carries_subject_and_role():
    payload = decode_access_token(create_access_token(42, "kitchen"))
    assert payload["sub"] == 42
    assert payload["role"] == "kitchen"


def test_expired_token_is_rejected():
    token = create_access_token(1, "waiter", expires_delta=timedelta(seconds=-5))
    with pytest.raises(AuthenticationError):
        decode_access_token(token)


# =============================================================================
# AUTHENTICATION
# =============================================================================

async def test_authenticate_resolves_identity(gate, make_user):
    user = await make_user("chef", UserRole.KITCHEN)

    identity = await gate.authenticate(bearer(user))

    assert identity.id == user.id
    assert identity.role == UserRole.KITCHEN


async def test_authenticate_accepts_bare_token(gate, make_user):
    user = await make_user("chef", UserRole.KITCHEN)
    token = create_access_token(user.id, user.role.value)
    assert (await gate.authenticate(token)).username == "chef"


@pytest.mark.parametrize("credential", [None, "", "   ", "Bearer", "Token a b", "Bearer garbage"])
async def test_missing_or_malformed_credential_is_unauthenticated(gate, credential):
    with pytest.raises(AuthenticationError):
        await gate.authenticate(credential)


async def test_deactivated_account_is_refused_on_every_request(gate, make_user):
    user = await make_user("ghost", UserRole.WAITER, is_active=False)

    with pytest.raises(AuthenticationError) as exc:
        await gate.authenticate(bearer(user))
    assert exc.value.message == "User account is deactivated"


async def test_token_for_unknown_user_is_refused(gate):
    with pytest.raises(AuthenticationError):
        await gate.authenticate(f"Bearer {create_access_token(999, 'admin')}")


async def test_login(gate, make_user):
    await make_user("cashier", UserRole.CASHIER)

    token, identity = await gate.login("cashier", TEST_PASSWORD)

    assert identity.role == UserRole.CASHIER
    assert decode_access_token(token)["sub"] == identity.id


async def test_login_with_wrong_password(gate, make_user):
    await make_user("cashier", UserRole.CASHIER)
    with pytest.raises(AuthenticationError):
        await gate.login("cashier", "nope")


async def test_login_refused_for_deactivated_account(gate, make_user):
    await make_user("old", UserRole.CASHIER, is_active=False)
    with pytest.raises(AuthenticationError):
        await gate.login("old", TEST_PASSWORD)


async def test_refresh_issues_new_token(gate, make_user):
    user = await make_user("chef", UserRole.KITCHEN)
    token, identity = await gate.refresh(bearer(user))
    assert identity.id == user.id
    assert decode_access_token(token)["sub"] == user.id


# =============================================================================
# AUTHORIZATION
# =============================================================================

def identity(role: UserRole, super_admin: bool = False, permissions=None) -> Identity:
    return Identity(
        id=1,
        username="u",
        role=role,
        is_super_admin=super_admin,
        permissions=permissions or {},
    )


def test_role_in_allowed_list():
    assert IdentityGate.authorize(identity(UserRole.KITCHEN), [UserRole.KITCHEN, UserRole.WAITER])
    assert IdentityGate.authorize(identity(UserRole.KITCHEN), ["kitchen"])


def test_role_outside_allowed_list():
    assert not IdentityGate.authorize(identity(UserRole.WAITER), [UserRole.CASHIER])


def test_superadmin_bypasses_role_list():
    assert IdentityGate.authorize(identity(UserRole.STAFF, super_admin=True), [])


def test_require_raises_forbidden(gate):
    with pytest.raises(PermissionDeniedError):
        gate.require(identity(UserRole.KITCHEN), [UserRole.CASHIER, UserRole.ADMIN])


def test_check_permission_denies_unspecified_modules():
    manager = identity(UserRole.MANAGER, permissions={"menu": ["read", "update"]})

    assert IdentityGate.check_permission(manager, "menu", "update")
    assert not IdentityGate.check_permission(manager, "menu", "delete")
    assert not IdentityGate.check_permission(manager, "billing", "read")


def test_check_permission_superadmin_bypass():
    assert IdentityGate.check_permission(identity(UserRole.STAFF, super_admin=True), "users", "delete")


def test_require_permission(gate):
    with pytest.raises(PermissionDeniedError):
        gate.require_permission(identity(UserRole.STAFF), "tables", "delete")
