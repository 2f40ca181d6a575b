import pytest

from qrdine.core.errors import AuthenticationError, ConflictError, PermissionDeniedError
from qrdine.models import UserRole
from qrdine.schemas import UserCreate, UserUpdate
from qrdine.services.auth import CredentialStore, Identity, IdentityGate, verify_password
from qrdine.services.users import UserDirectory

from tests.conftest import auth_header


@pytest.fixture
def directory(session):
    return UserDirectory(session)


@pytest.fixture
async def admin(make_user):
    return Identity.from_user(await make_user("boss", UserRole.ADMIN))


@pytest.fixture
async def owner(make_user):
    return Identity.from_user(await make_user("owner", UserRole.SUPERADMIN, is_super_admin=True))


async def test_create_user_hashes_password(directory, admin):
    user = await directory.create_user(
        UserCreate(username="chef", email="Chef@Example.com", password="spicy123", role=UserRole.KITCHEN),
        admin,
    )

    assert user.email == "chef@example.com"
    assert user.created_by_id == admin.id
    assert verify_password("spicy123", user.password_hash)


async def test_duplicate_username(directory, admin, make_user):
    await make_user("chef", UserRole.KITCHEN)
    with pytest.raises(ConflictError):
        await directory.create_user(
            UserCreate(username="chef", email="other@example.com", password="spicy123"), admin
        )


async def test_only_superadmin_creates_admins(directory, admin, owner):
    data = UserCreate(username="boss2", email="b2@example.com", password="secret99", role=UserRole.ADMIN)

    with pytest.raises(PermissionDeniedError):
        await directory.create_user(data, admin)

    assert (await directory.create_user(data, owner)).role == UserRole.ADMIN


async def test_only_superadmin_grants_superadmin(directory, admin):
    data = UserCreate(username="xyz", email="xyz@example.com", password="secret99", is_super_admin=True)

    with pytest.raises(PermissionDeniedError):
        await directory.create_user(data, admin)


async def test_cannot_deactivate_self_through_update(directory, admin):
    with pytest.raises(ConflictError):
        await directory.update_user(admin.id, UserUpdate(is_active=False), admin)

    assert (await directory.get_user(admin.id)).is_active is True


async def test_admin_edits_own_profile(directory, admin):
    updated = await directory.update_user(admin.id, UserUpdate(first_name="Bo"), admin)
    assert updated.first_name == "Bo"


async def test_admin_cannot_modify_other_admins(directory, admin, make_user):
    other = await make_user("boss2", UserRole.ADMIN)
    with pytest.raises(PermissionDeniedError):
        await directory.update_user(other.id, UserUpdate(first_name="Nope"), admin)


async def test_admin_updates_staff(directory, admin, make_user):
    waiter = await make_user("sam", UserRole.WAITER)

    updated = await directory.update_user(
        waiter.id, UserUpdate(role=UserRole.CASHIER, password="newpass1"), admin
    )

    assert updated.role == UserRole.CASHIER
    assert verify_password("newpass1", updated.password_hash)


async def test_deactivation_locks_out_existing_tokens(directory, session, admin, make_user):
    waiter = await make_user("sam", UserRole.WAITER)
    header = auth_header(waiter)["Authorization"]

    deactivated = await directory.deactivate_user(waiter.id, admin)

    assert deactivated.is_active is False
    with pytest.raises(AuthenticationError):
        await IdentityGate(CredentialStore(session)).authenticate(header)


async def test_cannot_deactivate_self(directory, admin):
    with pytest.raises(ConflictError):
        await directory.deactivate_user(admin.id, admin)
