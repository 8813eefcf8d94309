import pytest

from clubsphere.exceptions import ForbiddenError, InvalidInputError, NotFoundError
from clubsphere.managers.club_auth_manager import (
    club_owner_guard,
    membership_approver_guard,
    resolve_subject_email,
    super_admin_guard,
)
from clubsphere.models.club_models import GlobalRole

from conftest import identity


async def test_club_owner_guard_admits_owner(seed):
    club = seed.club("owner@example.com")

    ctx = await club_owner_guard.authorize(identity("owner@example.com"), str(club["_id"]))

    assert ctx.email == "owner@example.com"
    assert ctx.resource["_id"] == club["_id"]


async def test_club_owner_guard_denies_everyone_else(seed):
    club = seed.club("owner@example.com")
    seed.user("admin@example.com", global_role="super_admin")

    with pytest.raises(ForbiddenError):
        await club_owner_guard.authorize(identity("other@example.com"), str(club["_id"]))
    # Ownership is per club, not a global privilege
    with pytest.raises(ForbiddenError):
        await club_owner_guard.authorize(identity("admin@example.com"), str(club["_id"]))


async def test_club_owner_guard_rejects_malformed_id_before_lookup(fake_db):
    with pytest.raises(InvalidInputError):
        await club_owner_guard.authorize(identity("owner@example.com"), "not-an-object-id")


async def test_club_owner_guard_missing_club(fake_db):
    with pytest.raises(NotFoundError):
        await club_owner_guard.authorize(identity("owner@example.com"), "64b7f0c2a1b2c3d4e5f60718")


async def test_super_admin_guard(seed):
    seed.user("admin@example.com", global_role="super_admin")
    seed.user("manager@example.com", global_role="club_manager")

    ctx = await super_admin_guard.authorize(identity("admin@example.com"))
    assert ctx.global_role == GlobalRole.SUPER_ADMIN

    with pytest.raises(ForbiddenError):
        await super_admin_guard.authorize(identity("manager@example.com"))
    with pytest.raises(ForbiddenError):
        await super_admin_guard.authorize(identity("unregistered@example.com"))


async def test_membership_approver_admits_owner_and_super_admin(seed):
    club = seed.club("owner@example.com")
    membership = seed.membership(club, "alice@example.com")
    seed.user("admin@example.com", global_role="super_admin")

    owner_ctx = await membership_approver_guard.authorize(identity("owner@example.com"), str(membership["_id"]))
    admin_ctx = await membership_approver_guard.authorize(identity("admin@example.com"), str(membership["_id"]))

    assert owner_ctx.resource["_id"] == membership["_id"]
    assert admin_ctx.global_role == GlobalRole.SUPER_ADMIN


async def test_membership_approver_denies_other_club_owner(seed):
    club = seed.club("owner@example.com")
    seed.club("rival@example.com", clubName="Go Club")
    membership = seed.membership(club, "alice@example.com")

    with pytest.raises(ForbiddenError):
        await membership_approver_guard.authorize(identity("rival@example.com"), str(membership["_id"]))
    with pytest.raises(ForbiddenError):
        await membership_approver_guard.authorize(identity("alice@example.com"), str(membership["_id"]))


async def test_membership_approver_orphaned_membership_is_forbidden(seed, fake_db):
    club = seed.club("owner@example.com")
    membership = seed.membership(club, "alice@example.com")
    fake_db["clubs"].documents.clear()

    with pytest.raises(ForbiddenError):
        await membership_approver_guard.authorize(identity("owner@example.com"), str(membership["_id"]))


async def test_resolve_subject_email(seed):
    seed.user("admin@example.com", global_role="super_admin")

    assert await resolve_subject_email(identity("alice@example.com"), None) == "alice@example.com"
    assert await resolve_subject_email(identity("alice@example.com"), "ALICE@example.com") == "alice@example.com"
    assert await resolve_subject_email(identity("admin@example.com"), "bob@example.com") == "bob@example.com"
    with pytest.raises(ForbiddenError):
        await resolve_subject_email(identity("alice@example.com"), "bob@example.com")
