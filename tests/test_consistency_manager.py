from pymongo.errors import PyMongoError
import pytest

from clubsphere.managers.consistency_manager import ConsistencyPropagator, PropagationError
from clubsphere.managers.lifecycle_manager import manager_application_lifecycle, membership_lifecycle

PERMISSIONS = ["view_events", "register_events", "view_members"]


@pytest.fixture
def propagator():
    return ConsistencyPropagator(permissions=PERMISSIONS)


async def test_activation_grants_exactly_one_member_role(seed, fake_db, propagator):
    club = seed.club("owner@example.com")
    membership = seed.membership(club, "alice@example.com")

    result = await membership_lifecycle.apply(str(membership["_id"]), "active", "owner@example.com")
    report = await propagator.propagate(result)

    assert report.ok
    assert report.applied == ["grant_member_role"]
    grants = fake_db["role_grants"].documents
    assert len(grants) == 1
    assert grants[0]["clubId"] == str(club["_id"])
    assert grants[0]["userEmail"] == "alice@example.com"
    assert grants[0]["role"] == "member"
    assert grants[0]["permissions"] == PERMISSIONS


async def test_role_grant_replay_keeps_assigned_at(seed, fake_db, propagator):
    club = seed.club("owner@example.com")
    membership = seed.membership(club, "alice@example.com", status="active")

    await propagator.grant_member_role(membership)
    assigned_at = fake_db["role_grants"].documents[0]["assignedAt"]
    await propagator.grant_member_role(membership)
    await propagator.grant_member_role(membership)

    grants = fake_db["role_grants"].documents
    assert len(grants) == 1
    assert grants[0]["assignedAt"] == assigned_at


async def test_promotion_uses_stored_application_email(seed, fake_db, propagator):
    seed.user("carol@example.com")
    seed.user("mallory@example.com")
    application = seed.application("carol@example.com")

    result = await manager_application_lifecycle.apply(str(application["_id"]), "approved", "admin@example.com")
    # A caller-controlled copy of the document cannot redirect the promotion
    result.document["email"] = "mallory@example.com"
    report = await propagator.propagate(result)

    roles = {u["email"]: u["globalRole"] for u in fake_db["users"].documents}
    assert report.ok
    assert roles == {"carol@example.com": "club_manager", "mallory@example.com": "member"}


async def test_promotion_never_demotes_super_admin(seed, fake_db, propagator):
    seed.user("root@example.com", global_role="super_admin")
    application = seed.application("root@example.com", status="approved")

    await propagator.promote_club_manager(application)

    assert fake_db["users"].documents[0]["globalRole"] == "super_admin"


async def test_promotion_without_principal_fails(seed, propagator):
    application = seed.application("ghost@example.com", status="approved")

    with pytest.raises(PropagationError):
        await propagator.promote_club_manager(application)


async def test_promotion_requires_approved_application(seed, propagator):
    seed.user("carol@example.com")
    application = seed.application("carol@example.com", status="rejected")

    with pytest.raises(PropagationError):
        await propagator.promote_club_manager(application)


async def test_failed_derived_write_is_reported_not_raised(seed, fake_db, propagator):
    club = seed.club("owner@example.com")
    membership = seed.membership(club, "alice@example.com")
    fake_db["role_grants"].fail_next("update_one", PyMongoError("network"))

    result = await membership_lifecycle.apply(str(membership["_id"]), "active", "owner@example.com")
    report = await propagator.propagate(result)

    assert not report.ok
    assert report.failures[0].side_effect == "grant_member_role"
    assert "reconciliation" in report.warnings()[0]
    # The primary transition stays committed
    assert fake_db["memberships"].documents[0]["status"] == "active"
    assert fake_db["role_grants"].documents == []


async def test_detect_and_reconcile_drift(seed, fake_db, propagator):
    club = seed.club("owner@example.com")
    seed.membership(club, "alice@example.com", status="active")
    seed.membership(club, "bob@example.com", status="pending")
    seed.user("carol@example.com")
    seed.application("carol@example.com", status="approved")

    drift = await propagator.detect_drift()
    assert [m["userEmail"] for m in drift.memberships_missing_grants] == ["alice@example.com"]
    assert [a["email"] for a in drift.applications_missing_promotion] == ["carol@example.com"]

    dry = await propagator.reconcile(dry_run=True)
    assert dry.drift.total == 2
    assert fake_db["role_grants"].documents == []

    result = await propagator.reconcile()
    assert result.role_grants_repaired == 1
    assert result.promotions_repaired == 1
    assert result.failures == []
    assert (await propagator.detect_drift()).total == 0


async def test_retract_member_role(seed, fake_db, propagator):
    club = seed.club("owner@example.com")
    membership = seed.membership(club, "alice@example.com", status="active")
    await propagator.grant_member_role(membership)

    assert await propagator.retract_member_role(str(club["_id"]), "alice@example.com") is True
    assert await propagator.retract_member_role(str(club["_id"]), "alice@example.com") is False
