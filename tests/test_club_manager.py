from unittest.mock import patch

import pytest

from clubsphere.exceptions import ConflictError, ForbiddenError, InvalidInputError, NotFoundError
from clubsphere.managers.club_manager import ClubManager
from clubsphere.managers.consistency_manager import ConsistencyPropagator
from clubsphere.managers.lifecycle_manager import club_lifecycle, membership_lifecycle
from clubsphere.models.club_models import (
    CreateClubRequest,
    CreateEventRequest,
    CreateMembershipRequest,
    ManagerApplicationRequest,
    RegisterUserRequest,
    UpdateClubRequest,
)

from conftest import identity


@pytest.fixture
def manager():
    return ClubManager(propagator=ConsistencyPropagator(permissions=["view_events"]))


async def test_register_user_forces_member_role(fake_db, manager):
    principal, created = await manager.register_user(identity("alice@example.com"), RegisterUserRequest(name="Alice"))
    again, created_again = await manager.register_user(identity("alice@example.com"), RegisterUserRequest(name="Al"))

    assert created is True
    assert created_again is False
    assert again["globalRole"] == "member"
    assert again["name"] == "Al"
    assert len(fake_db["users"].documents) == 1


async def test_register_user_keeps_existing_role(seed, manager):
    seed.user("admin@example.com", global_role="super_admin")

    principal, _ = await manager.register_user(identity("admin@example.com"), RegisterUserRequest(name="Root"))

    assert principal["globalRole"] == "super_admin"


async def test_create_club_is_pending_and_owned_by_caller(fake_db, manager):
    club = await manager.create_club(identity("owner@example.com"), CreateClubRequest(clubName="Cycling"))

    assert club["ownerEmail"] == "owner@example.com"
    assert club["status"] == "pending"
    assert fake_db["clubs"].documents[0]["clubName"] == "Cycling"


async def test_update_club_applies_only_sent_fields(seed, fake_db, manager):
    club = seed.club("owner@example.com", description="old", category="sport")

    updated = await manager.update_club(club, UpdateClubRequest(description="new"))

    assert updated["description"] == "new"
    assert updated["category"] == "sport"
    assert updated["ownerEmail"] == "owner@example.com"


async def test_update_club_rejects_empty_patch(seed, manager):
    club = seed.club("owner@example.com")

    with pytest.raises(InvalidInputError):
        await manager.update_club(club, UpdateClubRequest())


async def test_create_event_requires_club_ownership(seed, manager):
    club = seed.club("owner@example.com")
    request = CreateEventRequest(clubId=str(club["_id"]), title="Night Ride", eventDate="2026-11-01T18:00:00Z")

    with pytest.raises(ForbiddenError):
        await manager.create_event(identity("alice@example.com"), request)

    event = await manager.create_event(identity("owner@example.com"), request)
    assert event["status"] == "pending"
    assert event["createdBy"] == "owner@example.com"


async def test_paid_event_needs_fee(seed, manager):
    club = seed.club("owner@example.com")
    request = CreateEventRequest(
        clubId=str(club["_id"]), title="Gala", eventDate="2026-11-01T18:00:00Z", isPaid=True, eventFee=0
    )

    with pytest.raises(InvalidInputError):
        await manager.create_event(identity("owner@example.com"), request)


async def test_duplicate_membership_returns_existing(seed, manager):
    club = seed.club("owner@example.com")
    request = CreateMembershipRequest(clubId=str(club["_id"]))

    first = await manager.create_membership(identity("alice@example.com"), request)
    with pytest.raises(ConflictError) as exc_info:
        await manager.create_membership(identity("alice@example.com"), request)

    assert first["status"] == "pending"
    assert exc_info.value.extra["existingMembership"]["_id"] == str(first["_id"])


async def test_membership_for_unapproved_club_is_refused(seed, manager):
    club = seed.club("owner@example.com", status="pending")

    with pytest.raises(ConflictError):
        await manager.create_membership(identity("alice@example.com"), CreateMembershipRequest(clubId=str(club["_id"])))


async def test_rejected_membership_allows_new_request(seed, manager):
    club = seed.club("owner@example.com")
    seed.membership(club, "alice@example.com", status="rejected")

    membership = await manager.create_membership(
        identity("alice@example.com"), CreateMembershipRequest(clubId=str(club["_id"]))
    )

    assert membership["status"] == "pending"


async def test_review_membership_reports_propagation(seed, fake_db, manager):
    club = seed.club("owner@example.com")
    membership = seed.membership(club, "alice@example.com")

    response = await manager.review(membership_lifecycle, str(membership["_id"]), "active", "owner@example.com")

    assert response.status == "active"
    assert response.side_effects == ["grant_member_role"]
    assert response.propagation.ok is True
    assert response.warnings == []
    assert response.document["_id"] == str(membership["_id"])
    assert len(fake_db["role_grants"].documents) == 1


async def test_review_without_side_effects_has_no_propagation(seed, manager):
    club = seed.club("owner@example.com", status="pending")

    response = await manager.review(club_lifecycle, str(club["_id"]), "rejected", "admin@example.com")

    assert response.propagation is None


async def test_leave_club_retains_role_grant_by_default(seed, fake_db, manager):
    club = seed.club("owner@example.com")
    membership = seed.membership(club, "alice@example.com", status="active")
    await manager.propagator.grant_member_role(membership)

    response = await manager.leave_club(identity("alice@example.com"), str(membership["_id"]))

    assert response.role_grant_retained is True
    assert fake_db["memberships"].documents == []
    assert len(fake_db["role_grants"].documents) == 1


async def test_leave_club_can_retract_role_grant(seed, fake_db, manager):
    club = seed.club("owner@example.com")
    membership = seed.membership(club, "alice@example.com", status="active")
    await manager.propagator.grant_member_role(membership)

    with patch("clubsphere.managers.club_manager.settings") as mock_settings:
        mock_settings.RETRACT_ROLE_GRANT_ON_LEAVE = True
        response = await manager.leave_club(identity("alice@example.com"), str(membership["_id"]))

    assert response.role_grant_retained is False
    assert fake_db["role_grants"].documents == []


async def test_leave_club_only_own_active_membership(seed, manager):
    club = seed.club("owner@example.com")
    pending = seed.membership(club, "alice@example.com", status="pending")
    other = seed.membership(club, "bob@example.com", status="active")

    with pytest.raises(NotFoundError):
        await manager.leave_club(identity("alice@example.com"), str(pending["_id"]))
    with pytest.raises(NotFoundError):
        await manager.leave_club(identity("alice@example.com"), str(other["_id"]))


async def test_apply_for_manager_flow(seed, fake_db, manager):
    request = ManagerApplicationRequest(name="Carol", reason="I organise rides")

    application, created = await manager.apply_for_manager(identity("carol@example.com"), request)
    assert created is True
    assert application["status"] == "pending"

    with pytest.raises(ConflictError):
        await manager.apply_for_manager(identity("carol@example.com"), request)

    fake_db["manager_applications"].documents[0]["status"] = "rejected"
    reopened, created = await manager.apply_for_manager(
        identity("carol@example.com"), ManagerApplicationRequest(name="Carol", reason="Try again")
    )
    assert created is False
    assert reopened["status"] == "pending"
    assert reopened["reason"] == "Try again"

    fake_db["manager_applications"].documents[0]["status"] = "approved"
    with pytest.raises(ConflictError):
        await manager.apply_for_manager(identity("carol@example.com"), request)
    assert len(fake_db["manager_applications"].documents) == 1


async def test_list_clubs_filters(seed, manager):
    seed.club("a@example.com", clubName="Chess Masters", category="games")
    seed.club("b@example.com", clubName="Rowing", category="sport")
    seed.club("c@example.com", clubName="Chess Juniors", category="games", status="pending")

    approved_chess = await manager.list_clubs(search="chess", status="approved")
    games = await manager.list_clubs(category="games")

    assert [c["clubName"] for c in approved_chess] == ["Chess Masters"]
    assert {c["clubName"] for c in games} == {"Chess Masters", "Chess Juniors"}


async def test_event_and_registration_store_canonical_ids(seed, fake_db, manager):
    from clubsphere.managers.registration_manager import RegistrationManager
    from clubsphere.models.club_models import CreateEventRegistrationRequest

    club = seed.club("owner@example.com")
    club_id = str(club["_id"])
    event = await manager.create_event(
        identity("owner@example.com"),
        CreateEventRequest(clubId=club_id.upper(), title="Night Ride", eventDate="2026-11-01T18:00:00Z"),
    )
    fake_db["events"].documents[0]["status"] = "approved"
    event_id = str(event["_id"])

    registrations = RegistrationManager()
    registration = await registrations.register_for_event(
        identity("alice@example.com"), CreateEventRegistrationRequest(eventId=event_id, clubId=club_id.upper())
    )
    with pytest.raises(ConflictError):
        await registrations.register_for_event(
            identity("alice@example.com"), CreateEventRegistrationRequest(eventId=event_id.upper(), clubId=club_id)
        )

    assert event["clubId"] == club_id
    assert registration["clubId"] == club_id
    assert registration["eventId"] == event_id
    assert len(fake_db["event_registrations"].documents) == 1


def test_update_club_request_refuses_null_name():
    from pydantic import ValidationError

    with pytest.raises(ValidationError):
        UpdateClubRequest.model_validate({"clubName": None})
    with pytest.raises(ValidationError):
        UpdateClubRequest.model_validate({"membershipFee": None})

    assert UpdateClubRequest.model_validate({"description": None}).to_update() == {"description": None}
