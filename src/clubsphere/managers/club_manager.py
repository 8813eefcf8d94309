"""
# Club Manager

Business logic behind the club, event, membership and manager-application
endpoints.

## Responsibilities

- **Approval orchestration**: `review()` runs a lifecycle transition and, when
  the transition lists side effects, the consistency propagator, and folds
  both outcomes into one `TransitionResponse`.
- **Record creation**: principals, clubs, events, memberships and manager
  applications are created with server-derived identity fields (the caller's
  verified email) and server-chosen initial status (`pending`, or `member` for
  a new principal's `globalRole`).
- **Leaving a club**: deletes the caller's active membership. Whether the
  corresponding role grant is retracted is governed by
  `RETRACT_ROLE_GRANT_ON_LEAVE` (default: retained).

Identity and ownership never come from a request body.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from clubsphere.config import settings
from clubsphere.database import db_manager
from clubsphere.database.manager import (
    CLUBS_COLLECTION,
    EVENTS_COLLECTION,
    MANAGER_APPLICATIONS_COLLECTION,
    MEMBERSHIPS_COLLECTION,
    USERS_COLLECTION,
)
from clubsphere.exceptions import ConflictError, InvalidInputError, NotFoundError
from clubsphere.managers.club_auth_manager import club_owner_guard
from clubsphere.managers.consistency_manager import ConsistencyPropagator, consistency_propagator
from clubsphere.managers.identity_manager import VerifiedIdentity
from clubsphere.managers.lifecycle_manager import (
    ResourceLifecycle,
    TransitionResult,
    manager_application_lifecycle,
)
from clubsphere.managers.logging_manager import get_logger
from clubsphere.models.club_models import (
    ApplicationStatus,
    ClubStatus,
    CreateClubRequest,
    CreateEventRequest,
    CreateMembershipRequest,
    EventStatus,
    GlobalRole,
    LeaveClubResponse,
    ManagerApplicationRequest,
    MembershipStatus,
    RegisterUserRequest,
    TransitionResponse,
    UpdateClubRequest,
)
from clubsphere.utils.object_ids import parse_object_id, serialize_document
from clubsphere.utils.query_filters import CLUB_SORTS, EVENT_SORTS, build_club_filter, build_event_filter, build_sort

logger = get_logger(prefix="[Club Manager]")

LIVE_MEMBERSHIP_STATUSES = [MembershipStatus.PENDING.value, MembershipStatus.ACTIVE.value]


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ClubManager:
    """Orchestrates club platform operations on top of the lifecycles and guards."""

    def __init__(self, propagator: Optional[ConsistencyPropagator] = None):
        self.propagator = propagator or consistency_propagator

    # Approval workflow

    async def review(
        self, lifecycle: ResourceLifecycle, entity_id: str, requested_status: str, actor: str
    ) -> TransitionResponse:
        """
        Apply an approval decision and propagate its side effects.

        A failed propagation does not undo the transition; it is returned as a
        warning with `propagation.ok = False`.
        """
        result = await lifecycle.apply(entity_id, requested_status, actor)
        return await self.complete(result)

    async def complete(self, result: TransitionResult) -> TransitionResponse:
        """Run the propagator for a committed transition and build the response."""
        response = TransitionResponse(
            entity=result.entity,
            id=result.entity_id,
            previous_status=result.previous_status,
            status=result.new_status,
            side_effects=[effect.value for effect in result.side_effects],
            document=serialize_document(result.document),
        )
        if result.side_effects:
            report = await self.propagator.propagate(result)
            response.propagation = report.to_response()
            response.warnings = report.warnings()
        return response

    # Principals

    async def register_user(self, identity: VerifiedIdentity, request: RegisterUserRequest) -> Tuple[Dict[str, Any], bool]:
        """
        Create or refresh the caller's principal record.

        `globalRole` is only ever set to `member`, and only on insert.

        Returns:
            The stored principal and whether it was newly created.
        """
        users = db_manager.get_collection(USERS_COLLECTION)
        now = _now()
        profile = request.model_dump(by_alias=True, exclude_unset=True)
        existing = await db_manager.run_with_timeout(users.find_one({"email": identity.email}), "users.find_one")
        try:
            document = await db_manager.run_with_timeout(
                users.find_one_and_update(
                    {"email": identity.email},
                    {
                        "$set": {**profile, "updatedAt": now},
                        "$setOnInsert": {"globalRole": GlobalRole.MEMBER.value, "createdAt": now},
                    },
                    upsert=True,
                    return_document=ReturnDocument.AFTER,
                ),
                "users.find_one_and_update",
            )
        except DuplicateKeyError:
            # Concurrent first registration; the other request created the record
            document = await db_manager.run_with_timeout(users.find_one({"email": identity.email}), "users.find_one")
        created = existing is None
        if created:
            logger.info("Registered principal %s", identity.email)
        return document, created

    async def get_principal(self, email: str) -> Dict[str, Any]:
        users = db_manager.get_collection(USERS_COLLECTION)
        principal = await db_manager.run_with_timeout(users.find_one({"email": email}), "users.find_one")
        if principal is None:
            raise NotFoundError("User not found.")
        return principal

    async def list_users(self) -> List[Dict[str, Any]]:
        return await db_manager.find_many(USERS_COLLECTION, {}, sort=[("createdAt", -1)])

    # Clubs

    async def create_club(self, identity: VerifiedIdentity, request: CreateClubRequest) -> Dict[str, Any]:
        now = _now()
        document = {
            **request.model_dump(by_alias=True),
            "ownerEmail": identity.email,
            "status": ClubStatus.PENDING.value,
            "createdAt": now,
            "updatedAt": now,
        }
        clubs = db_manager.get_collection(CLUBS_COLLECTION)
        result = await db_manager.run_with_timeout(clubs.insert_one(document), "clubs.insert_one")
        document["_id"] = result.inserted_id
        logger.info("Created club %s (%s) owned by %s", result.inserted_id, request.club_name, identity.email)
        return document

    async def list_clubs(
        self,
        search: Optional[str] = None,
        category: Optional[str] = None,
        status: Optional[str] = None,
        owner_email: Optional[str] = None,
        sort: Optional[str] = None,
        limit: int = 100,
    ) -> List[Dict[str, Any]]:
        query = build_club_filter(search=search, category=category, status=status, owner_email=owner_email)
        return await db_manager.find_many(CLUBS_COLLECTION, query, sort=build_sort(sort, CLUB_SORTS), limit=limit)

    async def get_club(self, club_id: str) -> Dict[str, Any]:
        oid = parse_object_id(club_id, "Club ID")
        clubs = db_manager.get_collection(CLUBS_COLLECTION)
        club = await db_manager.run_with_timeout(clubs.find_one({"_id": oid}), "clubs.find_one")
        if club is None:
            raise NotFoundError("Club not found.")
        return club

    async def update_club(self, club: Dict[str, Any], request: UpdateClubRequest) -> Dict[str, Any]:
        """
        Apply an owner's patch to a club already loaded by the owner guard.

        The write is conditional on the persisted `ownerEmail` as well as the id.
        """
        changes = request.to_update()
        if not changes:
            raise InvalidInputError("No fields to update.")
        changes["updatedAt"] = _now()

        clubs = db_manager.get_collection(CLUBS_COLLECTION)
        document = await db_manager.run_with_timeout(
            clubs.find_one_and_update(
                {"_id": club["_id"], "ownerEmail": club["ownerEmail"]},
                {"$set": changes},
                return_document=ReturnDocument.AFTER,
            ),
            "clubs.find_one_and_update",
        )
        if document is None:
            raise NotFoundError("Club not found.")
        logger.info("Updated club %s fields %s", club["_id"], sorted(changes))
        return document

    # Events

    async def create_event(self, identity: VerifiedIdentity, request: CreateEventRequest) -> Dict[str, Any]:
        """Create a pending event. Only the owner of the event's club may do so."""
        owner = await club_owner_guard.authorize(identity, request.club_id)
        if request.is_paid and request.event_fee <= 0:
            raise InvalidInputError("Paid events need a positive eventFee.")

        document = {
            **request.model_dump(by_alias=True),
            "clubId": str(owner.resource["_id"]),
            "status": EventStatus.PENDING.value,
            "createdBy": identity.email,
            "createdAt": _now(),
        }
        events = db_manager.get_collection(EVENTS_COLLECTION)
        result = await db_manager.run_with_timeout(events.insert_one(document), "events.insert_one")
        document["_id"] = result.inserted_id
        logger.info("Created event %s for club %s", result.inserted_id, document["clubId"])
        return document

    async def list_events(
        self,
        search: Optional[str] = None,
        club_id: Optional[str] = None,
        status: Optional[str] = None,
        is_paid: Optional[bool] = None,
        sort: Optional[str] = None,
        limit: int = 100,
    ) -> List[Dict[str, Any]]:
        if club_id:
            club_id = str(parse_object_id(club_id, "Club ID"))
        query = build_event_filter(search=search, club_id=club_id, status=status, is_paid=is_paid)
        return await db_manager.find_many(EVENTS_COLLECTION, query, sort=build_sort(sort, EVENT_SORTS), limit=limit)

    # Memberships

    async def create_membership(self, identity: VerifiedIdentity, request: CreateMembershipRequest) -> Dict[str, Any]:
        """
        Request to join a club. The membership starts `pending`.

        Raises:
            InvalidInputError: Malformed club id.
            NotFoundError: Unknown club.
            ConflictError: The caller already has a pending or active membership.
        """
        club = await self.get_club(request.club_id)
        if club.get("status") != ClubStatus.APPROVED.value:
            raise ConflictError("Club is not accepting members yet.")
        club_id = str(club["_id"])

        memberships = db_manager.get_collection(MEMBERSHIPS_COLLECTION)
        existing = await db_manager.run_with_timeout(
            memberships.find_one(
                {"clubId": club_id, "userEmail": identity.email, "status": {"$in": LIVE_MEMBERSHIP_STATUSES}}
            ),
            "memberships.find_one",
        )
        if existing:
            raise ConflictError(
                "You already have a membership for this club.",
                extra={"existingMembership": serialize_document(existing)},
            )

        now = _now()
        document = {
            "clubId": club_id,
            "userEmail": identity.email,
            "status": MembershipStatus.PENDING.value,
            "paymentId": request.payment_id,
            "joinedAt": now,
            "updatedAt": now,
        }
        try:
            result = await db_manager.run_with_timeout(memberships.insert_one(document), "memberships.insert_one")
        except DuplicateKeyError:
            raise ConflictError("You already have a membership for this club.")
        document["_id"] = result.inserted_id
        logger.info("Membership %s requested by %s for club %s", result.inserted_id, identity.email, club_id)
        return document

    async def list_memberships(self, email: str, status: Optional[str] = None) -> List[Dict[str, Any]]:
        query: Dict[str, Any] = {"userEmail": email}
        if status:
            query["status"] = status
        return await db_manager.find_many(MEMBERSHIPS_COLLECTION, query, sort=[("joinedAt", -1)])

    async def leave_club(self, identity: VerifiedIdentity, membership_id: str) -> LeaveClubResponse:
        """
        Delete the caller's active membership.

        The member role grant is kept unless `RETRACT_ROLE_GRANT_ON_LEAVE` is
        enabled; `role_grant_retained` in the response reports which happened.
        """
        oid = parse_object_id(membership_id, "Membership ID")
        memberships = db_manager.get_collection(MEMBERSHIPS_COLLECTION)
        membership = await db_manager.run_with_timeout(
            memberships.find_one_and_delete(
                {"_id": oid, "userEmail": identity.email, "status": MembershipStatus.ACTIVE.value}
            ),
            "memberships.find_one_and_delete",
        )
        if membership is None:
            raise NotFoundError("Active membership not found.")

        club_id = str(membership.get("clubId"))
        retained = True
        if settings.RETRACT_ROLE_GRANT_ON_LEAVE:
            await self.propagator.retract_member_role(club_id, identity.email)
            retained = False

        logger.info(
            "%s left club %s (membership %s, role grant %s)",
            identity.email,
            club_id,
            membership_id,
            "retained" if retained else "retracted",
        )
        return LeaveClubResponse(membership_id=membership_id, club_id=club_id, role_grant_retained=retained)

    # Manager applications

    async def apply_for_manager(
        self, identity: VerifiedIdentity, request: ManagerApplicationRequest
    ) -> Tuple[Dict[str, Any], bool]:
        """
        Submit, or re-submit after rejection, the caller's manager application.

        Returns:
            The stored application and whether it was newly created.

        Raises:
            ConflictError: An application is already pending or approved.
        """
        existing = await manager_application_lifecycle.find_by_email(identity.email)

        if existing is None:
            document = {
                **request.model_dump(by_alias=True),
                "email": identity.email,
                "status": ApplicationStatus.PENDING.value,
                "appliedAt": _now(),
            }
            applications = db_manager.get_collection(MANAGER_APPLICATIONS_COLLECTION)
            try:
                result = await db_manager.run_with_timeout(
                    applications.insert_one(document), "manager_applications.insert_one"
                )
            except DuplicateKeyError:
                raise ConflictError("An application for this account already exists.")
            document["_id"] = result.inserted_id
            logger.info("Manager application submitted by %s", identity.email)
            return document, True

        status = existing.get("status")
        if status == ApplicationStatus.APPROVED.value:
            raise ConflictError("Your manager application has already been approved.")
        if status == ApplicationStatus.PENDING.value:
            raise ConflictError("Your manager application is already pending review.")

        result = await manager_application_lifecycle.reapply(identity.email, request)
        return result.document, False

    async def get_application_for(self, email: str) -> Dict[str, Any]:
        application = await manager_application_lifecycle.find_by_email(email)
        if application is None:
            raise NotFoundError("No manager application found.")
        return application

    async def list_applications(self, status: Optional[str] = None) -> List[Dict[str, Any]]:
        query: Dict[str, Any] = {}
        if status:
            query["status"] = status
        return await db_manager.find_many(MANAGER_APPLICATIONS_COLLECTION, query, sort=[("appliedAt", -1)])


club_manager = ClubManager()
