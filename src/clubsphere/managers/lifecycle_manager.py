"""
# Lifecycle Manager

Status state machines for clubs, events, memberships and manager applications.

## Transition Contract

`transition(entity_id, expected_status, requested_status, actor)`:

1.  Rejects malformed ids (`InvalidInputError`).
2.  Rejects any `requested_status` that the legal-transition table does not
    allow from `expected_status` (`InvalidTransitionError`), whoever the actor is.
3.  Performs a single conditional write matching **both** the id and the
    expected status (`find_one_and_update`). Two requests racing on the same
    entity cannot both match: the loser sees no document and gets
    `ConflictError` (or `NotFoundError` if the entity vanished).
4.  Returns a `TransitionResult` naming the side effects the consistency
    propagator must run (role grant, manager promotion).

## Transition Tables

```
Club / Event           pending ──▶ approved | rejected
Membership             pending ──▶ active (grant_member_role) | rejected
ManagerApplication     pending ──▶ approved (promote_club_manager) | rejected
                       rejected ─▶ pending   (re-application)
```

Re-application (`ManagerApplicationLifecycle.reapply`) is the applicant-driven
form of `rejected → pending`; it also refreshes the application fields in the
same conditional write. Either route resets `appliedAt` and clears the review.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Type

from bson import ObjectId
from pymongo import ReturnDocument

from clubsphere.database import db_manager
from clubsphere.database.manager import (
    CLUBS_COLLECTION,
    EVENTS_COLLECTION,
    MANAGER_APPLICATIONS_COLLECTION,
    MEMBERSHIPS_COLLECTION,
)
from clubsphere.exceptions import ConflictError, InvalidTransitionError, NotFoundError
from clubsphere.managers.logging_manager import get_logger
from clubsphere.models.club_models import (
    ApplicationStatus,
    ClubStatus,
    EventStatus,
    ManagerApplicationRequest,
    MembershipStatus,
)
from clubsphere.utils.object_ids import parse_object_id

logger = get_logger(prefix="[Lifecycle]")


class SideEffect(str, Enum):
    """Derived writes a transition obliges the consistency propagator to perform."""
    GRANT_MEMBER_ROLE = "grant_member_role"
    PROMOTE_CLUB_MANAGER = "promote_club_manager"


@dataclass
class TransitionResult:
    """Outcome of a committed status change."""
    entity: str
    entity_id: str
    previous_status: str
    new_status: str
    actor: str
    side_effects: List[SideEffect] = field(default_factory=list)
    document: Dict[str, Any] = field(default_factory=dict)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ResourceLifecycle:
    """
    Base state machine over one MongoDB collection.

    Subclasses declare `entity`, `collection_name`, `status_enum` and
    `transitions` (current status → {requested status: side effects}).
    """

    entity: str = ""
    collection_name: str = ""
    status_enum: Type[Enum] = Enum
    transitions: Dict[str, Dict[str, Tuple[SideEffect, ...]]] = {}

    @property
    def collection(self):
        return db_manager.get_collection(self.collection_name)

    def legal_targets(self, current_status: str) -> List[str]:
        return sorted(self.transitions.get(current_status, {}))

    def validate(self, current_status: str, requested_status: str) -> Tuple[SideEffect, ...]:
        """
        Check a transition against the table.

        Returns:
            The side effects the transition triggers.

        Raises:
            InvalidTransitionError: Unknown status, or a transition not in the table.
        """
        known = {member.value for member in self.status_enum}
        if requested_status not in known:
            raise InvalidTransitionError(f"Unknown {self.entity} status '{requested_status}'")
        targets = self.transitions.get(current_status, {})
        if requested_status not in targets:
            allowed = ", ".join(self.legal_targets(current_status)) or "none"
            raise InvalidTransitionError(
                f"Cannot move {self.entity} from '{current_status}' to '{requested_status}' (allowed: {allowed})"
            )
        return targets[requested_status]

    def transition_fields(self, requested_status: str, actor: str, now: datetime) -> Dict[str, Any]:
        """Extra fields written together with the new status."""
        return {"reviewedBy": actor, "reviewedAt": now, "updatedAt": now}

    async def load(self, entity_id: Any) -> Dict[str, Any]:
        oid = entity_id if isinstance(entity_id, ObjectId) else parse_object_id(entity_id, f"{self.entity} ID")
        document = await db_manager.run_with_timeout(
            self.collection.find_one({"_id": oid}), f"{self.collection_name}.find_one"
        )
        if document is None:
            raise NotFoundError(f"{self.entity.replace('_', ' ').capitalize()} not found.")
        return document

    async def transition(
        self, entity_id: str, expected_status: str, requested_status: str, actor: str
    ) -> TransitionResult:
        """
        Conditionally move an entity from `expected_status` to `requested_status`.

        Raises:
            InvalidInputError: Malformed id.
            InvalidTransitionError: Not a legal transition.
            NotFoundError: The entity does not exist.
            ConflictError: The entity is no longer in `expected_status`.
            InternalError: Storage failure or timeout.
        """
        oid = parse_object_id(entity_id, f"{self.entity} ID")
        side_effects = self.validate(expected_status, requested_status)

        now = utc_now()
        update = {"$set": {"status": requested_status, **self.transition_fields(requested_status, actor, now)}}
        document = await db_manager.run_with_timeout(
            self.collection.find_one_and_update(
                {"_id": oid, "status": expected_status},
                update,
                return_document=ReturnDocument.AFTER,
            ),
            f"{self.collection_name}.find_one_and_update",
        )

        if document is None:
            current = await db_manager.run_with_timeout(
                self.collection.find_one({"_id": oid}), f"{self.collection_name}.find_one"
            )
            if current is None:
                raise NotFoundError(f"{self.entity.replace('_', ' ').capitalize()} not found.")
            logger.info(
                "Lost transition race on %s %s: expected '%s', found '%s'",
                self.entity,
                entity_id,
                expected_status,
                current.get("status"),
            )
            raise ConflictError(
                f"{self.entity.replace('_', ' ').capitalize()} status changed concurrently "
                f"(now '{current.get('status')}')",
                extra={"currentStatus": current.get("status")},
            )

        logger.info(
            "Transitioned %s %s from %s to %s by %s", self.entity, entity_id, expected_status, requested_status, actor
        )
        return TransitionResult(
            entity=self.entity,
            entity_id=str(oid),
            previous_status=expected_status,
            new_status=requested_status,
            actor=actor,
            side_effects=list(side_effects),
            document=document,
        )

    async def apply(self, entity_id: str, requested_status: str, actor: str) -> TransitionResult:
        """
        Transition from whatever status is currently persisted.

        The read only supplies the expected status; the conditional write still
        decides the winner if another request changes the entity in between.
        """
        current = await self.load(entity_id)
        return await self.transition(entity_id, current.get("status"), requested_status, actor)


class ClubLifecycle(ResourceLifecycle):
    entity = "club"
    collection_name = CLUBS_COLLECTION
    status_enum = ClubStatus
    transitions = {
        ClubStatus.PENDING.value: {
            ClubStatus.APPROVED.value: (),
            ClubStatus.REJECTED.value: (),
        },
    }


class EventLifecycle(ResourceLifecycle):
    entity = "event"
    collection_name = EVENTS_COLLECTION
    status_enum = EventStatus
    transitions = {
        EventStatus.PENDING.value: {
            EventStatus.APPROVED.value: (),
            EventStatus.REJECTED.value: (),
        },
    }


class MembershipLifecycle(ResourceLifecycle):
    entity = "membership"
    collection_name = MEMBERSHIPS_COLLECTION
    status_enum = MembershipStatus
    transitions = {
        MembershipStatus.PENDING.value: {
            MembershipStatus.ACTIVE.value: (SideEffect.GRANT_MEMBER_ROLE,),
            MembershipStatus.REJECTED.value: (),
        },
    }


class ManagerApplicationLifecycle(ResourceLifecycle):
    entity = "manager_application"
    collection_name = MANAGER_APPLICATIONS_COLLECTION
    status_enum = ApplicationStatus
    transitions = {
        ApplicationStatus.PENDING.value: {
            ApplicationStatus.APPROVED.value: (SideEffect.PROMOTE_CLUB_MANAGER,),
            ApplicationStatus.REJECTED.value: (),
        },
        ApplicationStatus.REJECTED.value: {
            ApplicationStatus.PENDING.value: (),
        },
    }

    def transition_fields(self, requested_status: str, actor: str, now: datetime) -> Dict[str, Any]:
        if requested_status == ApplicationStatus.PENDING.value:
            return {"appliedAt": now, "reviewedBy": None, "reviewedAt": None, "updatedAt": now}
        return super().transition_fields(requested_status, actor, now)

    async def find_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        return await db_manager.run_with_timeout(
            self.collection.find_one({"email": email}), f"{self.collection_name}.find_one"
        )

    async def reapply(self, email: str, request: ManagerApplicationRequest) -> TransitionResult:
        """
        Re-open a rejected application with fresh details.

        Matches on the applicant's email *and* `status == rejected`, so an
        application approved (or re-opened) in the meantime is never overwritten.

        Raises:
            ConflictError: The application is not in `rejected` any more.
        """
        self.validate(ApplicationStatus.REJECTED.value, ApplicationStatus.PENDING.value)
        now = utc_now()
        fields = request.model_dump(by_alias=True)
        update = {
            "$set": {
                **fields,
                "status": ApplicationStatus.PENDING.value,
                **self.transition_fields(ApplicationStatus.PENDING.value, email, now),
            }
        }
        document = await db_manager.run_with_timeout(
            self.collection.find_one_and_update(
                {"email": email, "status": ApplicationStatus.REJECTED.value},
                update,
                return_document=ReturnDocument.AFTER,
            ),
            f"{self.collection_name}.find_one_and_update",
        )
        if document is None:
            raise ConflictError("Application can no longer be re-submitted")

        logger.info("Manager application for %s re-submitted", email)
        return TransitionResult(
            entity=self.entity,
            entity_id=str(document["_id"]),
            previous_status=ApplicationStatus.REJECTED.value,
            new_status=ApplicationStatus.PENDING.value,
            actor=email,
            document=document,
        )


club_lifecycle = ClubLifecycle()
event_lifecycle = EventLifecycle()
membership_lifecycle = MembershipLifecycle()
manager_application_lifecycle = ManagerApplicationLifecycle()
