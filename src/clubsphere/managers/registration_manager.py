"""
# Registration Manager

Event registrations and payment records.

Payments are recorded after the client completed a charge with the payment
processor; no payment intent is created here. Both record kinds take the
caller's email from the verified token.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List

from pymongo.errors import DuplicateKeyError

from clubsphere.database import db_manager
from clubsphere.database.manager import EVENT_REGISTRATIONS_COLLECTION, EVENTS_COLLECTION, PAYMENTS_COLLECTION
from clubsphere.exceptions import ConflictError, InvalidInputError, NotFoundError
from clubsphere.managers.identity_manager import VerifiedIdentity
from clubsphere.managers.logging_manager import get_logger
from clubsphere.models.club_models import (
    CreateEventRegistrationRequest,
    EventStatus,
    PaymentType,
    RecordPaymentRequest,
    RegistrationStatus,
)
from clubsphere.utils.object_ids import parse_object_id

logger = get_logger(prefix="[Registrations]")


class RegistrationManager:
    async def register_for_event(
        self, identity: VerifiedIdentity, request: CreateEventRegistrationRequest
    ) -> Dict[str, Any]:
        """
        Register the caller for an approved event.

        Raises:
            InvalidInputError: Malformed event id, or `clubId` does not match the event.
            NotFoundError: Unknown event.
            ConflictError: Event not approved, or the caller is already registered.
        """
        oid = parse_object_id(request.event_id, "Event ID")
        events = db_manager.get_collection(EVENTS_COLLECTION)
        event = await db_manager.run_with_timeout(events.find_one({"_id": oid}), "events.find_one")
        if event is None:
            raise NotFoundError("Event not found.")
        event_id = str(event["_id"])
        club_id = str(parse_object_id(request.club_id, "Club ID"))
        if str(event.get("clubId")) != club_id:
            raise InvalidInputError("clubId does not match the event's club.")
        if event.get("status") != EventStatus.APPROVED.value:
            raise ConflictError("Event is not open for registration.")

        registrations = db_manager.get_collection(EVENT_REGISTRATIONS_COLLECTION)
        existing = await db_manager.run_with_timeout(
            registrations.find_one({"eventId": event_id, "userEmail": identity.email}),
            "event_registrations.find_one",
        )
        if existing:
            raise ConflictError("Already registered for this event.")

        document = {
            "eventId": event_id,
            "clubId": club_id,
            "userEmail": identity.email,
            "status": RegistrationStatus.REGISTERED.value,
            "paymentId": request.payment_id,
            "registeredAt": datetime.now(timezone.utc),
        }
        try:
            result = await db_manager.run_with_timeout(
                registrations.insert_one(document), "event_registrations.insert_one"
            )
        except DuplicateKeyError:
            raise ConflictError("Already registered for this event.")
        document["_id"] = result.inserted_id
        logger.info("%s registered for event %s", identity.email, event_id)
        return document

    async def list_registrations(self, email: str) -> List[Dict[str, Any]]:
        return await db_manager.find_many(
            EVENT_REGISTRATIONS_COLLECTION, {"userEmail": email}, sort=[("registeredAt", -1)]
        )

    async def record_payment(self, identity: VerifiedIdentity, request: RecordPaymentRequest) -> Dict[str, Any]:
        if request.type == PaymentType.MEMBERSHIP and not request.club_id:
            raise InvalidInputError("Membership payments need a clubId.")
        if request.type == PaymentType.EVENT and not request.event_id:
            raise InvalidInputError("Event payments need an eventId.")

        document = {
            **request.model_dump(by_alias=True, mode="json"),
            "userEmail": identity.email,
            "status": "completed",
            "createdAt": datetime.now(timezone.utc),
        }
        payments = db_manager.get_collection(PAYMENTS_COLLECTION)
        result = await db_manager.run_with_timeout(payments.insert_one(document), "payments.insert_one")
        document["_id"] = result.inserted_id
        logger.info("Recorded %s payment %s for %s", request.type.value, result.inserted_id, identity.email)
        return document

    async def list_payments(self, email: str) -> List[Dict[str, Any]]:
        return await db_manager.find_many(PAYMENTS_COLLECTION, {"userEmail": email}, sort=[("createdAt", -1)])


registration_manager = RegistrationManager()
