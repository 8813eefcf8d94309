"""
# Payment and Event Registration Routes

- `POST /payments` - Record a completed payment for the caller
- `GET /payments` - The caller's payments (super admins may pass `email`)
- `POST /event-registrations` - Register the caller for an approved event
- `GET /event-registrations` - The caller's registrations (super admins may pass `email`)
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from clubsphere.exceptions import ClubSphereError
from clubsphere.managers.club_auth_manager import resolve_subject_email
from clubsphere.managers.identity_manager import VerifiedIdentity
from clubsphere.managers.logging_manager import get_logger
from clubsphere.managers.registration_manager import registration_manager
from clubsphere.models.club_models import (
    CreateEventRegistrationRequest,
    EventRegistrationResponse,
    PaymentResponse,
    RecordPaymentRequest,
)
from clubsphere.routes.auth import get_current_principal

logger = get_logger(prefix="[Payment Routes]")

router = APIRouter(tags=["payments"])


@router.post("/payments", response_model=PaymentResponse, status_code=status.HTTP_201_CREATED)
async def record_payment(request: RecordPaymentRequest, identity: VerifiedIdentity = Depends(get_current_principal)):
    try:
        payment = await registration_manager.record_payment(identity, request)
        return PaymentResponse.model_validate(payment)
    except ClubSphereError as e:
        raise e.to_http()
    except Exception as e:
        logger.error("Failed to record payment: %s", e, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to record payment")


@router.get("/payments", response_model=List[PaymentResponse])
async def list_payments(
    email: Optional[str] = Query(None, description="Another user's email (super admin only)"),
    identity: VerifiedIdentity = Depends(get_current_principal),
):
    try:
        subject = await resolve_subject_email(identity, email)
        return [PaymentResponse.model_validate(p) for p in await registration_manager.list_payments(subject)]
    except ClubSphereError as e:
        raise e.to_http()
    except Exception as e:
        logger.error("Failed to list payments: %s", e, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to list payments")


@router.post(
    "/event-registrations",
    response_model=EventRegistrationResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["events"],
)
async def register_for_event(
    request: CreateEventRegistrationRequest, identity: VerifiedIdentity = Depends(get_current_principal)
):
    """
    Register the caller for an event.

    Raises:
        HTTPException(404): Event not found.
        HTTPException(409): Event not approved, or already registered.
    """
    try:
        registration = await registration_manager.register_for_event(identity, request)
        return EventRegistrationResponse.model_validate(registration)
    except ClubSphereError as e:
        raise e.to_http()
    except Exception as e:
        logger.error("Failed to register for event: %s", e, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to register for event")


@router.get("/event-registrations", response_model=List[EventRegistrationResponse], tags=["events"])
async def list_registrations(
    email: Optional[str] = Query(None, description="Another user's email (super admin only)"),
    identity: VerifiedIdentity = Depends(get_current_principal),
):
    try:
        subject = await resolve_subject_email(identity, email)
        registrations = await registration_manager.list_registrations(subject)
        return [EventRegistrationResponse.model_validate(r) for r in registrations]
    except ClubSphereError as e:
        raise e.to_http()
    except Exception as e:
        logger.error("Failed to list event registrations: %s", e, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to list event registrations")
