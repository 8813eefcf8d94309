"""
# Event Routes

- `POST /events` - Create an event for a club the caller owns (status `pending`)
- `GET /events` - List/filter events
- `PATCH /events/{event_id}/status` - Approve or reject (super admin only)

Anonymous callers and members see `approved` events. The owner of the club
named by `clubId`, and super admins, may filter by any status.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from clubsphere.exceptions import ClubSphereError, ForbiddenError, InvalidInputError, NotFoundError
from clubsphere.managers.club_auth_manager import (
    AuthorizedPrincipal,
    club_owner_guard,
    require_super_admin,
    super_admin_guard,
)
from clubsphere.managers.club_manager import club_manager
from clubsphere.managers.identity_manager import VerifiedIdentity
from clubsphere.managers.lifecycle_manager import event_lifecycle
from clubsphere.managers.logging_manager import get_logger
from clubsphere.models.club_models import (
    CreateEventRequest,
    EventResponse,
    EventStatus,
    StatusTransitionRequest,
    TransitionResponse,
)
from clubsphere.routes.auth import get_current_principal, get_optional_principal

logger = get_logger(prefix="[Event Routes]")

router = APIRouter(prefix="/events", tags=["events"])


async def _may_see_unapproved(identity: Optional[VerifiedIdentity], club_id: Optional[str]) -> bool:
    if identity is None:
        return False
    if await super_admin_guard.is_super_admin(identity):
        return True
    if not club_id:
        return False
    try:
        await club_owner_guard.authorize(identity, club_id)
    except (ForbiddenError, NotFoundError, InvalidInputError):
        return False
    return True


@router.post("", response_model=EventResponse, status_code=status.HTTP_201_CREATED)
async def create_event(request: CreateEventRequest, identity: VerifiedIdentity = Depends(get_current_principal)):
    """
    Create an event. The caller must own the club named by `clubId`.

    Raises:
        HTTPException(400): Malformed club id, or a paid event without a fee.
        HTTPException(403): Caller does not own the club.
        HTTPException(404): Club not found.
    """
    try:
        event = await club_manager.create_event(identity, request)
        return EventResponse.model_validate(event)
    except ClubSphereError as e:
        raise e.to_http()
    except Exception as e:
        logger.error("Failed to create event: %s", e, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to create event")


@router.get("", response_model=List[EventResponse])
async def list_events(
    search: Optional[str] = Query(None, description="Search event title and description"),
    club_id: Optional[str] = Query(None, alias="clubId"),
    event_status: Optional[EventStatus] = Query(None, alias="status"),
    is_paid: Optional[bool] = Query(None, alias="isPaid"),
    sort: Optional[str] = Query(None, description="newest, oldest, date_asc, date_desc, fee_asc or fee_desc"),
    limit: int = Query(100, ge=1, le=500),
    identity: Optional[VerifiedIdentity] = Depends(get_optional_principal),
):
    try:
        status_filter = EventStatus.APPROVED.value
        if await _may_see_unapproved(identity, club_id):
            status_filter = event_status.value if event_status else None

        events = await club_manager.list_events(
            search=search, club_id=club_id, status=status_filter, is_paid=is_paid, sort=sort, limit=limit
        )
        return [EventResponse.model_validate(event) for event in events]
    except ClubSphereError as e:
        raise e.to_http()
    except Exception as e:
        logger.error("Failed to list events: %s", e, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to list events")


@router.patch("/{event_id}/status", response_model=TransitionResponse)
async def review_event(
    event_id: str,
    request: StatusTransitionRequest,
    ctx: AuthorizedPrincipal = Depends(require_super_admin),
):
    """Approve or reject a pending event."""
    try:
        return await club_manager.review(event_lifecycle, event_id, request.status, ctx.email)
    except ClubSphereError as e:
        raise e.to_http()
    except Exception as e:
        logger.error("Failed to update status of event %s: %s", event_id, e, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to update event status")
