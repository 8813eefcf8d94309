"""
# Membership Routes

Joining, leaving and approving club memberships.

## API Endpoints

- `POST /memberships` - Request to join an approved club (status `pending`)
- `GET /memberships` - The caller's memberships (super admins may pass `email`)
- `DELETE /memberships/{membership_id}` - Leave a club (active memberships only)
- `PATCH /memberships/{membership_id}/status` - Approve (`active`) or reject.
  Allowed for super admins and the owner of the membership's club.

## Approval Side Effects

Moving a membership to `active` upserts the member's role grant for the club.
If that write fails, the approval still stands: the response carries
`propagation.ok = false` and a warning, and reconciliation repairs the grant.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from clubsphere.exceptions import ClubSphereError
from clubsphere.managers.club_auth_manager import (
    AuthorizedPrincipal,
    require_membership_approver,
    resolve_subject_email,
)
from clubsphere.managers.club_manager import club_manager
from clubsphere.managers.identity_manager import VerifiedIdentity
from clubsphere.managers.lifecycle_manager import membership_lifecycle
from clubsphere.managers.logging_manager import get_logger
from clubsphere.models.club_models import (
    CreateMembershipRequest,
    LeaveClubResponse,
    MembershipResponse,
    MembershipStatus,
    StatusTransitionRequest,
    TransitionResponse,
)
from clubsphere.routes.auth import get_current_principal

logger = get_logger(prefix="[Membership Routes]")

router = APIRouter(prefix="/memberships", tags=["memberships"])


@router.post("", response_model=MembershipResponse, status_code=status.HTTP_201_CREATED)
async def create_membership(
    request: CreateMembershipRequest, identity: VerifiedIdentity = Depends(get_current_principal)
):
    """
    Request to join a club.

    Raises:
        HTTPException(404): Club not found.
        HTTPException(409): The caller already has a pending or active
            membership for the club; the body includes `existingMembership`.
    """
    try:
        membership = await club_manager.create_membership(identity, request)
        return MembershipResponse.model_validate(membership)
    except ClubSphereError as e:
        raise e.to_http()
    except Exception as e:
        logger.error("Failed to create membership: %s", e, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to create membership")


@router.get("", response_model=List[MembershipResponse])
async def list_memberships(
    email: Optional[str] = Query(None, description="Another user's email (super admin only)"),
    membership_status: Optional[MembershipStatus] = Query(None, alias="status"),
    identity: VerifiedIdentity = Depends(get_current_principal),
):
    try:
        subject = await resolve_subject_email(identity, email)
        memberships = await club_manager.list_memberships(
            subject, membership_status.value if membership_status else None
        )
        return [MembershipResponse.model_validate(membership) for membership in memberships]
    except ClubSphereError as e:
        raise e.to_http()
    except Exception as e:
        logger.error("Failed to list memberships: %s", e, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to list memberships")


@router.delete("/{membership_id}", response_model=LeaveClubResponse)
async def leave_club(membership_id: str, identity: VerifiedIdentity = Depends(get_current_principal)):
    """
    Leave a club by deleting the caller's active membership.

    The member's role grant is retained unless the server is configured with
    `RETRACT_ROLE_GRANT_ON_LEAVE`.
    """
    try:
        return await club_manager.leave_club(identity, membership_id)
    except ClubSphereError as e:
        raise e.to_http()
    except Exception as e:
        logger.error("Failed to leave club via membership %s: %s", membership_id, e, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to leave club")


@router.patch("/{membership_id}/status", response_model=TransitionResponse)
async def review_membership(
    membership_id: str,
    request: StatusTransitionRequest,
    ctx: AuthorizedPrincipal = Depends(require_membership_approver),
):
    """
    Approve or reject a pending membership.

    Raises:
        HTTPException(403): Caller is neither a super admin nor the club owner.
        HTTPException(404): Membership not found.
        HTTPException(409): The membership was reviewed concurrently.
        HTTPException(422): Not a legal transition from the membership's status.
    """
    try:
        return await club_manager.review(membership_lifecycle, membership_id, request.status, ctx.email)
    except ClubSphereError as e:
        raise e.to_http()
    except Exception as e:
        logger.error("Failed to update status of membership %s: %s", membership_id, e, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to update membership status")
