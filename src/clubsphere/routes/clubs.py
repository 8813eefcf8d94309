"""
# Club Routes

REST endpoints for clubs: creation, discovery, owner edits and the
super-admin approval decision.

## API Endpoints

- `POST /clubs` - Create a club (caller becomes owner, status `pending`)
- `GET /clubs` - List/filter clubs
- `GET /clubs/{club_id}` - Get one club
- `PATCH /clubs/{club_id}` - Edit club details (owner only)
- `PATCH /clubs/{club_id}/status` - Approve or reject (super admin only)

## Visibility

Anonymous callers and ordinary members see `approved` clubs. A caller can pass
`mine=true` to list their own clubs in any status; a super admin may filter by
any status.

## Usage Examples

```python
await client.patch(f"/clubs/{club_id}", json={"description": "Weekly rides"},
                   headers={"Authorization": f"Bearer {token}"})
await client.patch(f"/clubs/{club_id}/status", json={"status": "approved"},
                   headers={"Authorization": f"Bearer {admin_token}"})
```
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from clubsphere.exceptions import ClubSphereError
from clubsphere.managers.club_auth_manager import (
    AuthorizedPrincipal,
    require_club_owner,
    require_super_admin,
    super_admin_guard,
)
from clubsphere.managers.club_manager import club_manager
from clubsphere.managers.identity_manager import VerifiedIdentity
from clubsphere.managers.lifecycle_manager import club_lifecycle
from clubsphere.managers.logging_manager import get_logger
from clubsphere.models.club_models import (
    ClubResponse,
    ClubStatus,
    CreateClubRequest,
    StatusTransitionRequest,
    TransitionResponse,
    UpdateClubRequest,
)
from clubsphere.routes.auth import get_current_principal, get_optional_principal

logger = get_logger(prefix="[Club Routes]")

router = APIRouter(prefix="/clubs", tags=["clubs"])


@router.post("", response_model=ClubResponse, status_code=status.HTTP_201_CREATED)
async def create_club(request: CreateClubRequest, identity: VerifiedIdentity = Depends(get_current_principal)):
    """
    Create a club owned by the caller.

    The club starts `pending` and is invisible to the public until a super
    admin approves it. `ownerEmail` is taken from the verified credential.
    """
    try:
        club = await club_manager.create_club(identity, request)
        return ClubResponse.model_validate(club)
    except ClubSphereError as e:
        raise e.to_http()
    except Exception as e:
        logger.error("Failed to create club: %s", e, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to create club")


@router.get("", response_model=List[ClubResponse])
async def list_clubs(
    search: Optional[str] = Query(None, description="Search club name and description"),
    category: Optional[str] = Query(None),
    club_status: Optional[ClubStatus] = Query(None, alias="status"),
    sort: Optional[str] = Query(None, description="newest, oldest, fee_asc or fee_desc"),
    mine: bool = Query(False, description="Only clubs owned by the caller"),
    limit: int = Query(100, ge=1, le=500),
    identity: Optional[VerifiedIdentity] = Depends(get_optional_principal),
):
    """List clubs. See the module docstring for which statuses each caller sees."""
    try:
        owner_email = None
        status_filter = ClubStatus.APPROVED.value
        if identity is not None and mine:
            owner_email = identity.email
            status_filter = club_status.value if club_status else None
        elif identity is not None and await super_admin_guard.is_super_admin(identity):
            status_filter = club_status.value if club_status else None

        clubs = await club_manager.list_clubs(
            search=search,
            category=category,
            status=status_filter,
            owner_email=owner_email,
            sort=sort,
            limit=limit,
        )
        return [ClubResponse.model_validate(club) for club in clubs]
    except ClubSphereError as e:
        raise e.to_http()
    except Exception as e:
        logger.error("Failed to list clubs: %s", e, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to list clubs")


@router.get("/{club_id}", response_model=ClubResponse)
async def get_club(club_id: str):
    try:
        club = await club_manager.get_club(club_id)
        return ClubResponse.model_validate(club)
    except ClubSphereError as e:
        raise e.to_http()
    except Exception as e:
        logger.error("Failed to get club %s: %s", club_id, e, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to get club")


@router.patch("/{club_id}", response_model=ClubResponse)
async def update_club(
    club_id: str,
    request: UpdateClubRequest,
    ctx: AuthorizedPrincipal = Depends(require_club_owner),
):
    """
    Edit a club's details.

    Only the owner recorded on the club may call this. `ownerEmail` and
    `status` are not editable; sending them is a validation error.

    Raises:
        HTTPException(400): Malformed club id or empty patch.
        HTTPException(403): Caller is not the owner.
        HTTPException(404): Club not found.
    """
    try:
        club = await club_manager.update_club(ctx.resource, request)
        logger.info("Club %s updated by owner %s", club_id, ctx.email)
        return ClubResponse.model_validate(club)
    except ClubSphereError as e:
        raise e.to_http()
    except Exception as e:
        logger.error("Failed to update club %s: %s", club_id, e, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to update club")


@router.patch("/{club_id}/status", response_model=TransitionResponse)
async def review_club(
    club_id: str,
    request: StatusTransitionRequest,
    ctx: AuthorizedPrincipal = Depends(require_super_admin),
):
    """
    Approve or reject a pending club.

    Raises:
        HTTPException(409): The club was reviewed concurrently.
        HTTPException(422): Not a legal transition from the club's status.
    """
    try:
        return await club_manager.review(club_lifecycle, club_id, request.status, ctx.email)
    except ClubSphereError as e:
        raise e.to_http()
    except Exception as e:
        logger.error("Failed to update status of club %s: %s", club_id, e, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to update club status")
