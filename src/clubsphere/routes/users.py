"""
# User Routes

- `POST /users` - Register the caller, or refresh their profile
- `GET /users/me` - The caller's principal record
- `GET /users` - All principals (super admin only)

Registration never accepts a role: new principals are `member`, and only an
approved manager application changes that.
"""

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Response, status

from clubsphere.exceptions import ClubSphereError
from clubsphere.managers.club_auth_manager import AuthorizedPrincipal, require_super_admin
from clubsphere.managers.club_manager import club_manager
from clubsphere.managers.identity_manager import VerifiedIdentity
from clubsphere.managers.logging_manager import get_logger
from clubsphere.models.club_models import PrincipalResponse, RegisterUserRequest
from clubsphere.routes.auth import get_current_principal

logger = get_logger(prefix="[User Routes]")

router = APIRouter(prefix="/users", tags=["users"])


@router.post("", response_model=PrincipalResponse, status_code=status.HTTP_201_CREATED)
async def register_user(
    request: RegisterUserRequest,
    response: Response,
    identity: VerifiedIdentity = Depends(get_current_principal),
):
    """Create the caller's principal (201) or update its profile fields (200)."""
    try:
        principal, created = await club_manager.register_user(identity, request)
        if not created:
            response.status_code = status.HTTP_200_OK
        return PrincipalResponse.model_validate(principal)
    except ClubSphereError as e:
        raise e.to_http()
    except Exception as e:
        logger.error("Failed to register user: %s", e, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to register user")


@router.get("/me", response_model=PrincipalResponse)
async def get_me(identity: VerifiedIdentity = Depends(get_current_principal)):
    try:
        return PrincipalResponse.model_validate(await club_manager.get_principal(identity.email))
    except ClubSphereError as e:
        raise e.to_http()
    except Exception as e:
        logger.error("Failed to get user: %s", e, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to get user")


@router.get("", response_model=List[PrincipalResponse])
async def list_users(ctx: AuthorizedPrincipal = Depends(require_super_admin)):
    try:
        return [PrincipalResponse.model_validate(user) for user in await club_manager.list_users()]
    except ClubSphereError as e:
        raise e.to_http()
    except Exception as e:
        logger.error("Failed to list users: %s", e, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to list users")
