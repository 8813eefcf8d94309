"""
# Manager Application Routes

- `POST /manager-applications` - Apply to become a club manager, or re-apply
  after a rejection
- `GET /manager-applications` - List applications (super admin only)
- `GET /manager-applications/me` - The caller's application
- `PATCH /manager-applications/{application_id}/status` - Approve or reject
  (super admin only)

Approval promotes the principal whose email is stored on the application. An
`email` in the approval body has no effect.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from clubsphere.exceptions import ClubSphereError
from clubsphere.managers.club_auth_manager import AuthorizedPrincipal, require_super_admin
from clubsphere.managers.club_manager import club_manager
from clubsphere.managers.identity_manager import VerifiedIdentity
from clubsphere.managers.lifecycle_manager import manager_application_lifecycle
from clubsphere.managers.logging_manager import get_logger
from clubsphere.models.club_models import (
    ApplicationStatus,
    ManagerApplicationRequest,
    ManagerApplicationResponse,
    StatusTransitionRequest,
    TransitionResponse,
)
from clubsphere.routes.auth import get_current_principal

logger = get_logger(prefix="[Manager Application Routes]")

router = APIRouter(prefix="/manager-applications", tags=["manager-applications"])


@router.post("", response_model=ManagerApplicationResponse, status_code=status.HTTP_201_CREATED)
async def apply_for_manager(
    request: ManagerApplicationRequest,
    response: Response,
    identity: VerifiedIdentity = Depends(get_current_principal),
):
    """
    Submit a manager application for the caller.

    A first application returns 201. Re-applying after a rejection resets the
    application to `pending` and returns 200.

    Raises:
        HTTPException(409): The application is already pending or approved.
    """
    try:
        application, created = await club_manager.apply_for_manager(identity, request)
        if not created:
            response.status_code = status.HTTP_200_OK
        return ManagerApplicationResponse.model_validate(application)
    except ClubSphereError as e:
        raise e.to_http()
    except Exception as e:
        logger.error("Failed to submit manager application: %s", e, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to submit manager application")


@router.get("", response_model=List[ManagerApplicationResponse])
async def list_applications(
    application_status: Optional[ApplicationStatus] = Query(None, alias="status"),
    ctx: AuthorizedPrincipal = Depends(require_super_admin),
):
    try:
        applications = await club_manager.list_applications(
            application_status.value if application_status else None
        )
        return [ManagerApplicationResponse.model_validate(application) for application in applications]
    except ClubSphereError as e:
        raise e.to_http()
    except Exception as e:
        logger.error("Failed to list manager applications: %s", e, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to list manager applications")


@router.get("/me", response_model=ManagerApplicationResponse)
async def get_my_application(identity: VerifiedIdentity = Depends(get_current_principal)):
    try:
        application = await club_manager.get_application_for(identity.email)
        return ManagerApplicationResponse.model_validate(application)
    except ClubSphereError as e:
        raise e.to_http()
    except Exception as e:
        logger.error("Failed to get manager application: %s", e, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to get manager application")


@router.patch("/{application_id}/status", response_model=TransitionResponse)
async def review_application(
    application_id: str,
    request: StatusTransitionRequest,
    ctx: AuthorizedPrincipal = Depends(require_super_admin),
):
    """
    Approve, reject, or re-open a manager application.

    Approval promotes the applicant to `club_manager`. A failed promotion
    leaves the approval in place and is reported in `propagation`/`warnings`.
    """
    try:
        return await club_manager.review(manager_application_lifecycle, application_id, request.status, ctx.email)
    except ClubSphereError as e:
        raise e.to_http()
    except Exception as e:
        logger.error("Failed to update status of manager application %s: %s", application_id, e, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to update manager application status")
