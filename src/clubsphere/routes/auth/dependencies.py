"""
# Authentication Dependencies

FastAPI dependency that runs the credential verifier in front of every
protected endpoint.

## Layered Security Model

- **Layer 1: Authentication**: `get_current_principal` verifies the bearer
  credential and yields a `VerifiedIdentity`.
- **Layer 2: Authorization**: the capability guards in
  `clubsphere.managers.club_auth_manager` depend on `get_current_principal`,
  so FastAPI always resolves authentication first; a request that fails
  authentication never reaches a guard.

**Usage:**
```python
@router.get("/users/me")
async def me(identity: VerifiedIdentity = Depends(get_current_principal)):
    return {"email": identity.email}
```

Denials are recorded with `log_security_event`; tokens are never logged.
"""

from typing import Optional

from fastapi import Header, Request

from clubsphere.exceptions import ClubSphereError
from clubsphere.managers.identity_manager import VerifiedIdentity, credential_verifier
from clubsphere.managers.logging_manager import get_logger
from clubsphere.utils.logging_utils import log_security_event

logger = get_logger(prefix="[Security Dependencies]")


def get_client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


async def get_current_principal(
    request: Request,
    authorization: Optional[str] = Header(None, description="Bearer token issued by the identity authority"),
) -> VerifiedIdentity:
    """
    Authenticate the caller.

    Returns:
        VerifiedIdentity: The verified caller.

    Raises:
        HTTPException(401): Missing or malformed `Authorization` header.
        HTTPException(403): The credential failed verification.
        HTTPException(500): The identity authority was unavailable.
    """
    try:
        return await credential_verifier.authenticate(authorization)
    except ClubSphereError as e:
        log_security_event(
            event_type="authentication_failed",
            ip_address=get_client_ip(request),
            success=False,
            details={
                "endpoint": f"{request.method} {request.url.path}",
                "reason": e.error_code,
                "header_present": authorization is not None,
            },
        )
        raise e.to_http()


async def get_optional_principal(
    request: Request,
    authorization: Optional[str] = Header(None, description="Bearer token issued by the identity authority"),
) -> Optional[VerifiedIdentity]:
    """
    Authenticate the caller if a credential was sent.

    Public listing endpoints use this: no header means an anonymous caller,
    while a header that fails verification is still rejected.
    """
    if authorization is None:
        return None
    return await get_current_principal(request, authorization)
