"""
# Club Authorization Manager

Capability guards that decide whether a verified principal may act on a
specific resource, plus the FastAPI dependencies that chain them after
authentication.

## Guards

- **`SuperAdminGuard`**: admits iff the persisted Principal for the caller's
  email has `globalRole == super_admin`. A caller with no Principal record is
  denied.
- **`ClubOwnerGuard`**: admits iff the persisted club's `ownerEmail` equals the
  caller's verified email. Malformed club ids are rejected before any lookup.
- **`MembershipApproverGuard`**: the club-scoped guard of the membership
  approval endpoint; admits super admins, otherwise delegates to
  `ClubOwnerGuard` on the membership's persisted `clubId`.

Guard decisions never read identity or ownership from the request body; they
compare the token's email with stored records only. Every denial is logged as
a security event and raised before any lifecycle code runs.

## Dependencies

```python
@router.patch("/clubs/{club_id}")
async def update_club(club_id: str, ctx: AuthorizedPrincipal = Depends(require_club_owner)):
    ctx.resource  # the persisted club document
```
"""

from typing import Any, Dict, Optional

from fastapi import Depends, Request
from pydantic import BaseModel, ConfigDict

from clubsphere.database import db_manager
from clubsphere.database.manager import CLUBS_COLLECTION, MEMBERSHIPS_COLLECTION, USERS_COLLECTION
from clubsphere.exceptions import ClubSphereError, ForbiddenError, InvalidInputError, NotFoundError
from clubsphere.managers.identity_manager import VerifiedIdentity
from clubsphere.managers.logging_manager import get_logger
from clubsphere.models.club_models import GlobalRole
from clubsphere.routes.auth.dependencies import get_client_ip, get_current_principal
from clubsphere.utils.logging_utils import log_security_event
from clubsphere.utils.object_ids import parse_object_id

logger = get_logger(prefix="[Club Auth]")


class AuthorizedPrincipal(BaseModel):
    """A verified caller that passed a guard, with the resource the guard loaded."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    email: str
    global_role: Optional[GlobalRole] = None
    resource: Optional[Dict[str, Any]] = None


async def load_principal(email: str) -> Optional[Dict[str, Any]]:
    users = db_manager.get_collection(USERS_COLLECTION)
    return await db_manager.run_with_timeout(users.find_one({"email": email}), "users.find_one")


class SuperAdminGuard:
    """Admits only principals whose persisted global role is `super_admin`."""

    name = "super_admin"

    async def authorize(self, identity: VerifiedIdentity) -> AuthorizedPrincipal:
        principal = await load_principal(identity.email)
        if principal is None:
            logger.warning("Super admin check failed: no principal record for %s", identity.email)
            raise ForbiddenError("Super admin access required")
        if principal.get("globalRole") != GlobalRole.SUPER_ADMIN.value:
            raise ForbiddenError("Super admin access required")
        return AuthorizedPrincipal(email=identity.email, global_role=GlobalRole.SUPER_ADMIN, resource=principal)

    async def is_super_admin(self, identity: VerifiedIdentity) -> bool:
        try:
            await self.authorize(identity)
        except ForbiddenError:
            return False
        return True


class ClubOwnerGuard:
    """Admits only the principal recorded as the club's `ownerEmail`."""

    name = "club_owner"

    async def authorize(self, identity: VerifiedIdentity, club_id: Any) -> AuthorizedPrincipal:
        """
        Args:
            identity: The verified caller.
            club_id: Club identifier from the request path (string or ObjectId).

        Raises:
            InvalidInputError: Malformed club id.
            NotFoundError: No such club.
            ForbiddenError: The caller is not the owner.
        """
        oid = club_id if not isinstance(club_id, str) else parse_object_id(club_id, "Club ID")
        clubs = db_manager.get_collection(CLUBS_COLLECTION)
        club = await db_manager.run_with_timeout(clubs.find_one({"_id": oid}), "clubs.find_one")
        if club is None:
            raise NotFoundError("Club not found.")
        if club.get("ownerEmail") != identity.email:
            raise ForbiddenError("Only the club owner can perform this action")
        return AuthorizedPrincipal(email=identity.email, resource=club)


class MembershipApproverGuard:
    """Admits super admins and the owner of the club a membership belongs to."""

    name = "membership_approver"

    def __init__(self, super_admin_guard: SuperAdminGuard, club_owner_guard: ClubOwnerGuard):
        self.super_admin_guard = super_admin_guard
        self.club_owner_guard = club_owner_guard

    async def authorize(self, identity: VerifiedIdentity, membership_id: str) -> AuthorizedPrincipal:
        oid = parse_object_id(membership_id, "Membership ID")
        memberships = db_manager.get_collection(MEMBERSHIPS_COLLECTION)
        membership = await db_manager.run_with_timeout(
            memberships.find_one({"_id": oid}), "memberships.find_one"
        )
        if membership is None:
            raise NotFoundError("Membership not found.")

        if await self.super_admin_guard.is_super_admin(identity):
            return AuthorizedPrincipal(email=identity.email, global_role=GlobalRole.SUPER_ADMIN, resource=membership)

        club_id = membership.get("clubId")
        try:
            await self.club_owner_guard.authorize(identity, str(club_id))
        except (NotFoundError, InvalidInputError):
            # Orphaned membership: only a super admin may act on it
            raise ForbiddenError("Only the club owner or a super admin can review this membership")
        return AuthorizedPrincipal(email=identity.email, resource=membership)


super_admin_guard = SuperAdminGuard()
club_owner_guard = ClubOwnerGuard()
membership_approver_guard = MembershipApproverGuard(super_admin_guard, club_owner_guard)


async def resolve_subject_email(identity: VerifiedIdentity, requested_email: Optional[str]) -> str:
    """
    Email whose records a listing endpoint should return.

    Callers see their own records; only a super admin may name another email.
    """
    if not requested_email or requested_email.strip().lower() == identity.email:
        return identity.email
    if not await super_admin_guard.is_super_admin(identity):
        raise ForbiddenError("Only a super admin can view another user's records")
    return requested_email.strip().lower()


def _deny(request: Request, identity: VerifiedIdentity, guard: str, error: ClubSphereError, resource_id: Optional[str] = None):
    log_security_event(
        event_type="guard_denied",
        user_id=identity.email,
        ip_address=get_client_ip(request),
        success=False,
        details={
            "guard": guard,
            "reason": error.error_code,
            "resource_id": resource_id,
            "endpoint": f"{request.method} {request.url.path}",
        },
    )
    raise error.to_http()


async def require_super_admin(
    request: Request, identity: VerifiedIdentity = Depends(get_current_principal)
) -> AuthorizedPrincipal:
    """Dependency: authenticated caller with the `super_admin` global role."""
    try:
        return await super_admin_guard.authorize(identity)
    except ClubSphereError as e:
        _deny(request, identity, super_admin_guard.name, e)


async def require_club_owner(
    club_id: str, request: Request, identity: VerifiedIdentity = Depends(get_current_principal)
) -> AuthorizedPrincipal:
    """Dependency: authenticated caller who owns the club named in the path."""
    try:
        return await club_owner_guard.authorize(identity, club_id)
    except ClubSphereError as e:
        _deny(request, identity, club_owner_guard.name, e, club_id)


async def require_membership_approver(
    membership_id: str, request: Request, identity: VerifiedIdentity = Depends(get_current_principal)
) -> AuthorizedPrincipal:
    """Dependency: super admin, or owner of the club the membership belongs to."""
    try:
        return await membership_approver_guard.authorize(identity, membership_id)
    except ClubSphereError as e:
        _deny(request, identity, membership_approver_guard.name, e, membership_id)
