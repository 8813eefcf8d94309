"""
# Consistency Manager

Keeps the derived collections in step with lifecycle transitions.

MongoDB gives no transaction spanning a membership and its role grant (or an
application and the applicant's principal), so each approval runs as a
two-step saga:

1.  **Primary write**: the conditional status change in `lifecycle_manager`.
2.  **Derived write**: an idempotent upsert performed here, after the primary
    write committed.

If step 2 fails the status change stays committed. The failure is logged with
enough context to repair it and reported to the caller as a warning. The
reconciliation pass (`detect_drift` / `reconcile`) finds and repairs such drift:

- an **active membership** with no role grant for `(clubId, userEmail)`;
- an **approved application** whose principal is not yet `club_manager`.

## Derived Writes

| Side effect | Key | Write |
|---|---|---|
| `grant_member_role` | `(clubId, userEmail)` | upsert; `assignedAt` via `$setOnInsert` only |
| `promote_club_manager` | stored application `email` | `$set globalRole=club_manager`, never demotes a super admin |

Both writes read identities from the persisted source document, never from a
request body, and are safe to replay any number of times. This manager is the
only writer of `role_grants` and of `users.globalRole` promotions.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

from clubsphere.config import settings
from clubsphere.database import db_manager
from clubsphere.database.manager import (
    MANAGER_APPLICATIONS_COLLECTION,
    MEMBERSHIPS_COLLECTION,
    ROLE_GRANTS_COLLECTION,
    USERS_COLLECTION,
)
from clubsphere.exceptions import ClubSphereError
from clubsphere.managers.lifecycle_manager import SideEffect, TransitionResult
from clubsphere.managers.logging_manager import get_logger
from clubsphere.models.club_models import (
    ApplicationStatus,
    ClubRole,
    DriftReportResponse,
    GlobalRole,
    MembershipStatus,
    PropagationFailure,
    PropagationReportResponse,
    ReconciliationResponse,
)
from clubsphere.utils.object_ids import serialize_document

logger = get_logger(prefix="[Consistency]")


class PropagationError(Exception):
    """A derived write could not be applied."""


@dataclass
class PropagationReport:
    applied: List[str] = field(default_factory=list)
    failures: List[PropagationFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    def to_response(self) -> PropagationReportResponse:
        return PropagationReportResponse(ok=self.ok, applied=self.applied, failures=self.failures)

    def warnings(self) -> List[str]:
        return [
            f"{failure.side_effect} did not complete ({failure.reason}); it will be repaired by reconciliation"
            for failure in self.failures
        ]


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ConsistencyPropagator:
    """Executes and repairs the derived writes that follow lifecycle transitions."""

    def __init__(self, permissions: Optional[List[str]] = None):
        self._permissions = permissions

    @property
    def member_permissions(self) -> List[str]:
        return list(self._permissions or settings.MEMBER_PERMISSIONS)

    def _handlers(self) -> Dict[SideEffect, Callable[[Dict[str, Any]], Awaitable[None]]]:
        return {
            SideEffect.GRANT_MEMBER_ROLE: self.grant_member_role,
            SideEffect.PROMOTE_CLUB_MANAGER: self.promote_club_manager,
        }

    async def propagate(self, result: TransitionResult) -> PropagationReport:
        """
        Run every side effect listed on a committed transition.

        Never raises for a failed derived write: the failure is logged and
        returned in the report so the caller can surface it as a warning.
        """
        report = PropagationReport()
        handlers = self._handlers()

        for side_effect in result.side_effects:
            handler = handlers[side_effect]
            try:
                await handler(result.document)
                report.applied.append(side_effect.value)
            except Exception as e:
                reason = str(e) if isinstance(e, (PropagationError, ClubSphereError)) else e.__class__.__name__
                logger.error(
                    "Propagation drift: %s for %s %s (status %s) failed: %s",
                    side_effect.value,
                    result.entity,
                    result.entity_id,
                    result.new_status,
                    reason,
                    exc_info=True,
                )
                report.failures.append(PropagationFailure(side_effect=side_effect.value, reason=reason))

        return report

    async def grant_member_role(self, membership: Dict[str, Any]) -> None:
        """
        Upsert the member role grant for an active membership.

        `assignedAt` is written on insert only, so replays keep the original value.
        """
        club_id = membership.get("clubId")
        user_email = membership.get("userEmail")
        if not club_id or not user_email:
            raise PropagationError("Membership document lacks clubId or userEmail")

        now = _now()
        role_grants = db_manager.get_collection(ROLE_GRANTS_COLLECTION)
        await db_manager.run_with_timeout(
            role_grants.update_one(
                {"clubId": str(club_id), "userEmail": user_email},
                {
                    "$set": {
                        "role": ClubRole.MEMBER.value,
                        "permissions": self.member_permissions,
                        "updatedAt": now,
                        "sourceMembershipId": str(membership.get("_id")),
                    },
                    "$setOnInsert": {"assignedAt": now},
                },
                upsert=True,
            ),
            "role_grants.update_one",
        )
        logger.info("Granted member role in club %s to %s", club_id, user_email)

    async def promote_club_manager(self, application: Dict[str, Any]) -> None:
        """
        Promote the applicant of an approved application to `club_manager`.

        The application is re-read from storage and its stored `email` is the only
        identity used. Super admins are left untouched.
        """
        applications = db_manager.get_collection(MANAGER_APPLICATIONS_COLLECTION)
        stored = await db_manager.run_with_timeout(
            applications.find_one({"_id": application.get("_id")}), "manager_applications.find_one"
        )
        if stored is None:
            raise PropagationError("Manager application no longer exists")
        if stored.get("status") != ApplicationStatus.APPROVED.value:
            raise PropagationError(f"Manager application is '{stored.get('status')}', not approved")

        email = stored.get("email")
        users = db_manager.get_collection(USERS_COLLECTION)
        result = await db_manager.run_with_timeout(
            users.update_one(
                {"email": email, "globalRole": {"$ne": GlobalRole.SUPER_ADMIN.value}},
                {"$set": {"globalRole": GlobalRole.CLUB_MANAGER.value, "updatedAt": _now()}},
            ),
            "users.update_one",
        )
        if result.matched_count == 0:
            principal = await db_manager.run_with_timeout(users.find_one({"email": email}), "users.find_one")
            if principal is None:
                raise PropagationError(f"No principal registered for {email}")
            logger.info("Principal %s is a super admin; promotion skipped", email)
            return
        logger.info("Promoted %s to club manager", email)

    async def retract_member_role(self, club_id: str, user_email: str) -> bool:
        """Delete the role grant for `(club_id, user_email)`. Returns True if one existed."""
        role_grants = db_manager.get_collection(ROLE_GRANTS_COLLECTION)
        result = await db_manager.run_with_timeout(
            role_grants.delete_one({"clubId": str(club_id), "userEmail": user_email}), "role_grants.delete_one"
        )
        if result.deleted_count:
            logger.info("Retracted member role in club %s from %s", club_id, user_email)
        return bool(result.deleted_count)

    async def detect_drift(self) -> DriftReportResponse:
        """Find committed transitions whose derived write is missing."""
        report = DriftReportResponse()
        role_grants = db_manager.get_collection(ROLE_GRANTS_COLLECTION)
        users = db_manager.get_collection(USERS_COLLECTION)

        active = await db_manager.find_many(MEMBERSHIPS_COLLECTION, {"status": MembershipStatus.ACTIVE.value})
        for membership in active:
            grant = await db_manager.run_with_timeout(
                role_grants.find_one({"clubId": str(membership.get("clubId")), "userEmail": membership.get("userEmail")}),
                "role_grants.find_one",
            )
            if grant is None:
                report.memberships_missing_grants.append(serialize_document(membership))

        approved = await db_manager.find_many(
            MANAGER_APPLICATIONS_COLLECTION, {"status": ApplicationStatus.APPROVED.value}
        )
        promoted_roles = {GlobalRole.CLUB_MANAGER.value, GlobalRole.SUPER_ADMIN.value}
        for application in approved:
            principal = await db_manager.run_with_timeout(
                users.find_one({"email": application.get("email")}), "users.find_one"
            )
            if principal is None or principal.get("globalRole") not in promoted_roles:
                report.applications_missing_promotion.append(serialize_document(application))

        if report.total:
            logger.warning(
                "Detected drift: %d memberships without role grants, %d approved applications without promotion",
                len(report.memberships_missing_grants),
                len(report.applications_missing_promotion),
            )
        return report

    async def reconcile(self, dry_run: bool = False) -> ReconciliationResponse:
        """
        Detect drift and replay the missing derived writes.

        Args:
            dry_run: Only report drift, do not write.
        """
        drift = await self.detect_drift()
        response = ReconciliationResponse(dry_run=dry_run, drift=drift)
        if dry_run:
            return response

        memberships = db_manager.get_collection(MEMBERSHIPS_COLLECTION)
        for entry in drift.memberships_missing_grants:
            try:
                # Re-read: the membership may have been removed since detection
                membership = await db_manager.run_with_timeout(
                    memberships.find_one({"clubId": entry.get("clubId"), "userEmail": entry.get("userEmail"),
                                          "status": MembershipStatus.ACTIVE.value}),
                    "memberships.find_one",
                )
                if membership is None:
                    continue
                await self.grant_member_role(membership)
                response.role_grants_repaired += 1
            except Exception as e:
                logger.error("Failed to repair role grant for %s: %s", entry.get("_id"), e, exc_info=True)
                response.failures.append(
                    PropagationFailure(side_effect=SideEffect.GRANT_MEMBER_ROLE.value, reason=str(e))
                )

        applications = db_manager.get_collection(MANAGER_APPLICATIONS_COLLECTION)
        for entry in drift.applications_missing_promotion:
            try:
                application = await db_manager.run_with_timeout(
                    applications.find_one({"email": entry.get("email")}), "manager_applications.find_one"
                )
                if application is None:
                    continue
                await self.promote_club_manager(application)
                response.promotions_repaired += 1
            except Exception as e:
                logger.error("Failed to repair promotion for %s: %s", entry.get("email"), e, exc_info=True)
                response.failures.append(
                    PropagationFailure(side_effect=SideEffect.PROMOTE_CLUB_MANAGER.value, reason=str(e))
                )

        logger.info(
            "Reconciliation complete: %d role grants, %d promotions repaired, %d failures",
            response.role_grants_repaired,
            response.promotions_repaired,
            len(response.failures),
        )
        return response


consistency_propagator = ConsistencyPropagator()
