"""
# Admin Routes

Consistency maintenance for super admins.

- `GET /admin/drift` - Committed approvals whose derived write is missing
- `POST /admin/reconcile?dry_run=false` - Replay the missing derived writes
"""

from fastapi import APIRouter, Depends, HTTPException, Query

from clubsphere.exceptions import ClubSphereError
from clubsphere.managers.club_auth_manager import AuthorizedPrincipal, require_super_admin
from clubsphere.managers.consistency_manager import consistency_propagator
from clubsphere.managers.logging_manager import get_logger
from clubsphere.models.club_models import DriftReportResponse, ReconciliationResponse

logger = get_logger(prefix="[Admin Routes]")

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/drift", response_model=DriftReportResponse)
async def get_drift(ctx: AuthorizedPrincipal = Depends(require_super_admin)):
    try:
        return await consistency_propagator.detect_drift()
    except ClubSphereError as e:
        raise e.to_http()
    except Exception as e:
        logger.error("Failed to detect drift: %s", e, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to detect drift")


@router.post("/reconcile", response_model=ReconciliationResponse)
async def reconcile(
    dry_run: bool = Query(False, description="Report drift without repairing it"),
    ctx: AuthorizedPrincipal = Depends(require_super_admin),
):
    try:
        logger.info("Reconciliation requested by %s (dry_run=%s)", ctx.email, dry_run)
        return await consistency_propagator.reconcile(dry_run=dry_run)
    except ClubSphereError as e:
        raise e.to_http()
    except Exception as e:
        logger.error("Reconciliation failed: %s", e, exc_info=True)
        raise HTTPException(status_code=500, detail="Reconciliation failed")
