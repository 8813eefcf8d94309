"""
# ClubSphere - Main Application Module

Entry point of the ClubSphere API: builds the FastAPI application, wires the
routers and manages startup and shutdown.

## Lifespan

**Startup:**
1.  **Logging**: installs the stdout handler at `LOG_LEVEL`.
2.  **Database**: connects to MongoDB (with retry) and creates indexes.
3.  **Reconciliation**: starts the periodic consistency job when
    `RECONCILIATION_ENABLED` is set.

**Shutdown** runs the same steps in reverse.

## Running

```bash
clubsphere                                   # uses HOST / PORT from settings
uvicorn clubsphere.main:app --reload --port 5000
```
"""

from contextlib import asynccontextmanager
import time

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse
import uvicorn

from clubsphere.config import settings
from clubsphere.database import db_manager
from clubsphere.exceptions import ClubSphereError
from clubsphere.managers.logging_manager import configure_logging, get_logger
from clubsphere.routes.admin import router as admin_router
from clubsphere.routes.clubs import router as clubs_router
from clubsphere.routes.events import router as events_router
from clubsphere.routes.manager_applications import router as manager_applications_router
from clubsphere.routes.memberships import router as memberships_router
from clubsphere.routes.payments import router as payments_router
from clubsphere.routes.users import router as users_router
from clubsphere.services.reconciliation_service import reconciliation_service
from clubsphere.utils.logging_utils import log_application_lifecycle

logger = get_logger(prefix="[Main]")


@asynccontextmanager
async def lifespan(_app: FastAPI):
    """
    Connect storage and background services before serving; release them after.

    Raises:
        ConnectionError: MongoDB could not be reached after all retries.
    """
    configure_logging()
    startup_start_time = time.time()
    log_application_lifecycle(
        "startup_initiated",
        {
            "app_name": settings.APP_NAME,
            "environment": "production" if settings.is_production else "development",
            "debug_mode": settings.DEBUG,
        },
    )

    await db_manager.connect()
    log_application_lifecycle(
        "database_connected",
        {
            "database_name": settings.MONGODB_DATABASE,
            "connection_url": settings.MONGODB_URL.split("@")[-1],
        },
    )
    await db_manager.create_indexes()
    log_application_lifecycle("database_indexes_ready")

    if settings.RECONCILIATION_ENABLED:
        reconciliation_service.start()

    log_application_lifecycle("startup_completed", {"duration": f"{time.time() - startup_start_time:.3f}s"})

    try:
        yield
    finally:
        logger.info("Shutting down")
        reconciliation_service.stop()
        await db_manager.disconnect()
        log_application_lifecycle("shutdown_completed")


app = FastAPI(
    title="ClubSphere API",
    description="""
    ## ClubSphere API

    Club management platform: clubs, events, memberships and club-manager
    applications, with approval workflows for each.

    ### Security
    - Bearer credentials issued by the identity authority
    - Capability guards: super admin, club owner, membership approver
    - Identity and ownership always derived from the verified credential
    """,
    version="1.0.0",
    lifespan=lifespan,
    openapi_tags=[
        {"name": "users", "description": "Principal registration and lookup"},
        {"name": "clubs", "description": "Clubs and club approval"},
        {"name": "events", "description": "Events, event approval and registrations"},
        {"name": "memberships", "description": "Joining, leaving and membership approval"},
        {"name": "manager-applications", "description": "Applications to become a club manager"},
        {"name": "payments", "description": "Recorded payments"},
        {"name": "admin", "description": "Consistency drift and reconciliation"},
    ],
)


@app.exception_handler(ClubSphereError)
async def clubsphere_error_handler(request: Request, exc: ClubSphereError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_body(), headers=exc.headers)


routers_config = [
    ("users", users_router),
    ("clubs", clubs_router),
    ("events", events_router),
    ("memberships", memberships_router),
    ("manager_applications", manager_applications_router),
    ("payments", payments_router),
    ("admin", admin_router),
]

for router_name, router in routers_config:
    app.include_router(router)
    logger.debug("Included %s router", router_name)


@app.get("/", response_class=PlainTextResponse, include_in_schema=False)
async def root():
    return "Club Management Server is Running"


@app.get("/health", tags=["health"])
async def health():
    """Liveness with database status. Returns 503 when MongoDB is unreachable."""
    database_ok = await db_manager.health_check()
    body = {"status": "healthy" if database_ok else "degraded", "database": "connected" if database_ok else "unavailable"}
    return JSONResponse(status_code=200 if database_ok else 503, content=body)


def run():
    """Console entry point."""
    uvicorn.run("clubsphere.main:app", host=settings.HOST, port=settings.PORT, reload=settings.DEBUG, log_level="info")


if __name__ == "__main__":
    run()
