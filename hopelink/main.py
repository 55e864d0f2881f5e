# hopelink/main.py
import asyncio
import contextlib
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from hopelink import __version__
from hopelink.core.config import settings
from hopelink.core.errors import (
    ConflictError, HopeLinkError, IncompatibleMatch, NotFoundError, PermissionDenied,
)
from hopelink.core.logging import configure_logging
from hopelink.deps import get_repo
from hopelink.routers import admin, claims, donations, matching, notifications, requests, volunteers
from hopelink.services.expiry import run_expiry_loop

@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.log_level)

    if settings.use_mongo:
        from hopelink.core.db import get_client, get_db
        from hopelink.core.indexes import ensure_indexes
        await ensure_indexes(get_db())

    expiry_task = None
    if settings.run_expiry_job:
        repo = app.dependency_overrides.get(get_repo, get_repo)()
        expiry_task = asyncio.create_task(
            run_expiry_loop(repo, settings.expiry_interval_minutes, settings.expiry_retention_days)
        )
    logger.info("HopeLink matching {} started (mongo={})", __version__, settings.use_mongo)

    yield

    if expiry_task is not None:
        expiry_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await expiry_task
    if settings.use_mongo:
        get_client().close()


# --- Create app FIRST ---
app = FastAPI(lifespan=lifespan, title="HopeLink Matching API", version=__version__)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---------------- Domain errors -> HTTP ----------------
_STATUS = [
    (NotFoundError, 404),
    (ConflictError, 409),        # includes InvalidTransition and DuplicateClaim
    (PermissionDenied, 403),
    (IncompatibleMatch, 422),
]

@app.exception_handler(HopeLinkError)
async def _domain_error(request: Request, exc: HopeLinkError):
    status = next((code for cls, code in _STATUS if isinstance(exc, cls)), 400)
    logger.info("{} {} -> {}: {}", request.method, request.url.path, status, exc)
    return JSONResponse(status_code=status, content={"detail": str(exc), "error": type(exc).__name__})

# ---------------- Include routers ----------------
app.include_router(donations.router)        # /api/donations
app.include_router(requests.router)         # /api/requests
app.include_router(volunteers.router)       # /api/volunteers
app.include_router(matching.router)         # /api/matching
app.include_router(claims.router)           # /api/claims
app.include_router(notifications.router)    # /api/notifications
app.include_router(admin.router)            # /api/admin

# Health
@app.get("/health")
def health():
    return {"ok": True}
