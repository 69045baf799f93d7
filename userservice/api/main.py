"""
userservice.api.main — FastAPI application entry point
=======================================================

Run the API alone with::

    uvicorn userservice.api.main:app --port 50051

``python -m userservice`` runs it together with the ingestion loop.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

load_dotenv()

from userservice.api.deps import get_engine  # noqa: E402
from userservice.api.routes.groups import router as groups_router  # noqa: E402
from userservice.api.routes.ranks import router as ranks_router  # noqa: E402
from userservice.api.routes.users import router as users_router  # noqa: E402
from userservice.errors import NotFound, StoreUnavailable, ValidationFailure  # noqa: E402

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle — warm the DB engine."""
    engine = get_engine()
    logger.info("User service API started — engine ready (%s)", engine.url.database)
    yield
    logger.info("User service API shutting down")


app = FastAPI(
    title="User Service API",
    version="1.0.0",
    lifespan=lifespan,
)


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------
@app.exception_handler(NotFound)
async def _not_found(request: Request, exc: NotFound) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(ValidationFailure)
async def _validation_failure(request: Request, exc: ValidationFailure) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(StoreUnavailable)
async def _store_unavailable(request: Request, exc: StoreUnavailable) -> JSONResponse:
    logger.error("Store unavailable on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=503, content={"detail": "Entity store unavailable"})


# Mount routers
app.include_router(users_router, prefix="/api")
app.include_router(groups_router, prefix="/api")
app.include_router(ranks_router, prefix="/api")


@app.get("/api/health")
def health():
    return {"status": "ok"}
