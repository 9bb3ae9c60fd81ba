"""orgflow - Task/module workflow and performance scoring service."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from orgflow.core.db_client import close_connection, init_db
from orgflow.core.errors import OrgflowError, classify_error_with_response
from orgflow.core.logging import configure_logfire, instrument_fastapi
from orgflow.interface.api_router import router as api_router


logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan context manager."""
    # Startup
    configure_logfire()

    await init_db()
    logger.info("Database initialized")

    yield
    # Shutdown
    await close_connection()


app = FastAPI(
    title="orgflow",
    description="Task/module workflow with derived status, ratings and cascading user termination",
    version="0.1.0",
    lifespan=lifespan,
)

# Instrument FastAPI with Logfire
instrument_fastapi(app)

# Register routers
app.include_router(api_router)


@app.exception_handler(OrgflowError)
async def orgflow_error_handler(request: Request, exc: OrgflowError) -> JSONResponse:
    """Map service errors to stable JSON error bodies."""
    response = classify_error_with_response(exc)
    logger.info(
        "request_rejected",
        extra={"path": request.url.path, "code": response.code, "status": response.http_status},
    )
    return JSONResponse(
        content={"code": response.code, "message": response.message},
        status_code=response.http_status,
    )


@app.get("/health")
async def health_check() -> JSONResponse:
    """Health check endpoint."""
    return JSONResponse(content={"status": "healthy"}, status_code=200)
