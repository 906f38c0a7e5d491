"""
Bazaar Reputation API — FastAPI Application Entry Point
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.requests import Request

from core.config import get_settings
from reputation.errors import EscalationError

settings = get_settings()
logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    logger.info("Bazaar Reputation API starting up", version=settings.app_version)
    yield
    logger.info("Bazaar Reputation API shutting down")


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Vendor reputation scoring and escalation engine",
    lifespan=lifespan,
)


@app.exception_handler(EscalationError)
async def escalation_error_handler(request: Request, exc: EscalationError):
    """Translate escalation engine errors into HTTP responses."""
    if exc.status_code >= 500:
        logger.error("api.escalation_error", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=exc.status_code, content={"detail": str(exc)})


# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Import and register routers
from api.v1.routers import reputation, vendor_actions

app.include_router(vendor_actions.router)
app.include_router(reputation.router)


@app.get("/health")
async def health_check():
    """Health check endpoint for load balancers."""
    return {"status": "healthy", "version": settings.app_version}
