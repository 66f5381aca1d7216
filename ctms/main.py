"""CTMS FastAPI application."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ctms.api.admin import router as admin_router
from ctms.api.analytics import router as analytics_router
from ctms.api.assessments import router as assessments_router
from ctms.api.audit import router as audit_router
from ctms.api.certificates import router as certificates_router
from ctms.api.governance import router as governance_router
from ctms.api.health import router as health_router
from ctms.api.notifications import router as notifications_router
from ctms.api.records import router as records_router
from ctms.api.trainings import router as trainings_router
from ctms.config import settings
from ctms.database import async_session_maker
from ctms.errors import CTMSError
from ctms.services.container import build_services

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    services = app.state.services
    if settings.scheduler_enabled:
        await services.scheduler.start()
    else:
        logger.info("Scheduler disabled on this instance")
    yield
    await services.scheduler.stop()


app = FastAPI(
    title="CTMS - Compliance Training Management Service",
    description="Training assignment, assessments, certificates and an append-only audit trail",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)
app.state.services = build_services(async_session_maker)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(CTMSError)
async def ctms_error_handler(request: Request, exc: CTMSError):
    logger.info("%s %s -> %s (%s)", request.method, request.url.path, exc.code, exc.reason_code)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


app.include_router(health_router, tags=["Health"])
app.include_router(trainings_router, prefix="/v1", tags=["Trainings"])
app.include_router(records_router, prefix="/v1", tags=["Training Records"])
app.include_router(assessments_router, prefix="/v1", tags=["Assessments"])
app.include_router(certificates_router, prefix="/v1", tags=["Certificates"])
app.include_router(notifications_router, prefix="/v1", tags=["Notifications"])
app.include_router(governance_router, prefix="/v1", tags=["Governance"])
app.include_router(audit_router, prefix="/v1", tags=["Audit"])
app.include_router(analytics_router, prefix="/v1", tags=["Analytics"])
app.include_router(admin_router, prefix="/v1/admin", tags=["Admin"])


@app.get("/")
async def root():
    """Root endpoint."""
    return {"service": "CTMS", "version": "0.1.0", "docs": "/docs"}
