"""
MedicX - Clinic Management API
Patient registration, medicine stock ledger, dispensing and clinical reports.
"""
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from .models.base import Base, engine
from . import models  # noqa: F401  registers every table on Base.metadata
from .api import auth, patients, medicines, usage, reports, admin, dashboard
from .core.audit_middleware import AuditMiddleware
from .core.config import settings
from .core.errors import (
    AuthError,
    ClinicError,
    FetchError,
    InsufficientStockError,
    NotFoundError,
)
from .seed_demo import seed_demo_data

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Create all database tables
# NOTE: In production, use Alembic migrations instead of create_all()
Base.metadata.create_all(bind=engine)

# Seed demo users and sample data (idempotent)
if settings.SEED_DEMO_DATA:
    seed_demo_data()

app = FastAPI(
    title="MedicX Clinic Management API",
    description=(
        "Clinic back office: patient registration, reception and doctor reports, "
        "ledger-derived medicine stock, dispensing and usage reporting."
    ),
    version=settings.VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(AuditMiddleware)

app.include_router(auth.router, prefix="/api/v1")
app.include_router(patients.router, prefix="/api/v1")
app.include_router(medicines.router, prefix="/api/v1")
app.include_router(usage.router, prefix="/api/v1")
app.include_router(reports.router, prefix="/api/v1")
app.include_router(admin.router, prefix="/api/v1")
app.include_router(dashboard.router, prefix="/api/v1")


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(InsufficientStockError)
async def insufficient_stock_handler(request: Request, exc: InsufficientStockError):
    return JSONResponse(
        status_code=409,
        content={"detail": str(exc), "available": exc.available, "requested": exc.requested},
    )


@app.exception_handler(FetchError)
async def fetch_error_handler(request: Request, exc: FetchError):
    logger.error("Store failure on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=503, content={"detail": str(exc)})


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError):
    return JSONResponse(
        status_code=401,
        content={"detail": str(exc)},
        headers={"WWW-Authenticate": "Bearer"},
    )


@app.exception_handler(ClinicError)
async def clinic_error_handler(request: Request, exc: ClinicError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.get("/health")
def health_check():
    return {"status": "healthy", "service": "MedicX API", "version": settings.VERSION}
