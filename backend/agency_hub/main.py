import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from agency_hub.core.config import settings
from agency_hub.core.exceptions import (
    AgencyApiError,
    FetchFailedError,
    MutationValidationError,
    UnknownRecordError,
)
from agency_hub.api import tenants as tenants_api
from agency_hub.api import views as views_api

logger = logging.getLogger(__name__)


def init_database():
    """Create the session-state tables."""
    from agency_hub.core.database import engine, Base
    from agency_hub.models.view_state import ViewStateEntry  # ensure table is created

    logger.info("Creating database tables...")
    Base.metadata.create_all(bind=engine)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_database()
    yield


# Disable API docs in production
docs_url = "/docs" if settings.ENVIRONMENT != "production" else None
redoc_url = "/redoc" if settings.ENVIRONMENT != "production" else None

app = FastAPI(
    title=settings.APP_NAME,
    description="Agency Hub - multi-agency commissions, policies and debts API",
    version="1.0.0",
    lifespan=lifespan,
    docs_url=docs_url,
    redoc_url=redoc_url,
)


# ── Error mapping ────────────────────────────────────────────────────

@app.exception_handler(MutationValidationError)
async def validation_exception_handler(request, exc):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(UnknownRecordError)
async def unknown_record_handler(request, exc):
    key = exc.args[0] if exc.args else ""
    return JSONResponse(status_code=404, content={"detail": f"Record {key} not found"})


@app.exception_handler(FetchFailedError)
async def fetch_failed_handler(request, exc):
    return JSONResponse(
        status_code=502,
        content={"detail": str(exc), "failed_agencies": sorted(exc.failures)},
    )


@app.exception_handler(AgencyApiError)
async def agency_api_error_handler(request, exc):
    if exc.is_authorization_error:
        return JSONResponse(status_code=403, content={"detail": "You do not have permission to do that"})
    logger.error(f"Agency API error: {exc.message} (status {exc.status_code})")
    return JSONResponse(status_code=502, content={"detail": exc.message})


# Global exception handler - always return JSON (never plain text)
@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    logger.exception(f"Unhandled exception: {exc}")
    return JSONResponse(
        status_code=500,
        content={"detail": f"Internal error: {str(exc)}"},
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request, exc):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
        headers=getattr(exc, "headers", None),
    )


# CORS - local dev + configured frontend
allowed_origins = [
    "http://localhost:3000",
    "http://localhost:5173",
]
frontend_url = settings.FRONTEND_URL or ""
if frontend_url and frontend_url not in allowed_origins:
    allowed_origins.append(frontend_url)
    if not frontend_url.startswith("https"):
        allowed_origins.append(frontend_url.replace("http://", "https://"))

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
def health_check():
    return {"status": "healthy", "service": "agency-hub-api", "version": "1.0.0"}


@app.get("/")
def root():
    return {"message": "Agency Hub API", "version": "1.0.0", "docs": docs_url}


app.include_router(tenants_api.router)
app.include_router(views_api.router)
