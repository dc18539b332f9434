from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi import HTTPException
from sqlalchemy import text
from datetime import datetime
import logging

from .config.settings import settings
from .database import SessionLocal, init_db
from .api.routes import auth, licenses, teams, partners
from .middleware.logging import log_requests
from .middleware.rate_limiter import rate_limiter
from .utils.exceptions import (
    PortalException,
    portal_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    unhandled_exception_handler
)

logging.basicConfig(level=settings.LOG_LEVEL, format=settings.LOG_FORMAT)
logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    openapi_url=f"{settings.API_PREFIX}/openapi.json",
    docs_url="/docs" if settings.ENABLE_DOCS else None,
    redoc_url="/redoc" if settings.ENABLE_DOCS else None,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=settings.ALLOWED_METHODS,
    allow_headers=settings.ALLOWED_HEADERS,
)


# Rate limiting runs inside request logging so rejected requests are logged too
@app.middleware("http")
async def rate_limit_middleware(request: Request, call_next):
    if not settings.DISABLE_RATE_LIMIT:
        rejection = await rate_limiter.check_rate_limit(request)
        if rejection is not None:
            return rejection
    return await call_next(request)

app.middleware("http")(log_requests)

# Exception handlers
app.add_exception_handler(PortalException, portal_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

# Include routers
app.include_router(
    auth.router,
    prefix=f"{settings.API_PREFIX}/auth",
    tags=["authentication"]
)

app.include_router(
    licenses.router,
    prefix=f"{settings.API_PREFIX}/licenses",
    tags=["licenses"]
)

app.include_router(
    teams.router,
    prefix=f"{settings.API_PREFIX}/teams",
    tags=["teams"]
)

app.include_router(
    partners.router,
    prefix=f"{settings.API_PREFIX}/partners",
    tags=["partners"]
)


@app.get("/")
async def root():
    """Root endpoint to verify API is running"""
    return {
        "name": settings.PROJECT_NAME,
        "version": settings.VERSION,
        "status": "operational",
        "environment": settings.ENVIRONMENT
    }


@app.get(f"{settings.API_PREFIX}/health")
async def health_check():
    """Health check endpoint"""
    db_status = "connected"
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        db_status = "unavailable"
    finally:
        db.close()

    return {
        "status": "healthy" if db_status == "connected" else "degraded",
        "version": settings.VERSION,
        "timestamp": datetime.utcnow().isoformat(),
        "db_status": db_status
    }


@app.on_event("startup")
async def startup_event():
    if settings.AUTO_CREATE_TABLES:
        init_db()
    logger.info(f"{settings.PROJECT_NAME} {settings.VERSION} started ({settings.ENVIRONMENT})")
