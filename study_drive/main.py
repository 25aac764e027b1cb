"""
Main FastAPI application entry point
"""
import logging
import math
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from .api import router
from .core import Base, engine, settings
from .core.errors import DriveError
from .services import (
    AccessValidator,
    ActivityLogger,
    CopyRequestService,
    DatabaseSubjectSource,
    DriveService,
    HierarchyManager,
    QuotaAccountant,
    RateLimiter,
    SubjectSyncService,
    create_blob_store,
)

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def init_services(app: FastAPI) -> None:
    """Build the service graph and attach it to app.state"""
    reset_period = timedelta(hours=settings.BANDWIDTH_RESET_HOURS)

    store = create_blob_store(settings)
    store.ensure_ready()

    quota = QuotaAccountant(reset_period=reset_period)
    activity = ActivityLogger()
    access = AccessValidator(hide_foreign=settings.HIDE_FOREIGN_RESOURCES)
    drives = DriveService(
        storage_limit=settings.USER_STORAGE_LIMIT,
        bandwidth_limit=settings.DAILY_BANDWIDTH_LIMIT,
        reset_period=reset_period
    )
    hierarchy = HierarchyManager(
        store, quota, activity, access,
        max_file_size=settings.MAX_FILE_SIZE,
        duplicate_policy=settings.DUPLICATE_POLICY,
        trash_retention_days=settings.TRASH_RETENTION_DAYS
    )

    app.state.store = store
    app.state.quota = quota
    app.state.activity = activity
    app.state.access = access
    app.state.drives = drives
    app.state.hierarchy = hierarchy
    app.state.subject_sync = SubjectSyncService(hierarchy, drives, DatabaseSubjectSource(store))
    app.state.copy_requests = CopyRequestService(hierarchy, drives)
    app.state.rate_limiter = RateLimiter(sweep_interval=settings.RATE_LIMIT_SWEEP_SECONDS)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup/shutdown"""
    # Startup
    logger.info("🚀 Starting Study Drive...")

    # Initialize database
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("✅ Database tables created/verified")

    init_services(app)
    app.state.rate_limiter.start()

    logger.info(f"🌐 Server ready at http://{settings.SERVER_HOST}:{settings.SERVER_PORT}")
    logger.info(f"📖 API docs at http://{settings.SERVER_HOST}:{settings.SERVER_PORT}/docs")

    yield

    # Shutdown
    logger.info("🛑 Shutting down Study Drive...")
    await app.state.rate_limiter.stop()
    await engine.dispose()


# Create FastAPI app
app = FastAPI(
    title=settings.APP_TITLE,
    description=settings.APP_DESCRIPTION,
    version=settings.APP_VERSION,
    lifespan=lifespan
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Add Gzip compression middleware
app.add_middleware(
    GZipMiddleware,
    minimum_size=1000,  # Only compress responses larger than 1KB
    compresslevel=6
)

# Include routers
app.include_router(router)


@app.exception_handler(DriveError)
async def drive_error_handler(request: Request, exc: DriveError):
    """Render every drive error as {"error", "code", "details"} with its status"""
    if exc.status_code >= 500:
        logger.error(f"❌ {request.method} {request.url.path}: {exc.code} {exc.message}")
    else:
        logger.info(f"↩️  {request.method} {request.url.path}: {exc.code}")

    headers = {}
    reset_at = exc.details.get("reset_at")
    if exc.status_code == 429 and isinstance(reset_at, datetime):
        if reset_at.tzinfo is None:
            reset_at = reset_at.replace(tzinfo=timezone.utc)
        wait = (reset_at - datetime.now(timezone.utc)).total_seconds()
        headers["Retry-After"] = str(max(1, math.ceil(wait)))

    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "service": settings.APP_TITLE,
        "version": settings.APP_VERSION,
        "status": "running",
        "docs": "/docs",
        "health": "/health"
    }


@app.get("/health")
async def health():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "storage_backend": settings.STORAGE_BACKEND
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        app,
        host=settings.SERVER_HOST,
        port=settings.SERVER_PORT,
        log_level=settings.LOG_LEVEL.lower()
    )
