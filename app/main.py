import os
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import HTTPException
import logging
from contextlib import asynccontextmanager

import portalocker

from app.config import settings
from app.core.errors import HierarchyError
from app.database import SessionLocal
from app.logging import log_config, RequestLogMiddleware
from app.models.work import Genre, ALL_GENRES
from app.services.accounts import ensure_admin_user
from app.services.reclaimer import reclaim_worker
from app.services.scheduler import scheduler_service

# API Routes
from app.api import auth, manga, images, admin_manga, users

logger = log_config.setup_logging(settings.log_level)

@asynccontextmanager
async def lifespan(app: FastAPI):

    # Silence Uvicorn's default access logger; RequestLogMiddleware covers it
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

    # Ensure directories exist (Safe to run multiple times)
    settings.log_dir.mkdir(parents=True, exist_ok=True)
    if settings.sqlite_path is not None:
        settings.sqlite_path.parent.mkdir(parents=True, exist_ok=True)
    settings.image_dir.mkdir(parents=True, exist_ok=True)

    worker_pid = os.getpid()
    logger.info(f"Worker process PID:{worker_pid} startup")

    if settings.admin_email and settings.admin_password:
        logger.info("Setting up admin user...")
        db = SessionLocal()
        try:
            ensure_admin_user(db, settings.admin_email, settings.admin_password)
        finally:
            db.close()

    # Every worker sweeps the orphans its own deletes produce
    reclaim_worker.start()

    # --- SINGLETON SETUP (only one worker process runs the periodic scheduler) ---
    lock_file_path = settings.run_dir / "scheduler.lock"
    lock_file_path.parent.mkdir(parents=True, exist_ok=True)

    # We open the file, but we don't close it until shutdown
    lock_file = open(lock_file_path, "w")
    is_manager = False

    try:
        # LOCK_EX = Exclusive, LOCK_NB = Non-Blocking
        portalocker.lock(lock_file, portalocker.LOCK_EX | portalocker.LOCK_NB)
        is_manager = True
        logger.info(f"Worker {worker_pid} acquired Manager Lock. Starting Scheduler...")
        scheduler_service.start()
    except portalocker.exceptions.LockException:
        logger.info(f"Worker {worker_pid} could not acquire lock. Skipping scheduler.")

    yield

    # --- SHUTDOWN ---
    logger.info(f"Worker {worker_pid} shutting down...")
    reclaim_worker.stop()

    if is_manager:
        scheduler_service.stop()
        try:
            portalocker.unlock(lock_file)
        except portalocker.exceptions.LockException as e:
            logger.error(f"Error releasing lock: {e}")

    lock_file.close()


app = FastAPI(
    title=settings.app_name,
    version=settings.version,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(RequestLogMiddleware)


@app.exception_handler(HierarchyError)
async def hierarchy_exception_handler(request: Request, exc: HierarchyError):
    if exc.status_code >= 500:
        logger.error(f"{type(exc).__name__} on {request.method} {request.url.path}: {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail}
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=exc.headers  # Keeps 'WWW-Authenticate' on 401s
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unexpected error: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error"}
    )


# --- ROUTER REGISTRATION ---

# Reader API
app.include_router(auth.router, prefix="/api/auth", tags=["auth"])
app.include_router(manga.router, prefix="/api/manga", tags=["manga"])
app.include_router(images.router, prefix="/api/images", tags=["images"])
app.include_router(users.router, prefix="/api/users", tags=["users"])

# Admin API
app.include_router(admin_manga.router, prefix="/admin/api", tags=["admin"])


@app.get("/api")
async def server_info():
    """Describes this server to reader clients"""
    return {
        "id": settings.app_id,
        "name": settings.app_name,
        "version": settings.version,
        "available_genres": [ALL_GENRES] + [g.value for g in Genre],
    }


# Health check endpoint
@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "service": "hondana"}
