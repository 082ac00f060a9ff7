import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .clock import utcnow
from .config import CORS_ORIGINS, LOG_LEVEL, SEED_DEFAULT_CATEGORIES
from .database import create_tables, get_session, seed_categories
from .errors import TaskManagerError, ValidationError
from .logging_setup import setup_logging
from .routers import categories, tasks
from .schemas.base import error_pairs

setup_logging(LOG_LEVEL)
logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="TaskManager API",
    description="Task management API with categories, soft delete, search and statistics",
    version=__version__,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(tasks.router, prefix="/api", tags=["tasks"])
app.include_router(categories.router, prefix="/api", tags=["categories"])


@app.exception_handler(TaskManagerError)
async def task_manager_error_handler(request: Request, exc: TaskManagerError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.detail)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    error = ValidationError(error_pairs(exc.errors()))
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=error.to_dict())


# Create tables on startup
@app.on_event("startup")
def on_startup():
    create_tables()
    if SEED_DEFAULT_CATEGORIES:
        with get_session() as session:
            seed_categories(session)
    logger.info("TaskManager API ready")


@app.get("/")
def read_root():
    return {
        "name": "TaskManager API",
        "version": __version__,
        "endpoints": {
            "tasks": "/api/tasks",
            "categories": "/api/categories",
            "documentation": "/docs",
            "health": "/health",
        },
    }


@app.get("/health")
def health_check():
    return {"status": "healthy", "timestamp": utcnow().isoformat()}
