import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from app.core.config import settings
from app.core.database import init_db
from app.core.logging_config import setup_logging
from app.core.task_supervisor import TaskSupervisor
from app.api.endpoints import generation_tasks, health, match_tasks, parse_tasks, queue

# Configure logging
setup_logging(log_level=settings.LOG_LEVEL, json_logs=settings.JSON_LOGS)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events.
    """
    # Startup
    logger.info("Starting up Talent Pipeline API...")
    init_db()

    supervisor = TaskSupervisor()
    app.state.task_supervisor = supervisor
    if settings.ENABLE_SCHEDULERS:
        supervisor.start()
    else:
        logger.info("Schedulers disabled (ENABLE_SCHEDULERS=false); run-now requests still execute")

    yield

    # Shutdown
    logger.info("Shutting down Talent Pipeline API...")
    await supervisor.stop()


# Create FastAPI application
app = FastAPI(
    title=settings.PROJECT_NAME,
    version="1.0.0",
    description="Background resume parsing, candidate matching and job description generation",
    lifespan=lifespan
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(parse_tasks.router, prefix=settings.API_V1_STR)
app.include_router(match_tasks.router, prefix=settings.API_V1_STR)
app.include_router(generation_tasks.router, prefix=settings.API_V1_STR)
app.include_router(queue.router, prefix=settings.API_V1_STR)
app.include_router(health.router)


@app.get("/")
async def root():
    """Root endpoint - API health check"""
    return {
        "message": "Talent Pipeline API",
        "version": "1.0.0",
        "status": "healthy"
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,  # Enable auto-reload during development
        log_level="info"
    )
