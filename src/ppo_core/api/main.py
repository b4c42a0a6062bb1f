"""PRD-first project bootstrap orchestrator - FastAPI application."""
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ppo_core import __version__
from ppo_core.config import get_settings

from .routers import projects, operations, templates, prd

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=settings.log_level,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("ppo-core")

logger.info(
    "Starting orchestrator API "
    f"({'simulated collaborators' if settings.simulated else 'live collaborators'})"
)

# Create FastAPI app
app = FastAPI(
    title="Project Bootstrap Orchestrator API",
    description="Turns a PRD into a work-tracking project and low-code platform resources",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(projects.router, prefix="/api/v1/projects")
app.include_router(operations.router, prefix="/api/v1/operations")
app.include_router(templates.router, prefix="/api/v1/templates")
app.include_router(prd.router, prefix="/api/v1/prd")


@app.get("/")
def root():
    """Root endpoint with server info."""
    return {
        "name": "Project Bootstrap Orchestrator API",
        "version": __version__,
        "simulated": settings.simulated,
        "docs": "/docs",
        "description": "PRD-first project bootstrap orchestration",
    }


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "simulated": settings.simulated}
