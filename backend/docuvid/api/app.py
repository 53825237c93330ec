"""FastAPI application setup with lifespan and exception handlers."""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from docuvid import __version__, validate_dependencies
from docuvid.assembly.engine import AssemblyBusyError, teardown_engine
from docuvid.db import init_database, shutdown
from docuvid.errors import (
    AssemblyError,
    DocuvidError,
    NotFoundError,
    PhaseInvariantError,
    ValidationError,
)
from docuvid.api.routes import router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager.

    Startup:
        - Validate system dependencies (ffmpeg, ffprobe)
        - Initialize database schema

    Shutdown:
        - Tear down the shared assembly engine
        - Close database connections
    """
    # Startup
    logger.info("Starting Docuvid API...")
    validate_dependencies()
    await init_database()
    logger.info("API startup complete")

    yield

    # Shutdown
    logger.info("Shutting down Docuvid API...")
    await teardown_engine()
    await shutdown()
    logger.info("API shutdown complete")


# Create FastAPI application
app = FastAPI(
    title="Docuvid API",
    version=__version__,
    lifespan=lifespan,
)

# CORS for the wizard's Vite dev server
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173"],
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include router with all endpoints
app.include_router(router)


@app.exception_handler(PhaseInvariantError)
async def phase_invariant_handler(request: Request, exc: PhaseInvariantError):
    return JSONResponse(
        status_code=400,
        content={"error": "Phase not complete", "detail": str(exc), "incomplete_scenes": exc.incomplete},
    )


@app.exception_handler(ValidationError)
async def validation_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=400, content={"error": "Invalid request", "detail": str(exc)})


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"error": "Not found", "detail": str(exc)})


@app.exception_handler(AssemblyBusyError)
async def assembly_busy_handler(request: Request, exc: AssemblyBusyError):
    return JSONResponse(status_code=409, content={"error": "Assembly in progress", "detail": str(exc)})


@app.exception_handler(AssemblyError)
async def assembly_error_handler(request: Request, exc: AssemblyError):
    logger.error(f"Assembly failed at {exc.stage}: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "error": "Assembly failed",
            "detail": str(exc),
            "stage": exc.stage,
            "clip_index": exc.clip_index,
        },
    )


@app.exception_handler(DocuvidError)
async def docuvid_error_handler(request: Request, exc: DocuvidError):
    logger.error(f"{type(exc).__name__} in {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"error": type(exc).__name__, "detail": str(exc)})


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    """Catch-all exception handler to prevent stack traces in API responses."""
    logger.error(f"Unhandled exception in {request.method} {request.url.path}: {type(exc).__name__}: {str(exc)}")
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "detail": str(exc),
        }
    )
