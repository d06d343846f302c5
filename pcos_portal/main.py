"""
PCOS Portal - FastAPI Application Entry Point
Main application with CORS, routes, error mapping and database start-up
"""
import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from pcos_portal import __version__
from pcos_portal.auth import router as auth_router
from pcos_portal.config import settings
from pcos_portal.data_view import router as data_router
from pcos_portal.database import get_db, init_db
from pcos_portal.exceptions import PortalError
from pcos_portal.files import router as files_router
from pcos_portal.hormonal import router as hormonal_router
from pcos_portal.log_config import setup_logging
from pcos_portal.metabolic import router as metabolic_router
from pcos_portal.participants import router as participants_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    setup_logging(settings.log_level, settings.log_file)
    logger.info("PCOS Portal API starting (v%s)", __version__)

    init_db()
    settings.storage_root.mkdir(parents=True, exist_ok=True)
    logger.info("Blob storage root: %s", settings.storage_root.resolve())

    yield

    logger.info("PCOS Portal API shutting down")


# Create FastAPI app
app = FastAPI(
    title="PCOS Research Portal API",
    description="Clinical research data entry: enrollment, hormonal/metabolic panels, file intake and export",
    version=__version__,
    lifespan=lifespan
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(PortalError)
async def portal_error_handler(request: Request, exc: PortalError):
    """Every portal failure becomes one JSON error body"""
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.warning("%s %s rejected: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Include routers
app.include_router(auth_router)
app.include_router(participants_router)
app.include_router(hormonal_router)
app.include_router(metabolic_router)
app.include_router(files_router)
app.include_router(data_router)


@app.get("/health")
def health_check(db: Session = Depends(get_db)):
    """Health check endpoint"""
    try:
        db.execute(text("SELECT 1"))
        database = "connected"
    except SQLAlchemyError as e:
        logger.error("Database health check failed: %s", e)
        database = "unavailable"
    return {
        "status": "healthy" if database == "connected" else "degraded",
        "version": __version__,
        "database": database
    }


def run():
    """Console entry point: serve the API with uvicorn"""
    import uvicorn

    uvicorn.run("pcos_portal.main:app", host="0.0.0.0", port=8000)
