"""
Therapy Scheduler API application.

Run with:
    uvicorn therapy_scheduler.main:app
"""
import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

load_dotenv()

from therapy_scheduler import __version__
from therapy_scheduler.api import scheduling_routes
from therapy_scheduler.config import get_settings
from therapy_scheduler.utils.logging_config import configure_logging

configure_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    logger.info(
        f"Starting Therapy Scheduler ({settings.ENVIRONMENT}, "
        f"store={settings.STORE_BACKEND}, locks={settings.LOCK_BACKEND})"
    )
    yield
    logger.info("Therapy Scheduler shutdown complete")


def create_app() -> FastAPI:
    """Build the FastAPI application with the scheduling router mounted."""
    application = FastAPI(
        title="Therapy Scheduler",
        description="""
Scheduling and resource-assignment engine for therapy clinics.

## Features
- Availability checks and conflict resolution
- Therapist assignment with load balancing
- Bulk scheduling of treatment plans
- Capacity and workload monitoring
""",
        version=__version__,
        lifespan=lifespan,
        redirect_slashes=False,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "OPTIONS"],
        allow_headers=["*"],
    )

    application.include_router(scheduling_routes.router)
    return application


app = create_app()
