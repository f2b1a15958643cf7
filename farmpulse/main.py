# farmpulse/main.py
import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import Settings, configure_logging
from .database import create_tables
from .errors import FarmPulseError
from .routers import health as health_router
from .routers import sensors as sensors_router
from .routers import stream as stream_router
from .services import Services, build_services

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None, services: Optional[Services] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)
    services = services or build_services(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # create DB tables (sync)
        create_tables(services.engine)
        logger.info("FarmPulse telemetry core started")
        yield
        # wait for simulations to stop, then release the stores
        await services.aclose()
        logger.info("FarmPulse telemetry core stopped")

    app = FastAPI(title="FarmPulse Telemetry Core", lifespan=lifespan)
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # dev only
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(FarmPulseError)
    async def farmpulse_error_handler(request: Request, exc: FarmPulseError):
        return JSONResponse(status_code=exc.status_code, content={"success": False, "error": exc.message})

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"success": False, "error": "Invalid sensor data format"})

    # include routers
    app.include_router(health_router.router)
    app.include_router(sensors_router.router)
    app.include_router(stream_router.router)
    return app


def run() -> None:
    import uvicorn

    uvicorn.run(
        create_app(),
        host=os.environ.get("HOST", "0.0.0.0"),
        port=int(os.environ.get("PORT", "3001")),
    )
