"""FastAPI application factory with lifespan management."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from dominion.api.dependencies import set_engine_manager
from dominion.api.engine_manager import EngineManager
from dominion.api.routes import api_router
from dominion.config import SimulationConfig
from dominion.utils.logging import setup_logging

logger = logging.getLogger(__name__)


def create_app(config: SimulationConfig | None = None, autostart: bool = True) -> FastAPI:
    """Build and return the fully-configured FastAPI application."""
    if config is None:
        config = SimulationConfig()

    _config = config

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        setup_logging(_config.log_level)
        manager = EngineManager(_config)
        set_engine_manager(manager)
        if autostart:
            manager.start()
            logger.info("API server started — simulation running.")
        yield
        manager.shutdown()
        set_engine_manager(None)
        logger.info("API server shutting down.")

    app = FastAPI(
        title="Dominion Scheduler",
        description=(
            "Turn-based decision and action scheduling for competing civilizations.\n\n"
            "## API Groups\n\n"
            "- **State** — Live turn, civilizations, action queues, turn reports and events\n"
            "- **Control** — Simulation lifecycle: start, pause, resume, step, stop, reset\n"
            "- **Config** — Read-only simulation and scheduler configuration\n"
            "- **Persistence** — Save and load per-agent queue contents\n"
        ),
        version="0.1.0",
        lifespan=lifespan,
        openapi_tags=[
            {"name": "State", "description": "Live scheduler state: civilizations, per-agent queues, turn reports and the event feed."},
            {"name": "Control", "description": "Simulation lifecycle controls: start, pause, resume, single-step, stop and reset."},
            {"name": "Config", "description": "Read-only configuration (world size, turn limit, queue bounds, retry policy, category weights)."},
            {"name": "Persistence", "description": "Queue contents, next sequence numbers and the turn counter as JSON."},
        ],
    )

    # CORS: any origin in dev
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router)

    return app
