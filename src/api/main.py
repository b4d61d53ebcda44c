"""
FastAPI application for the adaptive SQL tutor.

Provides REST API for:
- Session setup and the query submission loop
- Current concept / mastery state lookup
- Health and configuration checks

The orchestrator, practice database and concept catalogue live on
app.state; routers receive them through dependencies so tests can inject
their own instances via create_app().
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from config import Settings, get_settings
from src.agent.orchestrator import TrainingOrchestrator
from src.core.exceptions import ConfigurationError
from src.data.transition_loader import dataset_loader_for
from src.practice.catalog import ConceptCatalog
from src.practice.query_runner import PracticeDatabase


def build_orchestrator(settings: Settings) -> TrainingOrchestrator:
    """Orchestrator wired to the configured dataset and saved model (if any)."""
    orchestrator = TrainingOrchestrator.from_settings(
        settings,
        dataset_loader=dataset_loader_for(settings.dataset_path, settings.done_threshold),
    )
    model_path = Path(settings.model_path)
    if model_path.exists():
        try:
            orchestrator.load_estimator(settings.num_concepts, model_path)
        except ConfigurationError as e:
            logger.warning(f"Ignoring saved model {model_path}: {e}")
    return orchestrator


def build_catalog(num_concepts: int) -> ConceptCatalog | None:
    """Default catalogue when it matches num_concepts, otherwise None."""
    catalog = ConceptCatalog()
    try:
        catalog.check_size(num_concepts)
    except ConfigurationError as e:
        logger.warning(f"{e}; submissions must carry a `correct` flag")
        return None
    return catalog


def create_app(
    settings: Settings | None = None,
    orchestrator: TrainingOrchestrator | None = None,
    practice_db: PracticeDatabase | None = None,
    catalog: ConceptCatalog | None = None,
) -> FastAPI:
    """Create the API application; unspecified collaborators are built from settings."""
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler for startup/shutdown events."""
        logger.info("Starting adaptive SQL tutor service...")
        yield
        logger.info("Shutting down adaptive SQL tutor service...")
        app.state.practice_db.dispose()

    app = FastAPI(
        title="Adaptive SQL Tutor",
        description="""
    Reinforcement-learning tutor that picks the next SQL concept to quiz.

    ## Loop

    ```
    POST /setup-form      -> session_id + first concept
    POST /submit-query    -> grade, update mastery, train, next concept
    GET  /api/getAction   -> current concept
    ```
    """,
        version="0.1.0",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.num_concepts = settings.num_concepts
    app.state.orchestrator = orchestrator or build_orchestrator(settings)
    app.state.practice_db = practice_db or PracticeDatabase(settings.practice_database_url)
    app.state.catalog = catalog if catalog is not None else build_catalog(settings.num_concepts)

    # CORS middleware for the chat frontend
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["POST", "GET", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type"],
    )

    @app.get("/", tags=["Health"])
    def root() -> dict[str, str]:
        """Root endpoint returning service info."""
        return {"service": "adaptive-sql-tutor", "version": "0.1.0", "status": "ok"}

    @app.get("/health", tags=["Health"])
    def health_check() -> dict[str, Any]:
        """Health check with practice database connectivity and session count."""
        db_result = app.state.practice_db.run_query("SELECT 1")
        return {
            "status": "healthy" if db_result.ok else "unhealthy",
            "timestamp": datetime.utcnow().isoformat(),
            "components": {
                "practice_database": "ok" if db_result.ok else db_result.error,
                "catalog": "configured" if app.state.catalog is not None else "not_configured",
            },
            "active_sessions": len(app.state.orchestrator.list_sessions()),
        }

    @app.get("/config", tags=["Health"])
    def get_config() -> dict[str, Any]:
        """Get current tutoring configuration (non-sensitive)."""
        return {
            "num_concepts": settings.num_concepts,
            "reward": settings.get_reward_config(),
            "agent": settings.get_agent_config(),
            "training": settings.get_training_config(),
        }

    from src.api.routers import tutor_router

    app.include_router(tutor_router.router, tags=["Tutor"])
    return app
