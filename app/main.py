import asyncio
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Optional

from fastapi import FastAPI
from fastapi_pagination import add_pagination

from app.config import get_settings
from app.core.conversation_locks import ConversationLocks
from app.infra.logging_config import configure_logging, get_logger
from app.routers import reports_router, system
from app.services.context_eviction import evict_idle_contexts
from app.services.context_store import ContextStore
from app.services.enhancement_engine import EnhancementEngine
from app.workers.llm import ReportGenerationRunner, build_generation_runner_from_env

logger = get_logger("main")


async def _evict_idle_contexts(app: FastAPI, interval_seconds: int, max_age: timedelta) -> None:
    while True:
        await asyncio.sleep(interval_seconds)
        await asyncio.to_thread(
            evict_idle_contexts, app.state.engine.store, app.state.locks, max_age
        )


def create_app(
    testing: bool = False,
    store: Optional[ContextStore] = None,
    generation_runner: Optional[ReportGenerationRunner] = None,
) -> FastAPI:
    """
    Build the API app with its own context store and engine.

    testing skips the background eviction sweep and the environment-driven
    generation runner; pass generation_runner to enable /generate in tests.
    """
    settings = get_settings()
    configure_logging(settings.log_level)

    store = store or ContextStore(
        max_context_size=settings.context_max_size,
        enhancement_retention=settings.enhancement_retention,
    )
    if generation_runner is None and not testing:
        generation_runner = build_generation_runner_from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        task = None
        if not testing:
            task = asyncio.create_task(
                _evict_idle_contexts(
                    app,
                    settings.eviction_interval_seconds,
                    timedelta(minutes=settings.context_idle_max_age_minutes),
                )
            )
            logger.info(
                "Idle context sweep every %ds (max age %d min)",
                settings.eviction_interval_seconds,
                settings.context_idle_max_age_minutes,
            )
        yield
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    app = FastAPI(
        title=settings.app_name,
        description="Incremental report context and enhancement service",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.state.engine = EnhancementEngine(store)
    app.state.locks = ConversationLocks()
    app.state.generation_runner = generation_runner

    app.include_router(reports_router.reports_router)
    app.include_router(system.router)
    add_pagination(app)

    return app


app = create_app()
