from typing import Optional

from fastapi import Depends, HTTPException, Request

from app.core.conversation_locks import ConversationLocks
from app.schemas.report_context import ReportContext
from app.services.enhancement_engine import EnhancementEngine
from app.workers.llm import ReportGenerationRunner


def get_engine(request: Request) -> EnhancementEngine:
    """FastAPI dependency for the app's enhancement engine."""
    return request.app.state.engine


def get_locks(request: Request) -> ConversationLocks:
    return request.app.state.locks


def get_generation_runner(request: Request) -> Optional[ReportGenerationRunner]:
    return getattr(request.app.state, "generation_runner", None)


def get_context_by_conversation_id(
    conversation_id: str,
    engine: EnhancementEngine = Depends(get_engine),
) -> ReportContext:
    """FastAPI dependency to get a report context by conversation ID."""
    context = engine.store.get(conversation_id)
    if context is None:
        raise HTTPException(status_code=404, detail="Report context not found")
    return context
