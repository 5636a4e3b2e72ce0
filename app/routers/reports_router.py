"""Reports API: enhance, inspect, edit sections, compact, export and evict contexts."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from typing import Iterator, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Response
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import HTMLResponse, PlainTextResponse, StreamingResponse
from fastapi_pagination import Page, Params, paginate

from app.config import get_settings
from app.core.conversation_locks import ConversationLocks
from app.infra.logging_config import get_logger
from app.routers.utils.dependencies import (
    get_context_by_conversation_id,
    get_engine,
    get_generation_runner,
    get_locks,
)
from app.schemas.report_context import (
    ContextMarkdown,
    ContextSummary,
    EnhancementRequest,
    EnhancementResponse,
    EvictRequest,
    GeneratedOutputRequest,
    GeneratedOutputResponse,
    GeneratePromptRequest,
    ImportContextRequest,
    ReportContext,
    SectionInsertRequest,
)
from app.services.context_eviction import evict_idle_contexts
from app.services.context_markdown import render_context_markdown
from app.services.context_store import serialized_size
from app.services.enhancement_engine import EnhancementEngine
from app.workers.llm import ReportGenerationRunner

logger = get_logger("reports_router")

reports_router = APIRouter(prefix="/reports", tags=["Report"])

STREAM_CHUNK_SIZE = 2000
STREAM_MODEL_NAME = "enhancement-engine-v1"


def _sse(payload) -> str:
    return f"data: {json.dumps(payload, default=str)}\n\n"


def _stream_events(prompt: str, response: EnhancementResponse) -> Iterator[str]:
    context = response.context
    yield _sse(
        {
            "type": "metadata",
            "model": STREAM_MODEL_NAME,
            "context": {
                "version": context.metadata.version,
                "sections": len(context.state.sections),
                "assets": context.state.assets,
            },
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
    )
    document = response.document
    for start in range(0, len(document), STREAM_CHUNK_SIZE):
        yield _sse({"content": document[start : start + STREAM_CHUNK_SIZE]})
    yield _sse(
        {
            "type": "sections",
            "sections": [op.model_dump(mode="json") for op in response.operations],
        }
    )
    yield _sse(
        {
            "type": "complete",
            "metadata": {
                "model": STREAM_MODEL_NAME,
                "tokens": {
                    "input": len(prompt),
                    "output": len(document),
                    "saved": context.metadata.total_tokens_consumed,
                },
                "context": {
                    "conversation_id": context.conversation_id,
                    "version": context.metadata.version,
                    "enhancements": len(context.enhancements),
                },
            },
        }
    )
    yield "data: [DONE]\n\n"


@reports_router.post("/enhance", response_model=EnhancementResponse)
def enhance_report(
    data: EnhancementRequest,
    engine: EnhancementEngine = Depends(get_engine),
    locks: ConversationLocks = Depends(get_locks),
) -> EnhancementResponse:
    """Create the conversation's report on first call, enhance it afterwards."""
    with locks.hold(data.conversation_id):
        response = engine.enhance(data)
    if response is None:
        raise HTTPException(status_code=404, detail="Report context not found")
    return response


@reports_router.post("/enhance/stream")
def enhance_report_stream(
    data: EnhancementRequest,
    engine: EnhancementEngine = Depends(get_engine),
    locks: ConversationLocks = Depends(get_locks),
) -> StreamingResponse:
    """Same as /enhance, delivered as server-sent events in document chunks."""
    with locks.hold(data.conversation_id):
        response = engine.enhance(data)
    if response is None:
        raise HTTPException(status_code=404, detail="Report context not found")
    return StreamingResponse(
        _stream_events(data.prompt, response),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@reports_router.get("", response_model=Page[ContextSummary])
def list_reports(
    params: Params = Depends(),
    engine: EnhancementEngine = Depends(get_engine),
) -> Page[ContextSummary]:
    """List report contexts, most recently updated first."""
    contexts = sorted(
        engine.store.list_contexts(),
        key=lambda c: c.metadata.last_update,
        reverse=True,
    )
    return paginate([ContextSummary.from_context(c) for c in contexts], params=params)


@reports_router.post("/import", response_model=ReportContext, status_code=201)
def import_report(
    data: ImportContextRequest,
    engine: EnhancementEngine = Depends(get_engine),
    locks: ConversationLocks = Depends(get_locks),
) -> ReportContext:
    """Rehydrate a context previously returned by the export endpoint."""
    context = engine.store.parse_export(data.serialized)
    if context is None:
        raise HTTPException(status_code=400, detail="Invalid serialized context")
    with locks.hold(context.conversation_id):
        return engine.store.restore(context)


@reports_router.post("/evict", response_model=dict)
def evict_reports(
    data: Optional[EvictRequest] = Body(None),
    engine: EnhancementEngine = Depends(get_engine),
    locks: ConversationLocks = Depends(get_locks),
) -> dict:
    """Drop contexts idle for longer than max_age_minutes (settings default)."""
    max_age_minutes = (
        data.max_age_minutes
        if data is not None and data.max_age_minutes is not None
        else get_settings().context_idle_max_age_minutes
    )
    evicted = evict_idle_contexts(
        engine.store, locks, timedelta(minutes=max_age_minutes)
    )
    return {"evicted": evicted, "count": len(evicted)}


@reports_router.get("/{conversation_id}", response_model=ReportContext)
def get_report(
    context: ReportContext = Depends(get_context_by_conversation_id),
) -> ReportContext:
    """Get a report context by conversation ID."""
    return context


@reports_router.get("/{conversation_id}/document", response_class=HTMLResponse)
def get_report_document(
    conversation_id: str,
    engine: EnhancementEngine = Depends(get_engine),
    locks: ConversationLocks = Depends(get_locks),
) -> HTMLResponse:
    """Reassemble the full document from stored sections."""
    with locks.hold(conversation_id):
        document = engine.render_document(conversation_id)
    if document is None:
        raise HTTPException(status_code=404, detail="Report context not found")
    return HTMLResponse(content=document)


@reports_router.get("/{conversation_id}/markdown", response_model=ContextMarkdown)
def get_report_markdown(
    context: ReportContext = Depends(get_context_by_conversation_id),
) -> ContextMarkdown:
    return render_context_markdown(context)


@reports_router.get("/{conversation_id}/prompt", response_class=PlainTextResponse)
def get_generation_prompt(
    conversation_id: str,
    prompt: str = Query(..., min_length=1),
    engine: EnhancementEngine = Depends(get_engine),
) -> PlainTextResponse:
    """Generation prompt for an upstream model, asking for delimited blocks."""
    prompt_text = engine.build_prompt(conversation_id, prompt)
    if prompt_text is None:
        raise HTTPException(status_code=404, detail="Report context not found")
    return PlainTextResponse(content=prompt_text)


def _apply_generated_locked(
    engine: EnhancementEngine,
    locks: ConversationLocks,
    conversation_id: str,
    prompt: str,
    output: str,
) -> GeneratedOutputResponse:
    with locks.hold(conversation_id):
        applied = engine.apply_generated(conversation_id, prompt, output)
    if applied is None:
        raise HTTPException(status_code=404, detail="Report context not found")
    response, parsed = applied
    return GeneratedOutputResponse(
        response=response,
        applied_blocks=len(parsed.blocks),
        skipped_blocks=parsed.skipped,
    )


@reports_router.post("/{conversation_id}/generated", response_model=GeneratedOutputResponse)
def apply_generated_output(
    conversation_id: str,
    data: GeneratedOutputRequest,
    engine: EnhancementEngine = Depends(get_engine),
    locks: ConversationLocks = Depends(get_locks),
) -> GeneratedOutputResponse:
    """Apply externally generated enhancement blocks to the report."""
    return _apply_generated_locked(engine, locks, conversation_id, data.prompt, data.output)


@reports_router.post("/{conversation_id}/generate", response_model=GeneratedOutputResponse)
async def generate_enhancement(
    conversation_id: str,
    data: GeneratePromptRequest,
    engine: EnhancementEngine = Depends(get_engine),
    locks: ConversationLocks = Depends(get_locks),
    runner: Optional[ReportGenerationRunner] = Depends(get_generation_runner),
) -> GeneratedOutputResponse:
    """Ask the configured model for enhancement blocks and apply them."""
    if runner is None:
        raise HTTPException(status_code=503, detail="Report generation is not configured")
    prompt_text = engine.build_prompt(conversation_id, data.prompt)
    if prompt_text is None:
        raise HTTPException(status_code=404, detail="Report context not found")
    try:
        output = await runner.generate(prompt_text)
    except Exception as e:
        logger.exception(f"Report generation failed for {conversation_id}: {e}")
        raise HTTPException(status_code=502, detail="Report generation failed") from e
    return await run_in_threadpool(
        _apply_generated_locked, engine, locks, conversation_id, data.prompt, output
    )


@reports_router.post(
    "/{conversation_id}/sections", response_model=EnhancementResponse, status_code=201
)
def insert_report_section(
    conversation_id: str,
    data: SectionInsertRequest,
    engine: EnhancementEngine = Depends(get_engine),
    locks: ConversationLocks = Depends(get_locks),
) -> EnhancementResponse:
    """Insert a custom section at a 1-based position (appended when omitted)."""
    with locks.hold(conversation_id):
        response = engine.insert_section(
            conversation_id,
            data.prompt,
            position=data.position,
            kind=data.kind,
            title=data.title,
            content=data.content,
        )
    if response is None:
        raise HTTPException(status_code=404, detail="Report context not found")
    return response


@reports_router.delete(
    "/{conversation_id}/sections/{section_id}", response_model=EnhancementResponse
)
def remove_report_section(
    conversation_id: str,
    section_id: str,
    engine: EnhancementEngine = Depends(get_engine),
    locks: ConversationLocks = Depends(get_locks),
) -> EnhancementResponse:
    with locks.hold(conversation_id):
        response = engine.remove_section(conversation_id, section_id)
    if response is None:
        raise HTTPException(status_code=404, detail="Section not found")
    return response


@reports_router.post("/{conversation_id}/compress", response_model=dict)
def compress_report(
    conversation_id: str,
    engine: EnhancementEngine = Depends(get_engine),
    locks: ConversationLocks = Depends(get_locks),
) -> dict:
    """Compact the context if it exceeds the size ceiling."""
    with locks.hold(conversation_id):
        context = engine.store.get(conversation_id)
        if context is None:
            raise HTTPException(status_code=404, detail="Report context not found")
        compressed = engine.store.compress(context)
        return {
            "compressed": compressed,
            "size": serialized_size(context),
            "enhancements": len(context.enhancements),
        }


@reports_router.get("/{conversation_id}/export")
def export_report(
    conversation_id: str,
    engine: EnhancementEngine = Depends(get_engine),
) -> Response:
    """Serialized context JSON, accepted back by the import endpoint."""
    serialized = engine.store.export(conversation_id)
    if serialized is None:
        raise HTTPException(status_code=404, detail="Report context not found")
    return Response(content=serialized, media_type="application/json")
