from fastapi import APIRouter, Depends, Request

from app.config import get_settings
from app.services.enhancement_engine import EnhancementEngine
from app.routers.utils.dependencies import get_engine

router = APIRouter(
    prefix="/system",
    tags=["system"],
    responses={404: {"description": "Not found"}},
)


@router.get("/health", response_model=dict)
def health(
    request: Request,
    engine: EnhancementEngine = Depends(get_engine),
) -> dict:
    """Liveness plus a few non-sensitive runtime facts."""
    s = get_settings()
    return {
        "status": "ok",
        "app": s.app_name,
        "environment": s.environment,
        "contexts": len(engine.store),
        "generation_enabled": getattr(request.app.state, "generation_runner", None)
        is not None,
    }
