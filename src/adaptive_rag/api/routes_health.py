"""Health check endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from adaptive_rag.api.dependencies import get_context_manager, get_settings, get_vector_index
from adaptive_rag.config.settings import Settings
from adaptive_rag.models.schemas import HealthResponse
from adaptive_rag.sessions.context_manager import ContextManager

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health(
    manager: ContextManager = Depends(get_context_manager),
    settings: Settings = Depends(get_settings),
    vector_index=Depends(get_vector_index),
) -> HealthResponse:
    return HealthResponse(
        status="ok",
        provider=settings.model_provider,
        index_size=getattr(vector_index, "size", 0),
        bm25_size=getattr(vector_index, "bm25_size", 0),
        active_sessions=await manager.count_sessions(),
    )
