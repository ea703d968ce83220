"""Workflow trace endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query

from adaptive_rag.api.dependencies import get_trace_store
from adaptive_rag.storage.sqlite_trace_store import SQLiteTraceStore

router = APIRouter()


@router.get("/traces")
async def list_traces(
    limit: int = Query(default=50, ge=1, le=500),
    session_id: str | None = None,
    store: SQLiteTraceStore = Depends(get_trace_store),
) -> dict:
    traces = await store.get_recent_traces(limit=limit, session_id=session_id)
    return {"traces": [t.to_dict() for t in traces]}


@router.get("/traces/{trace_id}")
async def get_trace(
    trace_id: str,
    store: SQLiteTraceStore = Depends(get_trace_store),
) -> dict:
    trace = await store.get_trace(trace_id)
    if trace is None:
        raise HTTPException(status_code=404, detail=f"Trace not found: {trace_id}")
    return trace.to_dict()
