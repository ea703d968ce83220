"""FastAPI dependency injection helpers."""

from __future__ import annotations

from fastapi import Request

from adaptive_rag.config.settings import Settings
from adaptive_rag.sessions.context_manager import ContextManager
from adaptive_rag.storage.sqlite_trace_store import SQLiteTraceStore


def get_context_manager(request: Request) -> ContextManager:
    return request.app.state.context_manager


def get_trace_store(request: Request) -> SQLiteTraceStore:
    return request.app.state.trace_store


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_vector_index(request: Request):
    return request.app.state.vector_index
