"""Typed stream events emitted while a query executes.

Every event serializes to ``{"type", "data", "timestamp"}``. The union is
discriminated on ``type`` so transports can round-trip events through JSON.
"""

from __future__ import annotations

import json
import time
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter


def _now_ms() -> int:
    return int(time.time() * 1000)


class RoutingData(BaseModel):
    lane: int
    lane_name: str
    classification: dict[str, Any]
    forced: bool = False
    duration_ms: float = 0.0


class NodeData(BaseModel):
    node: str
    status: str
    duration_ms: float
    input: dict[str, Any] = Field(default_factory=dict)
    output: dict[str, Any] = Field(default_factory=dict)
    error: str | None = None


class TokenData(BaseModel):
    content: str


class CompleteData(BaseModel):
    session_id: str | None = None
    result: dict[str, Any]
    context: dict[str, Any] = Field(default_factory=dict)


class ErrorData(BaseModel):
    message: str
    node: str | None = None
    elapsed_ms: float = 0.0


class TimeoutData(BaseModel):
    message: str
    node: str | None = None
    elapsed_ms: float
    budget_ms: int
    partial_trace: dict[str, Any]


class RoutingEvent(BaseModel):
    type: Literal["routing"] = "routing"
    data: RoutingData
    timestamp: int = Field(default_factory=_now_ms)


class NodeEvent(BaseModel):
    type: Literal["node"] = "node"
    data: NodeData
    timestamp: int = Field(default_factory=_now_ms)


class TokenEvent(BaseModel):
    type: Literal["token"] = "token"
    data: TokenData
    timestamp: int = Field(default_factory=_now_ms)


class CompleteEvent(BaseModel):
    type: Literal["complete"] = "complete"
    data: CompleteData
    timestamp: int = Field(default_factory=_now_ms)


class ErrorEvent(BaseModel):
    type: Literal["error"] = "error"
    data: ErrorData
    timestamp: int = Field(default_factory=_now_ms)


class TimeoutEvent(BaseModel):
    type: Literal["timeout"] = "timeout"
    data: TimeoutData
    timestamp: int = Field(default_factory=_now_ms)


StreamEvent = Annotated[
    Union[RoutingEvent, NodeEvent, TokenEvent, CompleteEvent, ErrorEvent, TimeoutEvent],
    Field(discriminator="type"),
]

TERMINAL_EVENT_TYPES = frozenset({"complete", "error", "timeout"})

_event_adapter: TypeAdapter = TypeAdapter(StreamEvent)


def parse_event(payload: str | dict) -> StreamEvent:
    if isinstance(payload, str):
        payload = json.loads(payload)
    return _event_adapter.validate_python(payload)


def to_sse(event: BaseModel) -> str:
    return f"data: {event.model_dump_json()}\n\n"


SSE_DONE = "data: [DONE]\n\n"
