"""Workflow tracing: one NodeExecution per state-machine node."""

from __future__ import annotations

import asyncio
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from uuid import uuid4

from adaptive_rag.models.domain import NodeExecution, WorkflowTrace


@dataclass
class NodeSpan:
    node: str
    start: float
    input: dict = field(default_factory=dict)
    output: dict = field(default_factory=dict)
    status: str = "completed"
    error: str | None = None

    def skip(self, reason: str) -> None:
        self.status = "skipped"
        self.output["reason"] = reason


class WorkflowTracer:
    def __init__(
        self,
        lane: int,
        query: str = "",
        session_id: str | None = None,
        trace_id: str | None = None,
    ) -> None:
        self.trace_id = trace_id or str(uuid4())
        self.lane = lane
        self.query = query
        self.session_id = session_id
        self.node_executions: list[NodeExecution] = []
        self.decision_path: list[str] = []
        self.current_node: str | None = None
        self.cancel_reason: str | None = None
        self._start = time.monotonic()

    @contextmanager
    def span(self, node: str, **input):
        s = NodeSpan(node=node, start=time.monotonic(), input=input)
        self.current_node = node
        self.decision_path.append(node)
        try:
            yield s
        except asyncio.CancelledError:
            s.status = "error"
            s.error = self.cancel_reason or "cancelled"
            raise
        except Exception as e:
            s.status = "error"
            s.error = str(e) or type(e).__name__
            raise
        finally:
            self.node_executions.append(
                NodeExecution(
                    node=s.node,
                    status=s.status,
                    duration_ms=(time.monotonic() - s.start) * 1000,
                    input=s.input,
                    output=s.output,
                    error=s.error,
                )
            )
            self.current_node = None

    @property
    def last(self) -> NodeExecution:
        return self.node_executions[-1]

    @property
    def elapsed_ms(self) -> float:
        return (time.monotonic() - self._start) * 1000

    def build(self, status: str, retry_count: int) -> WorkflowTrace:
        return WorkflowTrace(
            trace_id=self.trace_id,
            lane=self.lane,
            node_executions=list(self.node_executions),
            decision_path=list(self.decision_path),
            total_duration_ms=sum(n.duration_ms for n in self.node_executions),
            retry_count=retry_count,
            status=status,
            query=self.query,
            session_id=self.session_id,
        )
