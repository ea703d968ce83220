"""Lane execution: the bounded retrieve -> grade -> rewrite -> generate -> verify loop.

A run is a producer task that pushes typed events into a queue; the consumer
side enforces the wall-clock budget. On expiry the producer is cancelled
(which cancels any in-flight model or index call), one timeout event with the
partial trace is emitted, and nothing follows it.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable
from contextlib import aclosing, suppress

from adaptive_rag.config.constants import LANE_NAMES
from adaptive_rag.exceptions import LaneExecutionError, LaneTimeoutError, VerificationError
from adaptive_rag.generation.answer_generator import AnswerGenerator
from adaptive_rag.grading.grader import QualityGrader
from adaptive_rag.grading.rewriter import QueryRewriter
from adaptive_rag.models.domain import (
    GraderResult,
    HybridRetrievalResult,
    IntentClassification,
    LaneResult,
    NodeExecution,
    RetrievedDocument,
    RewriteRecord,
    WorkflowTrace,
)
from adaptive_rag.models.events import (
    CompleteData,
    CompleteEvent,
    ErrorData,
    ErrorEvent,
    NodeData,
    NodeEvent,
    TimeoutData,
    TimeoutEvent,
    TokenData,
    TokenEvent,
)
from adaptive_rag.models.schemas import ResolvedQueryConfig
from adaptive_rag.observability.logger import get_logger
from adaptive_rag.observability.metrics import (
    log_grading_metrics,
    log_lane_metrics,
    log_retrieval_metrics,
)
from adaptive_rag.observability.tracing import WorkflowTracer
from adaptive_rag.orchestration.state import LaneState, LaneStateMachine
from adaptive_rag.query.decomposition import QueryDecomposer
from adaptive_rag.retrieval.hybrid_retriever import HybridRetriever
from adaptive_rag.verification.hallucination import HallucinationChecker

logger = get_logger("lane_executor")

_DONE = object()


def node_event(execution: NodeExecution) -> NodeEvent:
    return NodeEvent(
        data=NodeData(
            node=execution.node,
            status=execution.status,
            duration_ms=round(execution.duration_ms, 2),
            input=execution.input,
            output=execution.output,
            error=execution.error,
        )
    )


def select_best_round(
    rounds: list[tuple[GraderResult, HybridRetrievalResult]],
) -> tuple[GraderResult, list[RetrievedDocument]]:
    """Highest pass rate wins, earliest round on ties; keep its relevant documents."""
    best_grade, best_retrieval = rounds[0]
    for grade, retrieval in rounds[1:]:
        if grade.pass_rate > best_grade.pass_rate:
            best_grade, best_retrieval = grade, retrieval
    relevant = best_grade.relevant_ids
    return best_grade, [d for d in best_retrieval.documents if d.id in relevant]


class LaneRun:
    """One execution of a lane. Iterate ``events()`` once; then read ``result``/``error``."""

    def __init__(
        self,
        executor: LaneExecutor,
        query: str,
        classification: IntentClassification,
        config: ResolvedQueryConfig,
        session_id: str | None = None,
        history: list[tuple[str, str]] | None = None,
        spent_ms: float = 0.0,
    ) -> None:
        self.query = query
        self.classification = classification
        self.config = config
        self.lane = classification.suggested_lane
        self.history = history or []
        # Budget already consumed before the lane started (routing)
        self.spent_ms = spent_ms
        self.tracer = WorkflowTracer(self.lane, query=query, session_id=session_id)
        self.machine = LaneStateMachine()
        self.retry_count = 0
        self.result: LaneResult | None = None
        self.error: LaneExecutionError | LaneTimeoutError | None = None
        self.trace: WorkflowTrace | None = None
        self._executor = executor

    @property
    def trace_id(self) -> str:
        return self.tracer.trace_id

    async def events(self) -> AsyncIterator:
        loop = asyncio.get_running_loop()
        budget_ms = self.config.thinking_timeout_ms
        deadline = loop.time() + (budget_ms - self.spent_ms) / 1000
        queue: asyncio.Queue = asyncio.Queue()
        task = asyncio.create_task(self._produce(queue))
        try:
            while True:
                remaining = deadline - loop.time()
                if task.done():
                    # Producer finished in time: drain without the clock
                    item = await queue.get()
                elif remaining <= 0:
                    item = None
                elif not queue.empty():
                    item = queue.get_nowait()
                else:
                    try:
                        item = await asyncio.wait_for(queue.get(), timeout=remaining)
                    except asyncio.TimeoutError:
                        item = None

                if item is None:
                    yield await self._expire(task, budget_ms)
                    return
                if item is _DONE:
                    return
                yield item
        finally:
            if not task.done():
                self.tracer.cancel_reason = "cancelled"
                task.cancel()
                with suppress(asyncio.CancelledError):
                    await task

    async def _expire(self, task: asyncio.Task, budget_ms: int) -> TimeoutEvent:
        node = self.tracer.current_node
        self.tracer.cancel_reason = "timeout"
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task
        self.machine.advance(LaneState.TIMEOUT)
        self.trace = self.tracer.build("timeout", self.retry_count)
        elapsed = self.spent_ms + self.tracer.elapsed_ms
        self.error = LaneTimeoutError(
            f"Lane {self.lane} exceeded {budget_ms}ms budget", node=node, elapsed_ms=elapsed
        )
        logger.warning("lane_timeout", trace_id=self.trace_id, node=node, budget_ms=budget_ms)
        self._executor.persist_trace(self.trace)
        return TimeoutEvent(
            data=TimeoutData(
                message=str(self.error),
                node=node,
                elapsed_ms=round(elapsed, 2),
                budget_ms=budget_ms,
                partial_trace=self.trace.to_dict(),
            )
        )

    async def _produce(self, queue: asyncio.Queue) -> None:
        try:
            self.result = await self._executor.run_lane(self, queue.put_nowait)
            self.trace = self.result.trace
        except LaneExecutionError as e:
            self.error = e
            self.machine.advance(LaneState.ERROR)
            self.trace = self.tracer.build("error", self.retry_count)
            logger.error("lane_failed", trace_id=self.trace_id, node=e.node, error=str(e))
            self._executor.persist_trace(self.trace)
            queue.put_nowait(
                ErrorEvent(data=ErrorData(message=str(e), node=e.node, elapsed_ms=round(e.elapsed_ms, 2)))
            )
        finally:
            queue.put_nowait(_DONE)


class LaneExecutor:
    def __init__(
        self,
        retriever: HybridRetriever,
        grader: QualityGrader,
        rewriter: QueryRewriter,
        generator: AnswerGenerator,
        checker: HallucinationChecker,
        decomposer: QueryDecomposer,
        trace_store=None,
    ) -> None:
        self._retriever = retriever
        self._grader = grader
        self._rewriter = rewriter
        self._generator = generator
        self._checker = checker
        self._decomposer = decomposer
        self._trace_store = trace_store
        self._pending: set[asyncio.Task] = set()

    def start(
        self,
        query: str,
        classification: IntentClassification,
        config: ResolvedQueryConfig,
        *,
        session_id: str | None = None,
        history: list[tuple[str, str]] | None = None,
        spent_ms: float = 0.0,
    ) -> LaneRun:
        return LaneRun(self, query, classification, config, session_id, history, spent_ms)

    async def stream(
        self,
        query: str,
        classification: IntentClassification,
        config: ResolvedQueryConfig,
        **kwargs,
    ) -> AsyncIterator:
        """Node/token events, then exactly one terminal event."""
        run = self.start(query, classification, config, **kwargs)
        async with aclosing(run.events()) as events:
            async for event in events:
                yield event
        if run.result is not None:
            yield CompleteEvent(data=CompleteData(result=run.result.summary()))

    async def execute(
        self,
        query: str,
        classification: IntentClassification,
        config: ResolvedQueryConfig,
        **kwargs,
    ) -> LaneResult:
        run = self.start(query, classification, config, **kwargs)
        async with aclosing(run.events()) as events:
            async for _ in events:
                pass
        if run.error is not None:
            raise run.error
        return run.result

    def persist_trace(self, trace: WorkflowTrace) -> None:
        log_lane_metrics(trace)
        if self._trace_store is None:
            return
        task = asyncio.create_task(self._trace_store.save_trace(trace))
        self._pending.add(task)
        task.add_done_callback(self._on_trace_saved)

    def _on_trace_saved(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning("trace_persist_failed", error=str(task.exception()))

    async def drain(self) -> None:
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)

    async def run_lane(self, run: LaneRun, emit: Callable) -> LaneResult:
        tracer = run.tracer
        try:
            return await self._run_nodes(run, emit)
        except LaneExecutionError:
            raise
        except Exception as e:
            last = tracer.last if tracer.node_executions else None
            if last is not None and last.status == "error":
                emit(node_event(last))
                node = last.node
            else:
                # Raised between spans: blame the node the machine is in
                node = run.machine.state.value
            raise LaneExecutionError(
                str(e) or type(e).__name__,
                node=node,
                elapsed_ms=tracer.elapsed_ms,
            ) from e

    async def _run_nodes(self, run: LaneRun, emit: Callable) -> LaneResult:
        tracer, machine, config = run.tracer, run.machine, run.config
        query, lane = run.query, run.lane
        model = config.reasoning_model if lane == 3 else config.fast_model

        with tracer.span(
            LaneState.INIT.value, query=query, lane=lane, intent=run.classification.intent
        ) as s:
            s.output = {"lane_name": LANE_NAMES[lane], "max_retries": config.max_retries}
        emit(node_event(tracer.last))

        documents: list[RetrievedDocument] = []
        grader_results: list[GraderResult] = []
        rewrites: list[RewriteRecord] = []
        retrieval: HybridRetrievalResult | None = None
        sub_questions: list[str] = []
        strategy = ""

        if lane != 1:
            if lane == 3:
                machine.advance(LaneState.PLAN)
                with tracer.span(LaneState.PLAN.value, query=query) as s:
                    plan = await self._decomposer.decompose(query, model=config.reasoning_model)
                    sub_questions, strategy = plan.sub_questions, plan.reasoning_strategy
                    s.output = plan.to_dict()
                emit(node_event(tracer.last))
            extra_queries = [q for q in sub_questions if q != query]

            rounds: list[tuple[GraderResult, HybridRetrievalResult]] = []
            current_query = query
            while True:
                machine.advance(LaneState.RETRIEVE)
                with tracer.span(
                    LaneState.RETRIEVE.value, query=current_query, attempt=run.retry_count
                ) as s:
                    retrieval = await self._retriever.retrieve(
                        current_query,
                        config.top_k,
                        config.rerank_top_k,
                        enable_bm25=config.enable_bm25,
                        enable_rerank=config.enable_rerank,
                        similarity_threshold=config.similarity_threshold,
                        embedding_model=config.embedding_model,
                        extra_queries=extra_queries,
                        collection=config.collection_name,
                    )
                    s.output = retrieval.summary()
                emit(node_event(tracer.last))
                log_retrieval_metrics(tracer.trace_id, retrieval)

                machine.advance(LaneState.GRADE)
                with tracer.span(
                    LaneState.GRADE.value, query=query, documents=len(retrieval.documents)
                ) as s:
                    graded = await self._grader.grade(
                        query,
                        retrieval.documents,
                        pass_threshold=config.grade_pass_threshold,
                        model=config.fast_model,
                    )
                    s.output = {
                        "pass_rate": graded.pass_rate,
                        "pass_count": graded.pass_count,
                        "total_count": graded.total_count,
                        "should_rewrite": graded.should_rewrite,
                    }
                emit(node_event(tracer.last))
                log_grading_metrics(tracer.trace_id, run.retry_count, graded)
                grader_results.append(graded)
                rounds.append((graded, retrieval))

                if not graded.should_rewrite or run.retry_count >= config.max_retries:
                    break

                attempt = run.retry_count + 1
                machine.advance(LaneState.REWRITE)
                with tracer.span(
                    LaneState.REWRITE.value, query=current_query, attempt=attempt
                ) as s:
                    record = await self._rewriter.rewrite(
                        query,
                        graded,
                        attempt,
                        current_query=current_query,
                        documents=retrieval.documents,
                        history=rewrites,
                        model=config.fast_model,
                    )
                    s.output = record.to_dict()
                emit(node_event(tracer.last))
                rewrites.append(record)
                run.retry_count = attempt
                current_query = record.rewritten

            _, documents = select_best_round(rounds)

        machine.advance(LaneState.GENERATE)
        with tracer.span(
            LaneState.GENERATE.value, lane=lane, model=model, documents=len(documents)
        ) as s:
            parts: list[str] = []
            async for chunk in self._generator.generate_stream(
                lane,
                query,
                documents,
                model=model,
                temperature=config.temperature,
                history=run.history,
                sub_questions=sub_questions,
                strategy=strategy,
            ):
                parts.append(chunk)
                emit(TokenEvent(data=TokenData(content=chunk)))
            answer = "".join(parts)
            s.output = {"answer_length": len(answer)}
        emit(node_event(tracer.last))

        check = None
        machine.advance(LaneState.VERIFY)
        with tracer.span(LaneState.VERIFY.value, documents=len(documents)) as s:
            if lane == 1 or not documents:
                s.skip("no evidence to verify against")
            else:
                try:
                    check = await self._checker.verify(answer, documents)
                    s.output = check.to_dict()
                except VerificationError as e:
                    # Advisory only: never retries and never fails the lane
                    logger.warning("verification_skipped", trace_id=tracer.trace_id, error=str(e))
                    s.skip(str(e))
        emit(node_event(tracer.last))

        machine.advance(LaneState.DONE)
        trace = tracer.build("completed", run.retry_count)
        self.persist_trace(trace)

        return LaneResult(
            lane=lane,
            lane_name=LANE_NAMES[lane],
            answer=answer,
            documents=documents,
            trace=trace,
            classification=run.classification,
            retrieval=retrieval,
            grader_results=grader_results,
            rewrites=rewrites,
            hallucination_check=check,
            sub_queries=sub_questions,
        )
