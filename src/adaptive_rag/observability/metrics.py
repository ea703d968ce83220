"""Metric recording helpers for lanes and traces."""

from __future__ import annotations

from adaptive_rag.models.domain import (
    GraderResult,
    HybridRetrievalResult,
    IntentClassification,
    WorkflowTrace,
)
from adaptive_rag.observability.logger import get_logger

logger = get_logger("metrics")


def log_routing_metrics(
    classification: IntentClassification, forced: bool, duration_ms: float
) -> None:
    logger.info(
        "routing_metrics",
        intent=classification.intent,
        lane=classification.suggested_lane,
        confidence=round(classification.confidence, 4),
        forced=forced,
        duration_ms=round(duration_ms, 2),
    )


def log_retrieval_metrics(trace_id: str, retrieval: HybridRetrievalResult) -> None:
    stats = retrieval.statistics
    logger.info(
        "retrieval_metrics",
        trace_id=trace_id,
        quality_score=round(stats.quality_score, 4),
        dense_count=stats.dense_count,
        sparse_count=stats.sparse_count,
        merged_count=stats.merged_count,
        final_count=stats.final_count,
        dense_ms=round(stats.dense_ms, 2),
        sparse_ms=round(stats.sparse_ms, 2),
        rerank_ms=round(stats.rerank_ms, 2),
        degraded=stats.degraded_branches,
    )


def log_grading_metrics(trace_id: str, attempt: int, grader_result: GraderResult) -> None:
    logger.info(
        "grading_metrics",
        trace_id=trace_id,
        attempt=attempt,
        pass_rate=round(grader_result.pass_rate, 4),
        pass_count=grader_result.pass_count,
        total_count=grader_result.total_count,
    )


def log_lane_metrics(trace: WorkflowTrace) -> None:
    logger.info(
        "lane_metrics",
        trace_id=trace.trace_id,
        lane=trace.lane,
        status=trace.status,
        retry_count=trace.retry_count,
        nodes=len(trace.node_executions),
        total_duration_ms=round(trace.total_duration_ms, 2),
    )
