"""Query endpoints: streaming and non-streaming lane execution."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from adaptive_rag.api.dependencies import get_context_manager
from adaptive_rag.api.streaming import sse_response
from adaptive_rag.config.constants import ESTIMATED_TIME, LANE_DESCRIPTIONS, LANE_NAMES, LANE_TO_INTENT
from adaptive_rag.exceptions import AdaptiveRAGError, LaneExecutionError, LaneTimeoutError
from adaptive_rag.models.schemas import LaneInfo, QueryRequest, QueryResponse
from adaptive_rag.sessions.context_manager import ContextManager

router = APIRouter()


@router.post("/query", response_model=QueryResponse)
async def query(
    request: QueryRequest,
    manager: ContextManager = Depends(get_context_manager),
) -> QueryResponse:
    try:
        turn = await manager.process_query(request.session_id, request.query, request.config)
    except LaneTimeoutError as e:
        raise HTTPException(status_code=504, detail=str(e))
    except LaneExecutionError as e:
        raise HTTPException(status_code=502, detail={"message": str(e), "node": e.node})
    except AdaptiveRAGError as e:
        raise HTTPException(status_code=500, detail=str(e))

    return QueryResponse(
        session_id=turn.session.session_id,
        lane=turn.result.lane,
        lane_name=turn.result.lane_name,
        answer=turn.result.answer,
        classification=turn.classification.to_dict() if turn.classification else None,
        result=turn.result.summary(),
    )


@router.post("/query/stream")
async def query_stream(
    request: QueryRequest,
    manager: ContextManager = Depends(get_context_manager),
):
    """Stream routing, node, token and terminal events via Server-Sent Events."""
    return sse_response(manager.stream_query(request.session_id, request.query, request.config))


@router.get("/lanes", response_model=list[LaneInfo])
async def lanes() -> list[LaneInfo]:
    return [
        LaneInfo(
            lane=lane,
            name=name,
            description=LANE_DESCRIPTIONS[lane],
            estimated_time=ESTIMATED_TIME[LANE_TO_INTENT[lane]],
        )
        for lane, name in LANE_NAMES.items()
    ]
