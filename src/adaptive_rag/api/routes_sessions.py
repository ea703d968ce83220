"""Action-based session endpoint (create/get/list/delete/query/stream-query/compress/update-config)."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from adaptive_rag.api.dependencies import get_context_manager
from adaptive_rag.api.streaming import sse_response
from adaptive_rag.exceptions import (
    AdaptiveRAGError,
    LaneExecutionError,
    LaneTimeoutError,
    SessionNotFoundError,
)
from adaptive_rag.models.schemas import SessionRequest
from adaptive_rag.sessions.context_manager import ContextManager

router = APIRouter()


def _require(value, field: str):
    if not value:
        raise HTTPException(status_code=400, detail=f"'{field}' is required for this action")
    return value


@router.post("/sessions")
async def sessions(
    request: SessionRequest,
    manager: ContextManager = Depends(get_context_manager),
):
    try:
        return await _dispatch(request, manager)
    except SessionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except LaneTimeoutError as e:
        raise HTTPException(status_code=504, detail=str(e))
    except LaneExecutionError as e:
        raise HTTPException(status_code=502, detail={"message": str(e), "node": e.node})
    except AdaptiveRAGError as e:
        raise HTTPException(status_code=500, detail=str(e))


async def _dispatch(request: SessionRequest, manager: ContextManager):
    action = request.action

    if action == "create":
        state = await manager.create_session(user_id=request.user_id)
        return {"success": True, "session": state.to_dict()}

    if action == "get":
        state = await manager.get_session(_require(request.session_id, "sessionId"))
        return {
            "success": True,
            "session": state.to_dict(),
            "token_stats": manager.get_token_stats(state),
        }

    if action == "list":
        states = await manager.list_sessions()
        return {
            "success": True,
            "sessions": [
                {
                    "session_id": s.session_id,
                    "user_id": s.user_id,
                    "created_at": s.created_at.isoformat(),
                    "metadata": s.metadata.to_dict(),
                }
                for s in states
            ],
        }

    if action == "delete":
        await manager.delete_session(_require(request.session_id, "sessionId"))
        return {"success": True}

    if action == "query":
        turn = await manager.process_query(
            request.session_id, _require(request.query, "query"), request.config
        )
        return {
            "success": True,
            "session_id": turn.session.session_id,
            "result": turn.result.summary(),
            "context": turn.session.metadata.to_dict(),
            "token_stats": manager.get_token_stats(turn.session),
        }

    if action == "stream-query":
        return sse_response(
            manager.stream_query(request.session_id, _require(request.query, "query"), request.config)
        )

    if action == "compress":
        result = await manager.compress_by_summary(_require(request.session_id, "sessionId"))
        return {
            "success": result.success,
            "summary": result.summary,
            "compressed_count": result.compressed_count,
        }

    # update-config
    return {"success": True, **manager.update_config(request.window_config, request.config)}
