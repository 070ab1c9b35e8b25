"""GET /api/v1/save and POST /api/v1/load — the persistence hook over HTTP."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, Response

from dominion.api.dependencies import get_engine_manager
from dominion.api.engine_manager import EngineManager
from dominion.api.schemas import LoadResponse

router = APIRouter()


@router.get("/save")
def save(manager: EngineManager = Depends(get_engine_manager)) -> Response:
    return Response(content=manager.save(), media_type="application/json")


@router.post("/load", response_model=LoadResponse)
async def load(
    request: Request,
    manager: EngineManager = Depends(get_engine_manager),
) -> LoadResponse:
    if manager.running:
        raise HTTPException(status_code=409, detail="Stop the simulation before loading a save.")
    body = await request.body()
    try:
        turn = manager.load(body)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return LoadResponse(status="ok", turn=turn, queues=len(manager.get_queues()))
