"""GET /api/v1/state, /queues, /reports, /events — live scheduler state."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query

from dominion.api.dependencies import get_engine_manager
from dominion.api.engine_manager import EngineManager
from dominion.api.schemas import (
    AgentQueueResponse,
    CivilizationSchema,
    EventSchema,
    EventsResponse,
    QueuedActionSchema,
    QueuesResponse,
    ReportsResponse,
    TurnReportSchema,
    WorldStateResponse,
)

router = APIRouter()


def _queue_response(manager: EngineManager, agent_id: int, records: list[dict]) -> AgentQueueResponse:
    return AgentQueueResponse(
        agent_id=agent_id,
        size=len(records),
        max_size=manager.config.max_queue_size,
        actions=[QueuedActionSchema(**r) for r in records],
    )


@router.get("/state", response_model=WorldStateResponse)
def get_state(manager: EngineManager = Depends(get_engine_manager)) -> WorldStateResponse:
    snapshot = manager.get_snapshot()
    if snapshot is None:
        raise HTTPException(status_code=503, detail="No snapshot available yet.")

    queues = manager.get_queues()
    civilizations = []
    for civ_id in snapshot.active_agents():
        civ = snapshot.civilizations[civ_id]
        units = snapshot.own_units(civ_id)
        civilizations.append(
            CivilizationSchema(
                civ_id=civ_id,
                name=civ.name,
                gold=round(civ.gold, 2),
                income=civ.income,
                expenses=civ.expenses,
                capital_x=civ.capital.x if civ.capital else None,
                capital_y=civ.capital.y if civ.capital else None,
                cities=len(snapshot.own_cities(civ_id)),
                units=len(units),
                military_strength=sum(u.strength for u in units),
                technologies=sorted(civ.technologies),
                at_war_with=sorted(civ.at_war_with),
                alliances=sorted(civ.alliances),
                explored_tiles=civ.explored_tiles,
                queued_actions=len(queues.get(civ_id, [])),
            )
        )

    return WorldStateResponse(
        turn=snapshot.turn,
        phase=manager.phase(),
        running=manager.running,
        paused=manager.paused,
        civilizations=civilizations,
    )


@router.get("/queues", response_model=QueuesResponse)
def get_queues(manager: EngineManager = Depends(get_engine_manager)) -> QueuesResponse:
    queues = manager.get_queues()
    return QueuesResponse(
        turn=manager.current_turn(),
        queues=[_queue_response(manager, a, queues[a]) for a in sorted(queues)],
    )


@router.get("/queues/{agent_id}", response_model=AgentQueueResponse)
def get_agent_queue(
    agent_id: int,
    manager: EngineManager = Depends(get_engine_manager),
) -> AgentQueueResponse:
    records = manager.get_queues().get(agent_id)
    if records is None:
        raise HTTPException(status_code=404, detail=f"Agent {agent_id} has no action queue.")
    return _queue_response(manager, agent_id, records)


@router.get("/reports", response_model=ReportsResponse)
def get_reports(
    count: int = Query(10, ge=1, le=100, description="Most recent turn reports to return"),
    manager: EngineManager = Depends(get_engine_manager),
) -> ReportsResponse:
    return ReportsResponse(
        reports=[TurnReportSchema(**r) for r in manager.get_reports(count)],
    )


@router.get("/events", response_model=EventsResponse)
def get_events(
    since_turn: int = Query(0, ge=0, description="Only return events since this turn"),
    agent_id: int | None = Query(None, description="Only events involving this agent"),
    limit: int = Query(200, ge=1, le=5000),
    manager: EngineManager = Depends(get_engine_manager),
) -> EventsResponse:
    log = manager.event_log
    if agent_id is not None:
        events = [e for e in log.for_agent(agent_id, limit) if e.turn >= since_turn]
    else:
        events = log.since_turn(since_turn)[-limit:]
    return EventsResponse(events=[EventSchema(**e.to_dict()) for e in events])
