"""POST /api/v1/control/{action} — simulation lifecycle controls."""

from __future__ import annotations

from enum import Enum

from fastapi import APIRouter, Depends, Query

from dominion.api.dependencies import get_engine_manager
from dominion.api.engine_manager import EngineManager
from dominion.api.schemas import ControlResponse

router = APIRouter()


class ControlAction(str, Enum):
    start = "start"
    pause = "pause"
    resume = "resume"
    step = "step"
    stop = "stop"
    reset = "reset"


@router.post("/control/{action}", response_model=ControlResponse)
def control(
    action: ControlAction,
    manager: EngineManager = Depends(get_engine_manager),
) -> ControlResponse:
    turn = manager.current_turn()

    match action:
        case ControlAction.start:
            if manager.running:
                return ControlResponse(status="noop", message="Already running.", turn=turn)
            manager.start()
            return ControlResponse(status="ok", message="Simulation started.", turn=turn)

        case ControlAction.pause:
            if not manager.running:
                return ControlResponse(status="error", message="Not running.", turn=turn)
            manager.pause()
            return ControlResponse(status="ok", message="Simulation paused.", turn=turn)

        case ControlAction.resume:
            if not manager.running:
                return ControlResponse(status="error", message="Not running.", turn=turn)
            manager.resume()
            return ControlResponse(status="ok", message="Simulation resumed.", turn=turn)

        case ControlAction.step:
            if manager.running:
                manager.step()
                return ControlResponse(status="ok", message="Single turn requested.", turn=turn)
            manager.advance(1)
            return ControlResponse(status="ok", message="Single turn executed.", turn=manager.current_turn())

        case ControlAction.stop:
            if not manager.running:
                return ControlResponse(status="noop", message="Not running.", turn=turn)
            manager.stop()
            return ControlResponse(status="ok", message="Simulation stopped.", turn=manager.current_turn())

        case ControlAction.reset:
            manager.reset()
            return ControlResponse(status="ok", message="Simulation reset.", turn=manager.current_turn())


@router.post("/speed", response_model=ControlResponse)
def set_speed(
    tps: float = Query(5.0, gt=0.2, le=100.0, description="Turns per second"),
    manager: EngineManager = Depends(get_engine_manager),
) -> ControlResponse:
    manager.tick_rate = 1.0 / tps
    return ControlResponse(status="ok", message=f"Speed set to {tps:.1f} tps.", turn=manager.current_turn())
