"""GET /api/v1/config — expose simulation and scheduler configuration."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from dominion.api.dependencies import get_engine_manager
from dominion.api.engine_manager import EngineManager
from dominion.api.schemas import SchedulerConfigResponse, SimulationConfigResponse

router = APIRouter()


@router.get("/config", response_model=SimulationConfigResponse)
def get_config(
    manager: EngineManager = Depends(get_engine_manager),
) -> SimulationConfigResponse:
    cfg = manager.config
    return SimulationConfigResponse(
        world_seed=cfg.world_seed,
        grid_width=cfg.grid_width,
        grid_height=cfg.grid_height,
        num_civs=cfg.num_civs,
        max_turns=cfg.max_turns,
        num_workers=cfg.num_workers,
        decision_layers=list(cfg.decision_layers),
        tick_rate=manager.tick_rate,
        scheduler=SchedulerConfigResponse(**cfg.scheduler_config().to_dict()),
    )
