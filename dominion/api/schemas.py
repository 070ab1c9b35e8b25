"""Pydantic response models for the REST API."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


# --- State ---

class CivilizationSchema(BaseModel):
    civ_id: int
    name: str
    gold: float
    income: float
    expenses: float
    capital_x: int | None = None
    capital_y: int | None = None
    cities: int = 0
    units: int = 0
    military_strength: float = 0.0
    technologies: list[str] = Field(default_factory=list)
    at_war_with: list[int] = Field(default_factory=list)
    alliances: list[int] = Field(default_factory=list)
    explored_tiles: int = 0
    queued_actions: int = 0


class WorldStateResponse(BaseModel):
    turn: int
    phase: str
    running: bool
    paused: bool
    civilizations: list[CivilizationSchema] = Field(default_factory=list)


# --- Queues ---

class QueuedActionSchema(BaseModel):
    action_id: int
    kind: dict[str, Any]
    priority: float
    enqueued_turn: int
    earliest_eligible_turn: int
    attempts_made: int = 0
    source: str = ""
    reason: str = ""


class AgentQueueResponse(BaseModel):
    agent_id: int
    size: int
    max_size: int
    actions: list[QueuedActionSchema] = Field(default_factory=list)


class QueuesResponse(BaseModel):
    turn: int
    queues: list[AgentQueueResponse] = Field(default_factory=list)


# --- Reports ---

class AgentReportSchema(BaseModel):
    agent_id: int
    enqueued: int = 0
    executed: int = 0
    retried: int = 0
    dropped: int = 0
    exhausted: int = 0
    fatal: int = 0
    rejected: int = 0
    evicted: int = 0
    eliminated: int = 0
    merged: int = 0


class ActionEventSchema(BaseModel):
    turn: int
    agent_id: int
    action_id: int | None = None
    category: str
    outcome: str
    priority: float
    detail: str = ""


class TurnReportSchema(BaseModel):
    turn: int
    agents: list[AgentReportSchema] = Field(default_factory=list)
    totals: dict[str, int] = Field(default_factory=dict)
    events: list[ActionEventSchema] = Field(default_factory=list)


class ReportsResponse(BaseModel):
    reports: list[TurnReportSchema] = Field(default_factory=list)


# --- Events ---

class EventSchema(BaseModel):
    turn: int
    category: str
    message: str
    agent_ids: list[int] = Field(default_factory=list)


class EventsResponse(BaseModel):
    events: list[EventSchema] = Field(default_factory=list)


# --- Control ---

class ControlResponse(BaseModel):
    status: str
    message: str
    turn: int = 0


# --- Config ---

class SchedulerConfigResponse(BaseModel):
    max_queue_size: int
    actions_per_turn: int
    max_retries: int
    category_base_weights: dict[str, float]
    retry_delay_turns: int
    retry_priority_boost: float
    priority_floor: float
    priority_ceiling: float
    max_candidates_per_agent: int
    agent_actions_per_turn: dict[str, int] = Field(default_factory=dict)
    merge_pending_duplicates: bool
    strict_invariants: bool


class SimulationConfigResponse(BaseModel):
    world_seed: int
    grid_width: int
    grid_height: int
    num_civs: int
    max_turns: int
    num_workers: int
    decision_layers: list[str]
    tick_rate: float
    scheduler: SchedulerConfigResponse


# --- Persistence ---

class LoadResponse(BaseModel):
    status: str
    turn: int
    queues: int
