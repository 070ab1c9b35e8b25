"""Simulation configuration with sensible defaults."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from dominion.core.enums import ActionCategory

# Category base weights: Defend highest, Trade lowest
DEFAULT_CATEGORY_WEIGHTS: dict[ActionCategory, float] = {
    ActionCategory.DEFEND:         10.0,
    ActionCategory.ATTACK:         8.0,
    ActionCategory.DIPLOMACY:      6.0,
    ActionCategory.BUILD_UNIT:     5.0,
    ActionCategory.EXPAND:         4.0,
    ActionCategory.EXPLORE:        3.5,
    ActionCategory.RESEARCH:       3.0,
    ActionCategory.BUILD_BUILDING: 2.0,
    ActionCategory.TRADE:          1.0,
}


@dataclass(frozen=True)
class SchedulerConfig:
    """Plain-data configuration surface of the scheduling core."""

    max_queue_size: int = 20
    actions_per_turn: int = 3
    max_retries: int = 2
    category_base_weights: dict[ActionCategory, float] = field(
        default_factory=lambda: dict(DEFAULT_CATEGORY_WEIGHTS)
    )

    # Retry shaping
    retry_delay_turns: int = 1
    retry_priority_boost: float = 0.5

    # Coordinator
    priority_floor: float = 0.0
    priority_ceiling: float = 20.0
    max_candidates_per_agent: int = 8

    # Per-agent TurnBudget overrides: agent id -> actions_per_turn
    agent_actions_per_turn: dict[int, int] = field(default_factory=dict)

    # Fold a candidate into a pending entry with the same intent, raising
    # it to the higher priority, instead of enqueueing a second copy
    merge_pending_duplicates: bool = False

    # Raise on NaN/inf priorities instead of normalising them
    strict_invariants: bool = True

    def __post_init__(self) -> None:
        if self.max_queue_size < 1:
            raise ValueError(f"max_queue_size must be >= 1, got {self.max_queue_size}")
        if self.actions_per_turn < 0:
            raise ValueError(f"actions_per_turn must be >= 0, got {self.actions_per_turn}")
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")
        if self.retry_delay_turns < 0:
            raise ValueError(f"retry_delay_turns must be >= 0, got {self.retry_delay_turns}")
        if not self.priority_floor <= self.priority_ceiling:
            raise ValueError(
                f"priority_floor ({self.priority_floor}) must not exceed "
                f"priority_ceiling ({self.priority_ceiling})"
            )
        if any(n < 0 for n in self.agent_actions_per_turn.values()):
            raise ValueError("agent_actions_per_turn overrides must be >= 0")

    def base_weight(self, category: ActionCategory) -> float:
        return self.category_base_weights.get(category, 0.0)

    def to_dict(self) -> dict[str, Any]:
        return {
            "max_queue_size": self.max_queue_size,
            "actions_per_turn": self.actions_per_turn,
            "max_retries": self.max_retries,
            "category_base_weights": {c.name: w for c, w in sorted(self.category_base_weights.items())},
            "retry_delay_turns": self.retry_delay_turns,
            "retry_priority_boost": self.retry_priority_boost,
            "priority_floor": self.priority_floor,
            "priority_ceiling": self.priority_ceiling,
            "max_candidates_per_agent": self.max_candidates_per_agent,
            "agent_actions_per_turn": {str(a): n for a, n in sorted(self.agent_actions_per_turn.items())},
            "merge_pending_duplicates": self.merge_pending_duplicates,
            "strict_invariants": self.strict_invariants,
        }


@dataclass(frozen=True)
class SimulationConfig:
    """Immutable configuration for the simulation run."""

    # World
    world_seed: int = 42
    grid_width: int = 40
    grid_height: int = 28
    num_civs: int = 4
    ocean_ratio: float = 0.12
    mountain_ratio: float = 0.08
    starting_gold: float = 100.0
    min_capital_distance: int = 8

    # Timing
    max_turns: int = 200

    # Workers (Populate phase)
    num_workers: int = 4

    # Scheduler
    max_queue_size: int = 20
    actions_per_turn: int = 3
    max_retries: int = 2
    retry_delay_turns: int = 1
    retry_priority_boost: float = 0.5
    category_base_weights: dict[ActionCategory, float] = field(
        default_factory=lambda: dict(DEFAULT_CATEGORY_WEIGHTS)
    )
    priority_floor: float = 0.0
    priority_ceiling: float = 20.0
    max_candidates_per_agent: int = 8
    merge_pending_duplicates: bool = False
    strict_invariants: bool = True

    # Decision layers, in the order the coordinator calls them
    decision_layers: tuple[str, ...] = ("utility", "goap", "htn")

    # Event feed
    event_log_capacity: int = 5000

    # Logging
    log_level: str = "INFO"
    replay_file: str = "replay.json"

    def scheduler_config(self) -> SchedulerConfig:
        """Derive the scheduler's plain-data configuration."""
        return SchedulerConfig(
            max_queue_size=self.max_queue_size,
            actions_per_turn=self.actions_per_turn,
            max_retries=self.max_retries,
            category_base_weights=dict(self.category_base_weights),
            retry_delay_turns=self.retry_delay_turns,
            retry_priority_boost=self.retry_priority_boost,
            priority_floor=self.priority_floor,
            priority_ceiling=self.priority_ceiling,
            max_candidates_per_agent=self.max_candidates_per_agent,
            merge_pending_duplicates=self.merge_pending_duplicates,
            strict_invariants=self.strict_invariants,
        )
