"""Replay serialization — records turn-by-turn action traces for deterministic replay."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from dominion.core.world_state import WorldState
    from dominion.engine.turn_processor import TurnReport

logger = logging.getLogger(__name__)


class ReplayRecorder:
    """Accumulates turn reports and flushes them to a JSON replay file."""

    __slots__ = ("_path", "_turns", "_seed")

    def __init__(self, path: str | Path, seed: int) -> None:
        self._path = Path(path)
        self._seed = seed
        self._turns: list[dict[str, Any]] = []

    @property
    def turns(self) -> list[dict[str, Any]]:
        return list(self._turns)

    def record_turn(self, report: TurnReport, world: WorldState) -> None:
        civs = [
            {
                "id": civ.civ_id,
                "name": civ.name,
                "gold": round(civ.gold, 2),
                "cities": len(world.cities_of(civ.civ_id)),
                "units": len(world.units_of(civ.civ_id)),
                "technologies": sorted(civ.technologies),
                "at_war_with": sorted(civ.at_war_with),
            }
            for civ in sorted(world.civilizations.values(), key=lambda c: c.civ_id)
            if civ.alive
        ]
        self._turns.append(
            {
                "turn": report.turn,
                "actions": [e.to_dict() for e in report.events],
                "totals": report.totals(),
                "civilizations": civs,
            }
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": "1.0",
            "seed": self._seed,
            "total_turns": len(self._turns),
            "turns": self._turns,
        }

    def flush(self) -> None:
        """Write accumulated data to disk."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(self.to_dict(), indent=2), encoding="utf-8")
        logger.info("Replay saved to %s (%d turns)", self._path, len(self._turns))
