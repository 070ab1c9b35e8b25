"""EngineManager — runs the WorldLoop on a background thread.

The API reads from atomically-swapped published state (snapshot, queue
contents, recent reports); the WorldLoop mutates WorldState and the
scheduler exclusively on its own thread.  Save and load take the turn lock,
so they never observe a half-processed turn.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from typing import TYPE_CHECKING, Any

from dominion.engine.world_loop import build_world_loop
from dominion.utils import persistence
from dominion.utils.event_log import EventLog, SchedulerEvent

if TYPE_CHECKING:
    from dominion.config import SimulationConfig
    from dominion.core.snapshot import WorldSnapshot
    from dominion.engine.world_loop import WorldLoop

logger = logging.getLogger(__name__)

REPORT_HISTORY = 100


class EngineManager:
    """Manages the simulation lifecycle on a background thread.

    Provides thread-safe access to:
      - latest snapshot and queue contents (atomic reference swap)
      - recent turn reports and the event log
      - control commands (start / pause / resume / step / reset / stop)
      - the persistence hook (save / load)
    """

    def __init__(self, config: SimulationConfig) -> None:
        self.config = config
        self._tick_rate: float = 0.2  # seconds between turns

        self._loop: WorldLoop | None = None

        # Published state, guarded by _snapshot_lock
        self._snapshot_lock = threading.Lock()
        self._latest_snapshot: WorldSnapshot | None = None
        self._latest_queues: dict[int, list[dict[str, Any]]] = {}
        self._reports: deque[dict[str, Any]] = deque(maxlen=REPORT_HISTORY)
        self._event_log = EventLog(config.event_log_capacity)

        # Held for the whole of a turn and for save / load
        self._turn_lock = threading.Lock()

        # Control
        self._thread: threading.Thread | None = None
        self._running = threading.Event()
        self._paused = threading.Event()
        self._step_requested = threading.Event()
        self._stop_requested = threading.Event()

        self._build()

    # -- public properties --

    @property
    def running(self) -> bool:
        return self._running.is_set()

    @property
    def paused(self) -> bool:
        return self._paused.is_set()

    @property
    def tick_rate(self) -> float:
        return self._tick_rate

    @tick_rate.setter
    def tick_rate(self, value: float) -> None:
        self._tick_rate = max(0.01, min(value, 5.0))

    @property
    def event_log(self) -> EventLog:
        return self._event_log

    @property
    def loop(self) -> WorldLoop:
        assert self._loop is not None
        return self._loop

    # -- published state --

    def get_snapshot(self) -> WorldSnapshot | None:
        with self._snapshot_lock:
            return self._latest_snapshot

    def get_queues(self) -> dict[int, list[dict[str, Any]]]:
        with self._snapshot_lock:
            return dict(self._latest_queues)

    def get_reports(self, count: int = 10) -> list[dict[str, Any]]:
        with self._snapshot_lock:
            items = list(self._reports)
        return items[-count:] if count > 0 else []

    def current_turn(self) -> int:
        snap = self.get_snapshot()
        return snap.turn if snap else 0

    def phase(self) -> str:
        return self.loop.processor.phase.name

    # -- lifecycle --

    def start(self) -> None:
        if self._running.is_set():
            return
        self._stop_requested.clear()
        self._paused.clear()
        self._running.set()
        self._thread = threading.Thread(target=self._run_loop, name="engine-loop", daemon=True)
        self._thread.start()
        logger.info("EngineManager started (tick_rate=%.3fs)", self._tick_rate)

    def pause(self) -> None:
        self._paused.set()
        logger.info("EngineManager paused at turn %d", self.current_turn())

    def resume(self) -> None:
        self._paused.clear()
        logger.info("EngineManager resumed at turn %d", self.current_turn())

    def step(self) -> None:
        """Execute exactly one turn (must be paused)."""
        if not self._paused.is_set():
            self.pause()
        self._step_requested.set()

    def stop(self) -> None:
        self._stop_requested.set()
        self._paused.clear()
        self._running.clear()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5.0)
        self._thread = None
        logger.info("EngineManager stopped.")

    def shutdown(self) -> None:
        self.stop()
        if self._loop:
            self._loop.shutdown()

    def reset(self) -> None:
        """Stop, rebuild from config, and leave ready to start."""
        self.shutdown()
        self._event_log.clear()
        with self._snapshot_lock:
            self._reports.clear()
        self._build()
        logger.info("EngineManager reset.")

    def advance(self, turns: int = 1) -> int:
        """Run up to *turns* turns on the calling thread.

        Only allowed while the background thread is not running.  Returns the
        number of turns actually processed.
        """
        if self._running.is_set():
            raise RuntimeError("advance() is not allowed while the engine thread is running")
        done = 0
        for _ in range(turns):
            if not self._tick():
                break
            done += 1
        return done

    # -- persistence --

    def save(self) -> str:
        with self._turn_lock:
            return persistence.dumps(self.loop.processor)

    def load(self, text: str | bytes) -> int:
        """Restore queue state; the world itself is not part of a save.

        Raises ValueError (pydantic ValidationError included) on bad data.
        """
        with self._turn_lock:
            save = persistence.loads(self.loop.processor, text)
            self.loop.world.turn = save.turn
            self._publish(push_events=False)
        self._event_log.append(
            SchedulerEvent(save.turn, "persistence", f"Scheduler state loaded at turn {save.turn}")
        )
        return save.turn

    # -- internals --

    def _build(self) -> None:
        """Construct all simulation components from config."""
        self._loop = build_world_loop(self.config)
        self._publish()

    def _tick(self) -> bool:
        with self._turn_lock:
            can_continue = self.loop.tick_once()
            self._publish()
        return can_continue

    def _run_loop(self) -> None:
        """Background thread main loop."""
        logger.info("Engine thread started.")

        while not self._stop_requested.is_set():
            if self._paused.is_set() and not self._step_requested.is_set():
                time.sleep(0.01)
                continue

            single_step = self._step_requested.is_set()
            if single_step:
                self._step_requested.clear()

            try:
                can_continue = self._tick()
            except Exception:
                logger.exception("Engine thread crashed at turn %d", self.current_turn())
                break

            if not can_continue:
                logger.info("Simulation ended at turn %d.", self.current_turn())
                break

            if not single_step:
                time.sleep(self._tick_rate)

        self._running.clear()
        logger.info("Engine thread exited.")

    def _publish(self, push_events: bool = True) -> None:
        """Swap snapshot, queue contents and the latest report; push events."""
        loop = self.loop
        snap = loop.create_snapshot()
        queues = {
            agent_id: queue.export_records()
            for agent_id, queue in sorted(loop.processor.queues.items())
        }
        report = loop.last_report
        events: list[SchedulerEvent] = loop.tick_events

        with self._snapshot_lock:
            self._latest_snapshot = snap
            self._latest_queues = queues
            if report is not None and (not self._reports or self._reports[-1]["turn"] != report.turn):
                self._reports.append(report.to_dict())

        if push_events and events:
            self._event_log.append_many(events)
