"""Parallel worker pool for the Populate phase."""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Sequence, TypeVar

from dominion.errors import InvariantViolation

logger = logging.getLogger(__name__)

T = TypeVar("T")
S = TypeVar("S")


class WorkerPool:
    """Manages a ThreadPoolExecutor that runs per-agent planning in parallel.

    Workers only read an immutable snapshot.  Results are buffered and
    handed back keyed by agent id, so the caller merges them in agent-id
    order regardless of completion order.  There is no planning deadline:
    a turn waits for every agent, so the outcome never depends on thread
    scheduling or machine load.
    """

    __slots__ = ("_num_workers", "_executor")

    def __init__(self, num_workers: int = 4) -> None:
        self._num_workers = num_workers
        self._executor: ThreadPoolExecutor | None = None
        if num_workers > 1:
            self._executor = ThreadPoolExecutor(
                max_workers=num_workers,
                thread_name_prefix="ai-worker",
            )

    @property
    def num_workers(self) -> int:
        return self._num_workers

    def dispatch(
        self,
        agents: Sequence[int],
        snapshot: S,
        plan: Callable[[S, int], T],
    ) -> dict[int, T]:
        """Run ``plan(snapshot, agent)`` for every agent and collect results.

        Blocks until every worker has finished.  An agent whose planning
        raises is logged and missing from the result, so it proposes nothing
        this turn; InvariantViolation propagates.
        Uses inline execution when num_workers <= 1 to avoid threading overhead.
        """
        results: dict[int, T] = {}
        if not agents:
            return results

        if self._executor is None:
            for agent in agents:
                try:
                    results[agent] = plan(snapshot, agent)
                except InvariantViolation:
                    raise
                except Exception:
                    logger.exception("Planning failed for agent %d — skipping turn", agent)
            return results

        futures: list[tuple[int, Future[T]]] = [
            (agent, self._executor.submit(plan, snapshot, agent)) for agent in agents
        ]
        # Collected in submission order; result() waits as long as it takes
        for agent, future in futures:
            try:
                results[agent] = future.result()
            except InvariantViolation:
                for _a, pending in futures:
                    pending.cancel()
                raise
            except Exception:
                logger.exception("Worker failed for agent %d — skipping turn", agent)
        return results

    def shutdown(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
