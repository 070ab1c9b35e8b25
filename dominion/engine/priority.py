"""Priority arithmetic: category base weight + situational bonus, clamped.

NaN and infinite priorities would corrupt queue ordering.  With
``strict_invariants`` they raise InvariantViolation; otherwise they are
normalised (NaN -> floor, +inf -> ceiling, -inf -> floor) and a warning is
logged.
"""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING

from dominion.errors import InvariantViolation

if TYPE_CHECKING:
    from dominion.config import SchedulerConfig
    from dominion.core.enums import ActionCategory

logger = logging.getLogger(__name__)


def ensure_finite(value: float, config: SchedulerConfig, context: str = "") -> float:
    """Return *value* unchanged if finite, else raise or normalise."""
    if math.isfinite(value):
        return value
    if config.strict_invariants:
        raise InvariantViolation(f"Non-finite priority {value!r}{' for ' + context if context else ''}")
    if math.isnan(value) or value < 0:
        normalised = config.priority_floor
    else:
        normalised = config.priority_ceiling
    logger.warning(
        "Non-finite priority %r%s normalised to %.2f",
        value, f" for {context}" if context else "", normalised,
    )
    return normalised


def clamp(value: float, config: SchedulerConfig) -> float:
    return max(config.priority_floor, min(value, config.priority_ceiling))


def raw_priority(config: SchedulerConfig, category: ActionCategory, bonus: float) -> float:
    """Unclamped ``base_weight + bonus`` (checked for NaN/inf)."""
    value = config.base_weight(category) + bonus
    return ensure_finite(value, config, category.name)


def combined_priority(config: SchedulerConfig, category: ActionCategory, bonus: float) -> float:
    """Queue priority for a candidate: checked, then clamped into range."""
    return clamp(raw_priority(config, category, bonus), config)


def retry_priority(config: SchedulerConfig, current: float) -> float:
    """Priority of a requeued action: boosted so newcomers don't starve it."""
    return clamp(ensure_finite(current + config.retry_priority_boost, config, "retry"), config)
