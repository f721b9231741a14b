import math
import logging
from collections.abc import Iterable

from .models import ERROR, LatencySummary, RequestOutcome, StatusClass, Statistics

logger = logging.getLogger(__name__)


def floor_single_decimal(value: float) -> float:
    return math.floor(value * 10) / 10


def percentage(value: int, total: int) -> float:
    """Share of `total` in percent, truncated (not rounded) to one decimal."""
    if total == 0:
        return 0
    return floor_single_decimal(value / total * 100)


def compute_statistics(entries: Iterable[RequestOutcome]) -> Statistics:
    total = 0
    up = 0
    code_counts: dict = {}
    times: list[int] = []

    for entry in entries:
        total += 1
        if entry.status_class is StatusClass.UP:
            up += 1
        code_counts[entry.code] = code_counts.get(entry.code, 0) + 1
        if entry.code != ERROR and entry.elapsed_ms > 0:
            times.append(entry.elapsed_ms)

    latency = None
    if times:
        latency = LatencySummary(
            min=min(times),
            avg=sum(times) // len(times),
            max=max(times),
        )

    logger.debug(f"Computed statistics: total={total}, up={up}, samples={len(times)}")
    return Statistics(
        total=total,
        up=up,
        down=total - up,
        code_counts=code_counts,
        latency=latency,
    )
