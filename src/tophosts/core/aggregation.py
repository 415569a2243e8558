from __future__ import annotations
from typing import Any, Mapping, Optional, Sequence, Tuple

from .models import AggregateFunction, ValueType

Sample = Tuple[int, Any]

_NUMERIC_FUNCTIONS = (
    AggregateFunction.MIN,
    AggregateFunction.MAX,
    AggregateFunction.AVG,
    AggregateFunction.SUM,
)


def coerce_value(raw: Any, value_type: ValueType) -> Any:
    """Convert an API value to int, float or str according to the item type."""
    if value_type == ValueType.UINT:
        try:
            return int(str(raw))
        except (TypeError, ValueError):
            return int(float(raw))
    if value_type == ValueType.FLOAT:
        return float(raw)
    return "" if raw is None else str(raw)


def aggregate_history(samples: Sequence[Sample], function: AggregateFunction, numeric: bool) -> Optional[Any]:
    """Reduce raw history samples of one item.

    Args:
        samples: (clock, value) pairs ordered by clock
        function: Reduction to apply
        numeric: Whether the values are numbers

    Returns:
        The reduced value; None when there are no samples or the function
        needs numbers and the values are not numeric. ``count`` always
        returns an integer.
    """
    if function == AggregateFunction.COUNT:
        return len(samples)
    if not samples:
        return None
    if function in (AggregateFunction.NONE, AggregateFunction.LAST):
        return samples[-1][1]
    if function == AggregateFunction.FIRST:
        return samples[0][1]
    if not numeric:
        return None

    values = [value for _, value in samples]
    if function == AggregateFunction.MIN:
        return min(values)
    if function == AggregateFunction.MAX:
        return max(values)
    if function == AggregateFunction.SUM:
        return sum(values)
    return sum(values) / len(values)


def aggregate_trends(rows: Sequence[Mapping[str, Any]], function: AggregateFunction) -> Optional[Any]:
    """Reduce hourly trend rows of one numeric item.

    Each row carries ``clock``, ``num``, ``value_min``, ``value_avg`` and
    ``value_max``; rows must be ordered by clock.
    """
    if function == AggregateFunction.COUNT:
        return sum(int(row["num"]) for row in rows)
    if not rows:
        return None
    if function in (AggregateFunction.NONE, AggregateFunction.LAST):
        return float(rows[-1]["value_avg"])
    if function == AggregateFunction.FIRST:
        return float(rows[0]["value_avg"])
    if function == AggregateFunction.MIN:
        return min(float(row["value_min"]) for row in rows)
    if function == AggregateFunction.MAX:
        return max(float(row["value_max"]) for row in rows)

    total = sum(float(row["value_avg"]) * int(row["num"]) for row in rows)
    if function == AggregateFunction.SUM:
        return total
    count = sum(int(row["num"]) for row in rows)
    return total / count if count else None


def is_numeric_function(function: AggregateFunction) -> bool:
    return function in _NUMERIC_FUNCTIONS
