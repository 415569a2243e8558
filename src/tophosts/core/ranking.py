from __future__ import annotations
import re
from typing import Any, Dict, Mapping, Sequence, Tuple

from .models import AggregateFunction, ColumnConfig, Item, MasterRanking, Order

_DIGITS_RE = re.compile(r"(\d+)")


def natural_key(value: Any) -> Tuple[Tuple[int, Any], ...]:
    """Sort key ordering embedded digit runs by their numeric value.

    ``"host2"`` sorts before ``"host10"``. Letters compare case-insensitively,
    so ``"Web"`` and ``"web"`` rank together.
    """
    parts = _DIGITS_RE.split(str(value))
    key: list[Tuple[int, Any]] = []
    for part in parts:
        if not part:
            continue
        if part.isdigit():
            key.append((0, int(part)))
        else:
            key.append((1, part.casefold()))
    return tuple(key)


def _number(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def is_numeric_ranking(items: Sequence[Item], column: ColumnConfig) -> bool:
    """Whether master values are ranked as numbers.

    Counting always yields numbers; otherwise every master item must be of a
    numeric value type.
    """
    if column.aggregate_function == AggregateFunction.COUNT:
        return True
    return bool(items) and all(item.is_numeric for item in items)


def rank_master(
    values: Mapping[str, Any],
    items: Mapping[str, Item],
    column: ColumnConfig,
    order: Order,
    show_lines: int,
) -> MasterRanking:
    """Rank master column values and keep the first ``show_lines`` entries.

    Top N ranks in descending order and Bottom N in ascending order. Equal
    values keep the order in which the catalog returned their items. For
    numeric rankings the extremes of the complete ranking are kept as the
    default bar bounds of the master column.

    Args:
        values: itemid -> value, in catalog order
        items: itemid -> Item for every master item
        column: Master column definition
        order: Ranking direction
        show_lines: Number of entries to keep

    Returns:
        Truncated ranking with the extremes of the untruncated one
    """
    numeric = is_numeric_ranking(list(items.values()), column)
    descending = order == Order.TOP_N

    if numeric:
        ranked = sorted(values.items(), key=lambda pair: _number(pair[1]), reverse=descending)
    else:
        ranked = sorted(values.items(), key=lambda pair: natural_key(pair[1]), reverse=descending)

    minimum = maximum = None
    if numeric and ranked:
        first, last = ranked[0][1], ranked[-1][1]
        minimum, maximum = (last, first) if descending else (first, last)

    kept: Dict[str, Any] = dict(ranked[:max(show_lines, 0)])
    return MasterRanking(
        values=kept,
        items={itemid: items[itemid] for itemid in kept},
        numeric=numeric,
        min=minimum,
        max=maximum,
    )
