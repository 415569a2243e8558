from __future__ import annotations
import logging
from dataclasses import replace
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .aggregation import is_numeric_function
from .base import Backend, HistoryReader, MacroResolver
from .datasource import add_data_source
from .models import (
    AggregateFunction,
    ColumnConfig,
    DataKind,
    Item,
    ItemSample,
    MasterRanking,
    ResolvedColumn,
    ResolvedThreshold,
    RunContext,
    ValueType,
    WidgetConfig,
)
from .scope import Scope, get_items
from .timeparse import resolve_window
from .units import parse_number

logger = logging.getLogger(__name__)

ColumnSamples = Dict[int, Dict[str, ItemSample]]


def get_item_values(
    items: Sequence[Item],
    column: ColumnConfig,
    ctx: RunContext,
    reader: HistoryReader,
    macros: MacroResolver,
) -> Tuple[List[Item], Dict[str, Any]]:
    """Fetch the values of a column's items.

    Without an aggregate function the latest value within the configured
    history period is read from history. Otherwise values are reduced over
    the column's time range, from history or trends per item. Non-numeric
    items only take part in first, last and count; counted items become
    unsigned and zero counts are dropped.

    Args:
        items: Items of the column, in catalog order
        column: Column definition
        ctx: Run context
        reader: History reader
        macros: Macro resolver used for storage periods

    Returns:
        The items that were read and their values (itemid -> value) in
        catalog order
    """
    function = column.aggregate_function

    if function == AggregateFunction.NONE:
        readable = [replace(item, source="history") for item in items]
        values = reader.get_last_values(readable, ctx.history_period, ctx.now) if readable else {}
    else:
        window = resolve_window(column.time_from, column.time_to, now=ctx.now, tz=ctx.timezone)
        sourced = add_data_source(items, window.time_from, ctx, column.history, macros)
        readable = [item for item in sourced if item.is_numeric or not is_numeric_function(function)]
        values = reader.get_aggregated_values(readable, function, window) if readable else {}

        if function == AggregateFunction.COUNT:
            values = {itemid: int(value) for itemid, value in values.items() if value is not None and int(value) > 0}
            readable = [replace(item, value_type=ValueType.UINT) for item in readable]

    ordered = {
        item.itemid: values[item.itemid]
        for item in readable
        if item.itemid in values and values[item.itemid] is not None
    }
    logger.debug("Column %r: %d of %d item(s) have values", column.name, len(ordered), len(items))
    return readable, ordered


def _parse_bound(text: str) -> Tuple[Optional[float], Optional[float]]:
    if not text:
        return None, None
    return parse_number(text), parse_number(text, binary=True)


def resolve_column(column: ColumnConfig) -> ResolvedColumn:
    """Parse a column's bounds and thresholds with decimal and binary multipliers."""
    resolved = ResolvedColumn(config=column)
    if column.aggregate_function != AggregateFunction.NONE:
        resolved.time_from = column.time_from
        resolved.time_to = column.time_to
    if column.data != DataKind.ITEM_VALUE:
        return resolved

    if column.needs_extremes():
        resolved.min, resolved.min_binary = _parse_bound(column.min)
        resolved.max, resolved.max_binary = _parse_bound(column.max)

    resolved.thresholds = [
        ResolvedThreshold(
            color=threshold.color,
            threshold=parse_number(threshold.threshold),
            threshold_binary=parse_number(threshold.threshold, binary=True),
        )
        for threshold in column.thresholds
    ]
    return resolved


def _numbers(values: Sequence[Any]) -> List[float]:
    numbers: List[float] = []
    for value in values:
        try:
            numbers.append(float(value))
        except (TypeError, ValueError):
            continue
    return numbers


def _fill_extremes(resolved: ResolvedColumn, minimum: Any, maximum: Any) -> None:
    if resolved.min is None and minimum is not None:
        resolved.min = resolved.min_binary = float(minimum)
    if resolved.max is None and maximum is not None:
        resolved.max = resolved.max_binary = float(maximum)


def evaluate_columns(
    config: WidgetConfig,
    ranking: MasterRanking,
    scope: Scope,
    ctx: RunContext,
    backend: Backend,
) -> Tuple[List[ResolvedColumn], ColumnSamples]:
    """Compute the item values of every column for the ranked hosts.

    The master column reuses the ranking. Other item columns are queried for
    the ranked hosts only. Bar and indicator columns without explicit bounds
    take them from the extremes of the complete master ranking (master
    column) or from their own values (other columns).

    Args:
        config: Widget definition
        ranking: Truncated master ranking
        scope: Resolved widget scope
        ctx: Run context
        backend: Collaborators

    Returns:
        Resolved column configuration and, per item column index, the
        samples keyed by hostid
    """
    master_hostids = ranking.hostids
    allowed = set(master_hostids)
    configuration: List[ResolvedColumn] = []
    samples: ColumnSamples = {}

    for index, column in enumerate(config.columns):
        resolved = resolve_column(column)
        configuration.append(resolved)
        if column.data != DataKind.ITEM_VALUE:
            continue

        if index == config.column:
            column_items = list(ranking.items.values())
            column_values: Dict[str, Any] = dict(ranking.values)
        else:
            column_items = get_items(
                backend.catalog,
                column.item,
                numeric_only=column.is_numeric_only(),
                groupids=scope.groupids,
                hostids=master_hostids,
                count=column.aggregate_function == AggregateFunction.COUNT,
            )
            column_items, column_values = get_item_values(
                column_items, column, ctx, backend.history, backend.macros
            )

        if column.needs_extremes():
            if index == config.column:
                _fill_extremes(resolved, ranking.min, ranking.max)
            else:
                present = _numbers(list(column_values.values()))
                if present:
                    _fill_extremes(resolved, min(present), max(present))

        items_by_id = {item.itemid: item for item in column_items}
        by_host: Dict[str, ItemSample] = {}
        for itemid, value in column_values.items():
            item = items_by_id[itemid]
            if item.hostid in allowed:
                by_host[item.hostid] = ItemSample(value=value, item=item)
        samples[index] = by_host

    return configuration, samples
