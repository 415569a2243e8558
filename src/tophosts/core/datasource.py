from __future__ import annotations
import logging
import time
from dataclasses import replace
from typing import Any, List, Mapping, Optional, Sequence

from .base import MacroResolver, SettingsProvider
from .fields import field_error
from .models import HistorySource, Housekeeping, Item, RunContext
from .units import time_unit_to_seconds

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_PERIOD = 86400


def _flag(value: Any) -> bool:
    return str(value).strip() not in ("", "0", "false", "False", "None")


def _global_period(raw: Mapping[str, Any], flag_key: str, value_key: str, messages: List[str]) -> tuple[bool, Optional[int]]:
    if not _flag(raw.get(flag_key)):
        return False, None
    seconds = time_unit_to_seconds(raw.get(value_key))
    if seconds is None:
        message = field_error(value_key, "invalid storage period")
        logger.warning(message)
        messages.append(message)
        return False, None
    return True, seconds


def build_run_context(
    settings: SettingsProvider,
    *,
    now: Optional[int] = None,
    timezone: Optional[str] = None,
) -> RunContext:
    """Read global settings once for a widget run.

    Args:
        settings: Settings provider
        now: Timestamp to anchor the run to; current time when omitted
        timezone: Timezone used for relative time ranges

    Returns:
        A fresh run context
    """
    messages: List[str] = []

    history_period = time_unit_to_seconds(settings.get_history_period())
    if history_period is None:
        message = field_error("history_period", "invalid history period")
        logger.warning(message)
        messages.append(message)
        history_period = DEFAULT_HISTORY_PERIOD

    raw = settings.get_housekeeping() or {}
    history_global, history = _global_period(raw, "hk_history_global", "hk_history", messages)
    trends_global, trends = _global_period(raw, "hk_trends_global", "hk_trends", messages)

    return RunContext(
        now=int(time.time()) if now is None else int(now),
        history_period=history_period,
        housekeeping=Housekeeping(
            history_global=history_global,
            history=history,
            trends_global=trends_global,
            trends=trends,
        ),
        timezone=timezone or None,
        messages=messages,
    )


def add_data_source(
    items: Sequence[Item],
    time_from: int,
    ctx: RunContext,
    history: HistorySource,
    macros: MacroResolver,
) -> List[Item]:
    """Decide for each item whether values come from history or trends.

    With an explicit source, trends are used for numeric items only. In auto
    mode an item reads history while its history storage period still covers
    ``time_from`` (or it keeps no trends), and trends otherwise. Items whose
    storage period cannot be parsed are skipped with a field error recorded
    in the run context.

    Args:
        items: Items of one column
        time_from: Start of the requested window
        ctx: Run context
        history: Configured source of the column
        macros: Resolver for user macros in storage periods

    Returns:
        Items with ``source`` set and storage periods in seconds
    """
    if history in (HistorySource.HISTORY, HistorySource.TRENDS):
        return [
            replace(
                item,
                source="trends" if history == HistorySource.TRENDS and item.is_numeric else "history",
            )
            for item in items
        ]

    hk = ctx.housekeeping
    resolved = list(items)
    if hk.history_global:
        resolved = [replace(item, history=hk.history) for item in resolved]
    if hk.trends_global:
        resolved = [replace(item, trends=hk.trends) for item in resolved]

    pending = [field for field, is_global in (("history", hk.history_global), ("trends", hk.trends_global)) if not is_global]
    if pending and resolved:
        resolved = macros.resolve_time_unit_macros(resolved, pending)

    processed: List[Item] = []
    for item in resolved:
        periods = {"history": item.history, "trends": item.trends}
        valid = True
        for field in pending:
            seconds = time_unit_to_seconds(periods[field])
            if seconds is None:
                label = "history" if field == "history" else "trend"
                message = field_error(field, f"invalid {label} storage period")
                logger.warning("%s (itemid %s)", message, item.itemid)
                ctx.messages.append(message)
                valid = False
                break
            periods[field] = seconds
        if valid:
            processed.append(replace(item, history=periods["history"], trends=periods["trends"]))

    with_source: List[Item] = []
    for item in processed:
        keeps_history = int(item.trends) == 0 or ctx.now - int(item.history) <= time_from
        source = "history" if keeps_history or not item.is_numeric else "trends"
        with_source.append(replace(item, source=source))
        logger.debug("Item %s reads from %s", item.itemid, source)
    return with_source
