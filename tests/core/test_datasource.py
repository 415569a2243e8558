from __future__ import annotations

from dataclasses import replace
from typing import Any, Dict, List, Mapping, Sequence

from tophosts.core.base import MacroResolver, SettingsProvider
from tophosts.core.datasource import DEFAULT_HISTORY_PERIOD, add_data_source, build_run_context
from tophosts.core.macros import expand_macros
from tophosts.core.models import HistorySource, Item, RunContext, ValueType

NOW = 1_000_000
DAY = 86400


class DummySettings(SettingsProvider):
    def __init__(self, history_period: Any = "24h", **housekeeping: Any) -> None:
        self.history_period = history_period
        self.housekeeping = housekeeping

    def get_history_period(self) -> Any:
        return self.history_period

    def get_housekeeping(self) -> Mapping[str, Any]:
        return self.housekeeping


class DummyMacros(MacroResolver):
    def __init__(self, values: Dict[str, str] | None = None) -> None:
        self.values = values or {}
        self.calls: List[Sequence[str]] = []

    def resolve_text_columns(self, texts, items):  # pragma: no cover - not used here
        return {}

    def resolve_time_unit_macros(self, items: Sequence[Item], fields: Sequence[str]) -> List[Item]:
        self.calls.append(list(fields))
        return [replace(item, **{field: expand_macros(str(getattr(item, field)), self.values) for field in fields}) for item in items]


def _item(itemid: str, history: Any = "7d", trends: Any = "365d", value_type: ValueType = ValueType.FLOAT) -> Item:
    return Item(itemid=itemid, hostid=f"h{itemid}", key="k", value_type=value_type, history=history, trends=trends)


def test_build_run_context_parses_settings() -> None:
    ctx = build_run_context(
        DummySettings("2h", hk_history_global="1", hk_history="14d", hk_trends_global="0", hk_trends="x"),
        now=NOW,
        timezone="UTC",
    )

    assert ctx.now == NOW
    assert ctx.history_period == 7200
    assert ctx.housekeeping.history_global is True
    assert ctx.housekeeping.history == 14 * DAY
    assert ctx.housekeeping.trends_global is False
    assert ctx.timezone == "UTC"
    assert ctx.messages == []


def test_build_run_context_reports_invalid_values() -> None:
    ctx = build_run_context(DummySettings("soon", hk_trends_global="1", hk_trends="{$X}"), now=NOW)

    assert ctx.history_period == DEFAULT_HISTORY_PERIOD
    assert ctx.housekeeping.trends_global is False
    assert ctx.messages == [
        'Incorrect value for field "history_period": invalid history period.',
        'Incorrect value for field "hk_trends": invalid storage period.',
    ]


def test_explicit_trends_only_for_numeric_items() -> None:
    ctx = RunContext(now=NOW, history_period=DAY)
    items = [_item("1"), _item("2", value_type=ValueType.STR)]

    sourced = add_data_source(items, NOW - 3600, ctx, HistorySource.TRENDS, DummyMacros())

    assert [item.source for item in sourced] == ["trends", "history"]


def test_explicit_history() -> None:
    ctx = RunContext(now=NOW, history_period=DAY)

    sourced = add_data_source([_item("1")], NOW - 30 * DAY, ctx, HistorySource.HISTORY, DummyMacros())

    assert sourced[0].source == "history"


def test_auto_source_follows_storage_periods() -> None:
    ctx = RunContext(now=NOW, history_period=DAY)
    items = [
        _item("1", history="7d"),
        _item("2", history="1d"),
        _item("3", history="1d", trends="0"),
        _item("4", history="1d", value_type=ValueType.TEXT),
    ]

    sourced = add_data_source(items, NOW - 2 * DAY, ctx, HistorySource.AUTO, DummyMacros())

    assert [item.source for item in sourced] == ["history", "trends", "history", "history"]
    assert sourced[0].history == 7 * DAY


def test_auto_source_boundary_keeps_history() -> None:
    ctx = RunContext(now=NOW, history_period=DAY)

    sourced = add_data_source([_item("1", history="1d")], NOW - DAY, ctx, HistorySource.AUTO, DummyMacros())

    assert sourced[0].source == "history"


def test_auto_source_resolves_macros() -> None:
    ctx = RunContext(now=NOW, history_period=DAY)
    macros = DummyMacros({"$HISTORY": "1h"})

    sourced = add_data_source([_item("1", history="{$HISTORY}")], NOW - 2 * 3600, ctx, HistorySource.AUTO, macros)

    assert macros.calls == [["history", "trends"]]
    assert sourced[0].history == 3600
    assert sourced[0].source == "trends"


def test_global_housekeeping_overrides_item_periods() -> None:
    ctx = build_run_context(
        DummySettings(hk_history_global="1", hk_history="30d", hk_trends_global="1", hk_trends="365d"),
        now=NOW,
    )
    macros = DummyMacros()

    sourced = add_data_source([_item("1", history="{$UNRESOLVED}")], NOW - 2 * DAY, ctx, HistorySource.AUTO, macros)

    assert macros.calls == []
    assert sourced[0].history == 30 * DAY
    assert sourced[0].source == "history"


def test_invalid_periods_skip_item_with_message() -> None:
    ctx = RunContext(now=NOW, history_period=DAY)
    items = [_item("1", history="{$MISSING}"), _item("2", trends="forever"), _item("3")]

    sourced = add_data_source(items, NOW - 3600, ctx, HistorySource.AUTO, DummyMacros())

    assert [item.itemid for item in sourced] == ["3"]
    assert ctx.messages == [
        'Incorrect value for field "history": invalid history storage period.',
        'Incorrect value for field "trends": invalid trend storage period.',
    ]
