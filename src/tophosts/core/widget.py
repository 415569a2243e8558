from __future__ import annotations
import logging
from dataclasses import replace
from typing import List, Optional

from .base import Backend
from .columns import evaluate_columns, get_item_values, resolve_column
from .datasource import build_run_context
from .models import AggregateFunction, ColumnConfig, TimeWindow, WidgetConfig, WidgetResult
from .ranking import rank_master
from .rows import assemble_rows, needs_host_names, text_templates
from .scope import get_items, resolve_scope
from .timeparse import resolve_window

logger = logging.getLogger(__name__)

NO_DATA = "No data."


class TopHostsWidget:
    """Ranks hosts by a master item column and builds the widget rows.

    Example:
        widget = TopHostsWidget(parse_widget_config(cfg["widget"]), backend)
        result = widget.view(time_from="now-1h", time_to="now")
    """

    def __init__(self, config: WidgetConfig, backend: Backend, *, timezone: Optional[str] = None) -> None:
        self.config = config
        self.backend = backend
        self.timezone = timezone

    def view(
        self,
        *,
        time_from: str = "now-1h",
        time_to: str = "now",
        dynamic_hostid: Optional[str] = None,
        template_dashboard: bool = False,
        now: Optional[int] = None,
    ) -> WidgetResult:
        """Produce the widget data for one request.

        Args:
            time_from: Dashboard time range start
            time_to: Dashboard time range end
            dynamic_hostid: Host the widget is bound to on a template dashboard
            template_dashboard: Whether the widget lives on a template dashboard
            now: Timestamp to anchor the run to

        Returns:
            The resolved configuration and rows, or an error when a template
            dashboard has no host selected
        """
        if template_dashboard and not dynamic_hostid:
            return WidgetResult(
                name=self.config.name,
                configuration=[resolve_column(column) for column in self.config.columns],
                error=NO_DATA,
            )
        return self.get_data(
            time_from=time_from,
            time_to=time_to,
            dynamic_hostid=dynamic_hostid,
            template_dashboard=template_dashboard,
            now=now,
        )

    def get_data(
        self,
        *,
        time_from: str,
        time_to: str,
        dynamic_hostid: Optional[str],
        template_dashboard: bool,
        now: Optional[int],
    ) -> WidgetResult:
        config = replace(
            self.config,
            columns=tuple(_with_dashboard_time(column, time_from, time_to) for column in self.config.columns),
        )
        backend = self.backend
        ctx = build_run_context(backend.settings, now=now, timezone=self.timezone)

        scope = resolve_scope(
            config,
            backend.catalog,
            dynamic_hostid=dynamic_hostid,
            template_dashboard=template_dashboard,
            window=_display_window(config, ctx.now, self.timezone),
        )
        if scope.is_empty:
            logger.debug("Widget scope matched no hosts")
            return _empty_result(config, ctx.messages)

        master = config.master_column
        master_items = get_items(
            backend.catalog,
            master.item,
            numeric_only=master.is_numeric_only(),
            groupids=scope.groupids,
            hostids=scope.hostids,
            count=master.aggregate_function == AggregateFunction.COUNT,
        )
        master_items, master_values = get_item_values(master_items, master, ctx, backend.history, backend.macros)

        if not master_values:
            logger.debug("Master column %r has no values", master.name)
            return _empty_result(config, ctx.messages)

        show_lines = 1 if template_dashboard else config.show_lines
        ranking = rank_master(
            master_values,
            {item.itemid: item for item in master_items},
            master,
            config.order,
            show_lines,
        )
        logger.debug("Ranked %d value(s), kept %d host(s)", len(master_values), len(ranking.hostids))

        configuration, samples = evaluate_columns(config, ranking, scope, ctx, backend)

        templates = text_templates(config)
        texts = backend.macros.resolve_text_columns(templates, ranking.items) if templates else {}

        host_names = scope.hosts or {}
        if needs_host_names(config.columns) and scope.hosts is None:
            host_names = backend.catalog.get_hosts(groupids=scope.groupids, hostids=ranking.hostids)

        rows = assemble_rows(config, ranking, host_names, texts, samples)
        return WidgetResult(
            name=config.name,
            configuration=configuration,
            rows=rows,
            messages=ctx.messages,
        )


def _empty_result(config: WidgetConfig, messages: List[str]) -> WidgetResult:
    return WidgetResult(
        name=config.name,
        configuration=[resolve_column(column) for column in config.columns],
        messages=messages,
    )


def _with_dashboard_time(column: ColumnConfig, time_from: str, time_to: str) -> ColumnConfig:
    if column.aggregate_function != AggregateFunction.NONE and not column.item_time:
        return replace(column, time_from=time_from, time_to=time_to)
    return column


def _display_window(config: WidgetConfig, now: int, timezone: Optional[str]) -> Optional[TimeWindow]:
    """Time window of the last aggregated column, passed to the catalog as a hint."""
    window: Optional[TimeWindow] = None
    for column in config.columns:
        if column.aggregate_function != AggregateFunction.NONE:
            window = resolve_window(column.time_from, column.time_to, now=now, tz=timezone)
    return window
