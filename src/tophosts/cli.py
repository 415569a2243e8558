from __future__ import annotations
import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, Optional
import typer
from rich import box
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table
from rich.text import Text

from .core import config as cfg
from .core.backends import create_backend, registered_backends
from .core.fields import WidgetConfigError, parse_widget_config
from .core.models import WidgetConfig, WidgetResult
from .core.provider_loader import load_all_backends
from .core.reporting import cell_color, format_cell, to_json, to_markdown
from .core.timeparse import TimeParseError
from .core.widget import TopHostsWidget

app = typer.Typer(
    help="tophosts – Rank monitored hosts by an item value, like the Top hosts dashboard widget.",
    invoke_without_command=True,
)
console = Console()
logger = logging.getLogger("tophosts")

_HEX_COLOR_RE = re.compile(r"[0-9A-Fa-f]{6}")

# Auto-load all backends on startup (local + entry points)
load_all_backends()


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False, rich_tracebacks=verbose)],
        force=True,
    )


def _load_config(
    config_files: list[Path],
    vars_file: Optional[Path],
    set_kv: list[str],
    ask_secrets: bool,
) -> Dict[str, Any]:
    cfg_raw = cfg.load_project_config(explicit_files=config_files or None)
    cfg_raw = cfg.merge_overrides(cfg_raw, vars_file=vars_file, set_kv=set_kv, env=os.environ)
    return cfg.resolve_secrets(cfg_raw, ask=ask_secrets)


def _widget_config(cfg_resolved: Dict[str, Any]) -> WidgetConfig:
    """Parse the widget section, printing every field error before exiting.

    Raises:
        typer.Exit: If the widget section is missing or invalid
    """
    section = cfg_resolved.get("widget")
    if not section:
        console.print("[red]No widget configuration found. Run 'tophosts validate --show-template' for an example.[/]")
        raise typer.Exit(code=1)
    try:
        return parse_widget_config(section)
    except WidgetConfigError as err:
        for message in err.errors:
            console.print(message, style="red", markup=False)
        raise typer.Exit(code=1)


def _render_table(result: WidgetResult, color: bool, output: Optional[Path]) -> None:
    display_console = Console(force_terminal=color, no_color=not color, record=output is not None)
    table = Table(
        title=result.name,
        title_style="bold cyan" if color else "",
        show_lines=True,
        box=box.SQUARE,
    )
    for column in result.configuration:
        table.add_column(column.config.name, overflow="fold")

    for row in result.rows:
        cells = []
        for cell, column in zip(row, result.configuration):
            text = Text(format_cell(cell, column))
            hex_color = cell_color(cell, column)
            if color and _HEX_COLOR_RE.fullmatch(hex_color):
                text.stylize(f"#{hex_color}")
            cells.append(text)
        table.add_row(*cells)

    display_console.print(table)
    if result.error:
        display_console.print(result.error, style="yellow" if color else "")
    elif not result.rows:
        display_console.print("No data found.", style="dim" if color else "")
    if output:
        output.write_text(display_console.export_text())
        console.print(f"Wrote widget data to {output}")


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context) -> None:
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.command.get_help(ctx))
        raise typer.Exit(code=0)


@app.command()
def show(
    config_files: list[Path] = typer.Option(
        [],
        "--config",
        help="Configuration file(s) to load after defaults (can be passed multiple times)",
    ),
    vars_file: Optional[Path] = typer.Option(None, "--vars-file", help="YAML overrides with secrets"),
    set_kv: list[str] = typer.Option([], "--set", help="Override key=val (deep)"),
    ask_secrets: bool = typer.Option(False, "--ask-secrets", help="Prompt for missing secrets"),
    format: str = typer.Option("table", help="Output format: table|json|md"),
    output: Optional[Path] = typer.Option(None, help="Write widget data to file instead of STDOUT"),
    time_from: Optional[str] = typer.Option(None, "--from", help="Dashboard time range start (e.g. now-1h)"),
    time_to: Optional[str] = typer.Option(None, "--to", help="Dashboard time range end (e.g. now)"),
    host: Optional[str] = typer.Option(None, "--host", help="Host id for a widget on a template dashboard"),
    now: Optional[int] = typer.Option(None, "--now", help="Unix timestamp to evaluate the widget at"),
    color: bool = typer.Option(True, "--color/--no-color", help="Colorize table output"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Compute the widget rows and display them."""
    _setup_logging(verbose)
    fmt = format.lower().strip()
    if fmt not in {"table", "json", "md", "markdown"}:
        raise typer.BadParameter("--format must be one of: table, json, md", param_hint="--format")

    cfg_resolved = _load_config(config_files, vars_file, set_kv, ask_secrets)
    widget_config = _widget_config(cfg_resolved)

    time_cfg = cfg_resolved.get("time") or {}
    backend_name = str(cfg_resolved.get("backend") or "zabbix")
    try:
        backend = create_backend(backend_name, cfg_resolved.get(backend_name))
    except KeyError as err:
        console.print(f"[red]{err.args[0]}[/]")
        raise typer.Exit(code=1)
    except Exception as err:
        logger.debug("Backend %s failed to start", backend_name, exc_info=True)
        console.print(f"[red]Backend '{backend_name}' is not available: {err}[/]")
        raise typer.Exit(code=2)

    widget = TopHostsWidget(widget_config, backend, timezone=time_cfg.get("timezone") or None)
    try:
        result = widget.view(
            time_from=time_from or str(time_cfg.get("from") or "now-1h"),
            time_to=time_to or str(time_cfg.get("to") or "now"),
            dynamic_hostid=host,
            template_dashboard=host is not None,
            now=now,
        )
    except (WidgetConfigError, TimeParseError) as err:
        console.print(f"[red]{err}[/]")
        raise typer.Exit(code=1)
    except Exception as err:
        logger.debug("Widget evaluation failed", exc_info=True)
        console.print(f"[red]Cannot load widget data: {err}[/]")
        raise typer.Exit(code=2)

    for message in result.messages:
        console.print(message, style="yellow" if color else "")

    if fmt == "table":
        _render_table(result, color, output)
        return

    data = to_json(result) if fmt == "json" else to_markdown(result)
    if output:
        output.write_text(data)
        console.print(f"Wrote widget data to {output}")
    else:
        typer.echo(data)


@app.command()
def validate(
    config_files: list[Path] = typer.Option(
        [],
        "--config",
        help="Configuration file(s) to load after defaults (can be passed multiple times)",
    ),
    vars_file: Optional[Path] = typer.Option(None, "--vars-file", help="YAML overrides with secrets"),
    set_kv: list[str] = typer.Option([], "--set", help="Override key=val (deep)"),
    show_template: bool = typer.Option(False, "--show-template", help="Print an example configuration and exit"),
):
    """Check the widget configuration and list its columns."""
    if show_template:
        typer.echo(cfg.default_template_text())
        return

    cfg_resolved = _load_config(config_files, vars_file, set_kv, ask_secrets=False)
    widget_config = _widget_config(cfg_resolved)

    table = Table(title=widget_config.name, show_lines=True, box=box.SQUARE)
    table.add_column("#", justify="right")
    table.add_column("Name", style="bold")
    table.add_column("Data")
    table.add_column("Item / text", overflow="fold")
    table.add_column("Aggregation")
    table.add_column("Display")
    for index, column in enumerate(widget_config.columns):
        marker = " *" if index == widget_config.column else ""
        table.add_row(
            f"{index + 1}{marker}",
            column.name,
            column.data.value,
            column.item or column.text or "-",
            column.aggregate_function.value,
            column.display.value,
        )
    console.print(table)
    console.print(
        f"[green]Widget configuration is valid[/] "
        f"({widget_config.order.value} {widget_config.show_lines}, ordered by column {widget_config.column + 1})"
    )


@app.command()
def backends():
    """List the registered metrics backends."""
    table = Table(title="tophosts backends", box=box.SQUARE)
    table.add_column("Name", style="bold")
    table.add_column("Description")
    for name, description in registered_backends().items():
        table.add_row(name, description or "-")
    console.print(table)


if __name__ == "__main__":
    app()
