from __future__ import annotations

import json
from dataclasses import asdict
from typing import Any, Dict, List, Optional

from .models import Cell, DisplayMode, HostNameCell, ItemValueCell, ResolvedColumn, TextCell, WidgetResult
from .units import convert_units

BAR_WIDTH = 20


def _bounds(column: ResolvedColumn, binary: bool) -> tuple[Optional[float], Optional[float]]:
    if binary:
        return column.min_binary, column.max_binary
    return column.min, column.max


def threshold_color(value: Any, column: ResolvedColumn, binary: bool = False) -> str:
    """Pick the color of the highest threshold the value reaches.

    Args:
        value: Cell value
        column: Resolved column with parsed thresholds
        binary: Compare against the binary (1024) threshold values

    Returns:
        Threshold color, the column base color when no threshold applies, or
        an empty string
    """
    try:
        number = float(value)
    except (TypeError, ValueError):
        return column.config.base_color
    color = column.config.base_color
    for threshold in column.thresholds:
        limit = threshold.threshold_binary if binary else threshold.threshold
        if limit is not None and number >= limit:
            color = threshold.color
    return color


def bar(value: Any, minimum: Optional[float], maximum: Optional[float], width: int = BAR_WIDTH) -> str:
    """Draw a value as a text progress bar between two bounds."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return ""
    if minimum is None or maximum is None or maximum <= minimum:
        filled = width if number > 0 else 0
    else:
        ratio = (min(max(number, minimum), maximum) - minimum) / (maximum - minimum)
        filled = round(ratio * width)
    return "█" * filled + "░" * (width - filled)


def format_cell(cell: Cell, column: ResolvedColumn) -> str:
    """Render a cell as display text.

    Item values are mapped through the item's value map first, then
    formatted with their units. Bar and indicator columns prefix the value
    with a bar drawn against the column bounds.
    """
    if cell is None:
        return ""
    if isinstance(cell, (HostNameCell, TextCell)):
        return cell.value

    raw = str(cell.value)
    if raw in cell.item.valuemap:
        return f"{cell.item.valuemap[raw]} ({raw})"
    if not cell.item.is_numeric:
        return raw

    text = convert_units(cell.value, cell.item.units, column.config.decimal_places, cell.is_binary_units)
    if column.config.display == DisplayMode.AS_IS:
        return text
    minimum, maximum = _bounds(column, cell.is_binary_units)
    return f"{bar(cell.value, minimum, maximum)} {text}"


def _cell_payload(cell: Cell) -> Optional[Dict[str, Any]]:
    if cell is None:
        return None
    if isinstance(cell, HostNameCell):
        return {"value": cell.value, "hostid": cell.hostid}
    if isinstance(cell, TextCell):
        return {"value": cell.value}
    payload: Dict[str, Any] = {"value": cell.value, "is_binary_units": cell.is_binary_units}
    item = asdict(cell.item)
    item.pop("source", None)
    payload["item"] = item
    return payload


def to_json(result: WidgetResult) -> str:
    """Convert widget data to JSON format.

    Args:
        result: Widget result

    Returns:
        Pretty-printed JSON string
    """
    return json.dumps(
        {
            "name": result.name,
            "error": result.error,
            "messages": result.messages,
            "configuration": [asdict(column) for column in result.configuration],
            "rows": [[_cell_payload(cell) for cell in row] for row in result.rows],
        },
        indent=2,
        default=str,
    )


def to_markdown(result: WidgetResult) -> str:
    """Convert widget data to a Markdown table."""
    lines: List[str] = [f"# {result.name}"]
    if result.error:
        lines += ["", result.error]
        return "\n".join(lines)

    headers = [column.config.name for column in result.configuration]
    lines += [
        "",
        "| " + " | ".join(headers) + " |",
        "| " + " | ".join("---" for _ in headers) + " |",
    ]
    for row in result.rows:
        cells = [format_cell(cell, column).replace("|", "\\|") for cell, column in zip(row, result.configuration)]
        lines.append("| " + " | ".join(cells) + " |")
    if not result.rows:
        lines += ["", "No data found."]
    for message in result.messages:
        lines.append(f"\n> {message}")
    return "\n".join(lines)


def cell_color(cell: Cell, column: ResolvedColumn) -> str:
    if not isinstance(cell, ItemValueCell) or not cell.item.is_numeric:
        return ""
    return threshold_color(cell.value, column, cell.is_binary_units)
