from __future__ import annotations
from enum import Enum
from typing import Any, List, Mapping, Optional, Sequence, Type, TypeVar

from .models import (
    AggregateFunction,
    ColumnConfig,
    DataKind,
    DisplayMode,
    EvalType,
    HistorySource,
    Order,
    TagFilter,
    Threshold,
    WidgetConfig,
)
from .timeparse import TimeParseError, parse_time
from .units import parse_number

SHOW_LINES_MIN = 1
SHOW_LINES_MAX = 100
DECIMAL_PLACES_MAX = 10

_TAG_OPERATORS = {
    "contains": "0",
    "equals": "1",
    "does_not_contain": "2",
    "does_not_equal": "3",
    "exists": "4",
    "does_not_exist": "5",
}

E = TypeVar("E", bound=Enum)


class WidgetConfigError(ValueError):
    """Raised when a widget definition has invalid fields.

    Attributes:
        errors: One message per invalid field
    """

    def __init__(self, errors: Sequence[str]) -> None:
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


def field_error(field: str, reason: str) -> str:
    return f'Incorrect value for field "{field}": {reason}.'


def _enum(enum_cls: Type[E], raw: Any, field: str, errors: List[str], default: E) -> E:
    if raw is None or raw == "":
        return default
    if isinstance(raw, enum_cls):
        return raw
    text = str(raw).strip().lower()
    for member in enum_cls:
        if text in (str(member.value).lower(), member.name.lower()):
            return member
    allowed = ", ".join(member.value for member in enum_cls)
    errors.append(field_error(field, f"value must be one of {allowed}"))
    return default


def _int(raw: Any, field: str, errors: List[str], default: int, low: int, high: int) -> int:
    if raw is None or raw == "":
        return default
    try:
        value = int(str(raw).strip())
    except (TypeError, ValueError):
        errors.append(field_error(field, "an integer is expected"))
        return default
    if not low <= value <= high:
        errors.append(field_error(field, f"value must be no less than {low} and no greater than {high}"))
        return default
    return value


def _ids(raw: Any, field: str, errors: List[str]) -> tuple[str, ...]:
    if raw is None or raw == "":
        return ()
    if isinstance(raw, (str, int)):
        raw = [raw]
    if not isinstance(raw, Sequence):
        errors.append(field_error(field, "a list of identifiers is expected"))
        return ()
    return tuple(str(value).strip() for value in raw if str(value).strip())


def _number_text(raw: Any, field: str, errors: List[str]) -> str:
    if raw is None:
        return ""
    text = str(raw).strip()
    if text and parse_number(text) is None:
        errors.append(field_error(field, "a number is expected"))
    return text


def _thresholds(raw: Any, field: str, errors: List[str]) -> tuple[Threshold, ...]:
    if not raw:
        return ()
    if not isinstance(raw, Sequence) or isinstance(raw, str):
        errors.append(field_error(field, "a list of thresholds is expected"))
        return ()
    parsed: list[tuple[float, Threshold]] = []
    for index, entry in enumerate(raw):
        entry_field = f"{field}/{index + 1}/threshold"
        if not isinstance(entry, Mapping):
            errors.append(field_error(entry_field, "a threshold definition is expected"))
            continue
        text = str(entry.get("threshold", "")).strip()
        value = parse_number(text)
        if value is None:
            errors.append(field_error(entry_field, "a number is expected"))
            continue
        parsed.append((value, Threshold(color=str(entry.get("color", "")).strip(), threshold=text)))
    parsed.sort(key=lambda pair: pair[0])
    return tuple(threshold for _, threshold in parsed)


def _column(raw: Any, index: int, errors: List[str]) -> Optional[ColumnConfig]:
    prefix = f"columns/{index + 1}"
    if not isinstance(raw, Mapping):
        errors.append(field_error(prefix, "a column definition is expected"))
        return None

    name = str(raw.get("name", "")).strip()
    if not name:
        errors.append(field_error(f"{prefix}/name", "cannot be empty"))

    data = _enum(DataKind, raw.get("data"), f"{prefix}/data", errors, DataKind.ITEM_VALUE)
    item = str(raw.get("item", "") or "").strip()
    text = str(raw.get("text", "") or "")

    if data == DataKind.ITEM_VALUE and not item:
        errors.append(field_error(f"{prefix}/item", "cannot be empty"))
    if data == DataKind.TEXT and not text.strip():
        errors.append(field_error(f"{prefix}/text", "cannot be empty"))

    item_time = bool(raw.get("item_time", False))
    time_from = str(raw.get("time_from", "now-1h") or "now-1h").strip()
    time_to = str(raw.get("time_to", "now") or "now").strip()
    if item_time:
        for field, expression, is_start in (("time_from", time_from, True), ("time_to", time_to, False)):
            try:
                parse_time(expression, is_start=is_start, now=0, tz="UTC")
            except TimeParseError:
                errors.append(field_error(f"{prefix}/{field}", "a time is expected"))

    return ColumnConfig(
        name=name,
        data=data,
        item=item,
        text=text,
        aggregate_function=_enum(
            AggregateFunction,
            raw.get("aggregate_function"),
            f"{prefix}/aggregate_function",
            errors,
            AggregateFunction.NONE,
        ),
        display=_enum(DisplayMode, raw.get("display"), f"{prefix}/display", errors, DisplayMode.AS_IS),
        history=_enum(HistorySource, raw.get("history"), f"{prefix}/history", errors, HistorySource.AUTO),
        min=_number_text(raw.get("min"), f"{prefix}/min", errors),
        max=_number_text(raw.get("max"), f"{prefix}/max", errors),
        thresholds=_thresholds(raw.get("thresholds"), f"{prefix}/thresholds", errors),
        decimal_places=_int(raw.get("decimal_places"), f"{prefix}/decimal_places", errors, 2, 0, DECIMAL_PLACES_MAX),
        base_color=str(raw.get("base_color", "") or "").strip(),
        item_time=item_time,
        time_from=time_from,
        time_to=time_to,
    )


def _tags(raw: Any, errors: List[str]) -> tuple[TagFilter, ...]:
    if not raw:
        return ()
    if not isinstance(raw, Sequence) or isinstance(raw, str):
        errors.append(field_error("tags", "a list of tag filters is expected"))
        return ()
    tags: list[TagFilter] = []
    for index, entry in enumerate(raw):
        if not isinstance(entry, Mapping) or not str(entry.get("tag", "")).strip():
            errors.append(field_error(f"tags/{index + 1}/tag", "cannot be empty"))
            continue
        operator_raw = str(entry.get("operator", "0")).strip().lower()
        operator = _TAG_OPERATORS.get(operator_raw, operator_raw)
        if operator not in _TAG_OPERATORS.values():
            errors.append(field_error(f"tags/{index + 1}/operator", "unknown operator"))
            continue
        tags.append(
            TagFilter(
                tag=str(entry["tag"]).strip(),
                operator=operator,
                value=str(entry.get("value", "") or ""),
            )
        )
    return tuple(tags)


def parse_widget_config(data: Mapping[str, Any]) -> WidgetConfig:
    """Build a widget definition from a configuration mapping.

    All fields are validated before failing so every problem is reported at
    once.

    Args:
        data: The ``widget`` configuration section

    Returns:
        Validated widget definition

    Raises:
        WidgetConfigError: If any field is invalid
    """
    errors: List[str] = []
    if not isinstance(data, Mapping):
        raise WidgetConfigError([field_error("widget", "a widget definition is expected")])

    raw_columns = data.get("columns") or []
    if not isinstance(raw_columns, Sequence) or isinstance(raw_columns, str) or not raw_columns:
        errors.append(field_error("columns", "at least one column is required"))
        raw_columns = []

    columns = [_column(raw, index, errors) for index, raw in enumerate(raw_columns)]
    parsed_columns = tuple(column for column in columns if column is not None)

    master = _int(data.get("column"), "column", errors, 0, 0, max(len(raw_columns) - 1, 0))
    if parsed_columns and len(parsed_columns) == len(columns):
        if parsed_columns[master].data != DataKind.ITEM_VALUE:
            errors.append(field_error("column", "the order column must display item values"))

    config = WidgetConfig(
        name=str(data.get("name", "Top hosts") or "Top hosts"),
        columns=parsed_columns,
        column=master,
        order=_enum(Order, data.get("order"), "order", errors, Order.TOP_N),
        show_lines=_int(data.get("show_lines"), "show_lines", errors, 10, SHOW_LINES_MIN, SHOW_LINES_MAX),
        groupids=_ids(data.get("groupids"), "groupids", errors),
        hostids=_ids(data.get("hostids"), "hostids", errors),
        evaltype=_enum(EvalType, data.get("evaltype"), "evaltype", errors, EvalType.AND_OR),
        tags=_tags(data.get("tags"), errors) if "tags" in data else None,
    )

    if errors:
        raise WidgetConfigError(errors)
    return config
