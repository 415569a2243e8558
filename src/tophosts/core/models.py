from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from .units import is_binary_units


class DataKind(str, Enum):
    """What a widget column displays."""
    ITEM_VALUE = "item_value"
    HOST_NAME = "host_name"
    TEXT = "text"


class AggregateFunction(str, Enum):
    """Reduction applied to the item values of a time window."""
    NONE = "none"
    MIN = "min"
    MAX = "max"
    AVG = "avg"
    COUNT = "count"
    SUM = "sum"
    FIRST = "first"
    LAST = "last"


class DisplayMode(str, Enum):
    """How an item value column is drawn."""
    AS_IS = "as_is"
    BAR = "bar"
    INDICATORS = "indicators"


class HistorySource(str, Enum):
    """Storage a column reads aggregated values from."""
    AUTO = "auto"
    HISTORY = "history"
    TRENDS = "trends"


class ValueType(str, Enum):
    """Zabbix item value types, keyed by their API codes."""
    FLOAT = "0"
    STR = "1"
    LOG = "2"
    UINT = "3"
    TEXT = "4"

    @property
    def is_numeric(self) -> bool:
        return self in (ValueType.FLOAT, ValueType.UINT)


class Order(str, Enum):
    TOP_N = "top"
    BOTTOM_N = "bottom"


class EvalType(str, Enum):
    """Tag filter evaluation mode."""
    AND_OR = "0"
    OR = "2"


NUMERIC_VALUE_TYPES: tuple[ValueType, ...] = (ValueType.FLOAT, ValueType.UINT)


@dataclass(frozen=True)
class Threshold:
    color: str
    threshold: str


@dataclass(frozen=True)
class ColumnConfig:
    """Configuration of a single widget column.

    Attributes:
        name: Column header
        data: Kind of data shown in the column
        item: Item name pattern (item value columns)
        text: Text with macros (text columns)
        aggregate_function: Reduction applied over the time window
        display: Display mode of item values
        history: Storage the aggregated values are read from
        min: Bar/indicator lower bound as entered (may carry a suffix)
        max: Bar/indicator upper bound as entered (may carry a suffix)
        thresholds: Color thresholds as entered
        decimal_places: Precision used when rendering numeric values
        base_color: Background color used below the first threshold
        item_time: Whether the column has its own time period
        time_from: Start of the column time period (relative or absolute)
        time_to: End of the column time period (relative or absolute)
    """
    name: str
    data: DataKind
    item: str = ""
    text: str = ""
    aggregate_function: AggregateFunction = AggregateFunction.NONE
    display: DisplayMode = DisplayMode.AS_IS
    history: HistorySource = HistorySource.AUTO
    min: str = ""
    max: str = ""
    thresholds: tuple[Threshold, ...] = ()
    decimal_places: int = 2
    base_color: str = ""
    item_time: bool = False
    time_from: str = "now-1h"
    time_to: str = "now"

    def is_numeric_only(self) -> bool:
        """Whether only numeric items can feed this column."""
        numeric_functions = (
            AggregateFunction.MIN,
            AggregateFunction.MAX,
            AggregateFunction.AVG,
            AggregateFunction.SUM,
        )
        return self.aggregate_function in numeric_functions or self.display != DisplayMode.AS_IS

    def needs_extremes(self) -> bool:
        return self.display in (DisplayMode.BAR, DisplayMode.INDICATORS)


@dataclass(frozen=True)
class TagFilter:
    tag: str
    operator: str = "0"
    value: str = ""


@dataclass(frozen=True)
class WidgetConfig:
    """Top hosts widget definition.

    Attributes:
        columns: Ordered column definitions
        column: Index of the master (ranking) column
        order: Top N or Bottom N
        show_lines: Maximum number of rows
        groupids: Host group filter
        hostids: Host filter
        evaltype: Tag evaluation mode
        tags: Tag filter; None when the widget has no tag field at all
        name: Widget title
    """
    columns: tuple[ColumnConfig, ...]
    column: int = 0
    order: Order = Order.TOP_N
    show_lines: int = 10
    groupids: tuple[str, ...] = ()
    hostids: tuple[str, ...] = ()
    evaltype: EvalType = EvalType.AND_OR
    tags: Optional[tuple[TagFilter, ...]] = None
    name: str = "Top hosts"

    @property
    def master_column(self) -> ColumnConfig:
        return self.columns[self.column]


@dataclass(frozen=True)
class TimeWindow:
    time_from: int
    time_to: int


@dataclass(frozen=True)
class Item:
    """Item record returned by the metrics catalog."""
    itemid: str
    hostid: str
    key: str
    value_type: ValueType
    name: str = ""
    units: str = ""
    history: Union[str, int] = "0"
    trends: Union[str, int] = "0"
    valuemap: Dict[str, str] = field(default_factory=dict, compare=False)
    source: Optional[str] = None

    @property
    def is_numeric(self) -> bool:
        return self.value_type.is_numeric


@dataclass(frozen=True)
class ItemSample:
    value: Any
    item: Item

    @property
    def is_binary_units(self) -> bool:
        return is_binary_units(self.item.units)


@dataclass
class MasterRanking:
    """Ranked master column values.

    Attributes:
        values: itemid -> value, in ranking order
        items: itemid -> Item for the ranked items
        numeric: Whether values were ranked numerically
        min: Smallest value of the untruncated ranking (numeric only)
        max: Largest value of the untruncated ranking (numeric only)
    """
    values: Dict[str, Any]
    items: Dict[str, Item]
    numeric: bool
    min: Any = None
    max: Any = None

    @property
    def hostids(self) -> List[str]:
        hostids: List[str] = []
        for itemid in self.values:
            hostid = self.items[itemid].hostid
            if hostid not in hostids:
                hostids.append(hostid)
        return hostids


@dataclass(frozen=True)
class HostNameCell:
    value: str
    hostid: str


@dataclass(frozen=True)
class TextCell:
    value: str


@dataclass(frozen=True)
class ItemValueCell:
    value: Any
    item: Item
    is_binary_units: bool


Cell = Union[HostNameCell, TextCell, ItemValueCell, None]
Row = List[Cell]


@dataclass(frozen=True)
class ResolvedThreshold:
    color: str
    threshold: Optional[float]
    threshold_binary: Optional[float]


@dataclass
class ResolvedColumn:
    """Column configuration echoed back with its bounds resolved to numbers."""
    config: ColumnConfig
    min: Optional[float] = None
    min_binary: Optional[float] = None
    max: Optional[float] = None
    max_binary: Optional[float] = None
    thresholds: List[ResolvedThreshold] = field(default_factory=list)
    time_from: str = ""
    time_to: str = ""


@dataclass
class WidgetResult:
    name: str
    configuration: List[ResolvedColumn]
    rows: List[Row] = field(default_factory=list)
    error: Optional[str] = None
    messages: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class Housekeeping:
    """Global storage period overrides; durations are in seconds."""
    history_global: bool = False
    history: Optional[int] = None
    trends_global: bool = False
    trends: Optional[int] = None


@dataclass
class RunContext:
    """Per-run values read once at pipeline entry.

    Attributes:
        now: Timestamp the run is anchored to
        history_period: Lookback (seconds) for columns without aggregation
        housekeeping: Global storage period overrides
        timezone: Timezone name used to resolve relative time ranges
        messages: Field-level errors collected during the run
    """
    now: int
    history_period: int
    housekeeping: Housekeeping = field(default_factory=Housekeeping)
    timezone: Optional[str] = None
    messages: List[str] = field(default_factory=list)
