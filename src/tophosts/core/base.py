from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .models import AggregateFunction, Item, TagFilter, TimeWindow, ValueType


class MetricsCatalog(ABC):
    """Host, group and item lookups against the monitoring configuration."""

    @abstractmethod
    def get_subgroups(self, groupids: Sequence[str]) -> List[str]:
        """Return the given group ids together with all nested sub-group ids."""
        ...

    @abstractmethod
    def get_hosts(
        self,
        *,
        groupids: Optional[Sequence[str]] = None,
        hostids: Optional[Sequence[str]] = None,
        evaltype: Optional[str] = None,
        tags: Optional[Sequence[TagFilter]] = None,
        time_period: Optional[TimeWindow] = None,
    ) -> Dict[str, str]:
        """Return monitored hosts matching the filters as hostid -> visible name.

        Args:
            groupids: Host group filter; None disables it
            hostids: Host filter; None disables it
            evaltype: Tag evaluation mode
            tags: Tag filter
            time_period: Optional hint of the time window being displayed
        """
        ...

    @abstractmethod
    def get_items(
        self,
        *,
        name: str,
        groupids: Optional[Sequence[str]] = None,
        hostids: Optional[Sequence[str]] = None,
        value_types: Optional[Sequence[ValueType]] = None,
    ) -> List[Item]:
        """Return monitored, enabled items with the given name, ordered by key.

        Args:
            name: Visible item name to match exactly
            groupids: Host group filter; None disables it
            hostids: Host filter; None disables it
            value_types: Allowed value types; None allows all
        """
        ...


class HistoryReader(ABC):
    """Access to collected item values."""

    @abstractmethod
    def get_last_values(self, items: Sequence[Item], period: int, now: int) -> Dict[str, Any]:
        """Return the most recent value of each item within ``period`` seconds before ``now``."""
        ...

    @abstractmethod
    def get_aggregated_values(
        self,
        items: Sequence[Item],
        function: AggregateFunction,
        window: TimeWindow,
    ) -> Dict[str, Any]:
        """Reduce each item's values in the window, reading from ``item.source``.

        Items without values in the window are left out of the result;
        ``count`` reports 0 for them instead.
        """
        ...


class MacroResolver(ABC):
    """Macro expansion in user supplied texts and item attributes."""

    @abstractmethod
    def resolve_text_columns(
        self,
        texts: Mapping[int, str],
        items: Mapping[str, Item],
    ) -> Dict[int, Dict[str, str]]:
        """Expand each column text once per item: column index -> itemid -> text."""
        ...

    @abstractmethod
    def resolve_time_unit_macros(self, items: Sequence[Item], fields: Sequence[str]) -> List[Item]:
        """Expand user macros in the given item fields (``history``, ``trends``)."""
        ...


class SettingsProvider(ABC):
    """Global frontend and housekeeping settings."""

    @abstractmethod
    def get_history_period(self) -> str:
        ...

    @abstractmethod
    def get_housekeeping(self) -> Mapping[str, Any]:
        """Return ``hk_history_global``, ``hk_history``, ``hk_trends_global`` and ``hk_trends``."""
        ...


@dataclass(frozen=True)
class Backend:
    """Collaborators a widget run talks to."""
    catalog: MetricsCatalog
    history: HistoryReader
    macros: MacroResolver
    settings: SettingsProvider
