from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from .base import MetricsCatalog
from .models import NUMERIC_VALUE_TYPES, Item, TimeWindow, WidgetConfig

logger = logging.getLogger(__name__)


@dataclass
class Scope:
    """Concrete host filter of a widget run.

    Attributes:
        groupids: Groups including nested sub-groups; None when unfiltered
        hostids: Hosts to consider; None when unfiltered, empty when nothing matched
        hosts: hostid -> name, known only when the tag filter was applied
    """
    groupids: Optional[List[str]]
    hostids: Optional[List[str]]
    hosts: Optional[Dict[str, str]] = None

    @property
    def is_empty(self) -> bool:
        return self.hostids is not None and not self.hostids


def resolve_scope(
    config: WidgetConfig,
    catalog: MetricsCatalog,
    *,
    dynamic_hostid: Optional[str] = None,
    template_dashboard: bool = False,
    window: Optional[TimeWindow] = None,
) -> Scope:
    """Expand the widget's group, host and tag filters.

    On a template dashboard the widget is bound to the single dynamic host
    and the group filter does not apply.
    """
    groupids: Optional[List[str]] = None
    if not template_dashboard and config.groupids:
        groupids = catalog.get_subgroups(config.groupids)

    hostids: Optional[List[str]]
    if template_dashboard:
        hostids = [str(dynamic_hostid)]
    else:
        hostids = list(config.hostids) or None

    hosts: Optional[Dict[str, str]] = None
    if config.tags is not None:
        hosts = catalog.get_hosts(
            groupids=groupids,
            hostids=hostids,
            evaltype=config.evaltype.value,
            tags=config.tags,
            time_period=window,
        )
        hostids = list(hosts)
        logger.debug("Tag filter matched %d host(s)", len(hostids))

    return Scope(groupids=groupids, hostids=hostids, hosts=hosts)


def get_items(
    catalog: MetricsCatalog,
    name: str,
    *,
    numeric_only: bool,
    groupids: Optional[Sequence[str]],
    hostids: Optional[Sequence[str]],
    count: bool = False,
) -> List[Item]:
    """Return the items feeding a column.

    Only items sharing the key of the first matching item are kept, so a
    column never mixes different metrics that happen to share a name.

    Args:
        catalog: Metrics catalog
        name: Item name configured for the column
        numeric_only: Restrict to numeric value types (ignored for ``count``)
        groupids: Group filter
        hostids: Host filter; an empty list matches nothing
        count: Whether the column counts values

    Returns:
        Items ordered as returned by the catalog
    """
    if hostids is not None and not hostids:
        return []

    value_types = NUMERIC_VALUE_TYPES if numeric_only and not count else None
    items = catalog.get_items(name=name, groupids=groupids, hostids=hostids, value_types=value_types)
    if not items:
        return []

    single_key = items[0].key
    return [item for item in items if item.key == single_key]
