from __future__ import annotations
import logging
from collections import defaultdict
from dataclasses import replace
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from tophosts.core.aggregation import aggregate_history, aggregate_trends, coerce_value
from tophosts.core.backends import register_backend
from tophosts.core.base import Backend, HistoryReader, MacroResolver, MetricsCatalog, SettingsProvider
from tophosts.core.macros import expand_macros, host_macro_values, normalise_macro_name
from tophosts.core.models import AggregateFunction, Item, TagFilter, TimeWindow, ValueType

# Required dependency: zabbix-utils
try:
    from zabbix_utils import ZabbixAPI  # type: ignore
except Exception as exc:  # pragma: no cover
    raise RuntimeError("zabbix-utils is required for the Zabbix backend. Install zabbix-utils.") from exc

logger = logging.getLogger(__name__)

ITEM_STATUS_ACTIVE = 0

_ITEM_OUTPUT = ["itemid", "hostid", "name", "key_", "history", "trends", "value_type", "units"]
_TREND_OUTPUT = ["itemid", "clock", "num", "value_min", "value_avg", "value_max"]
_HOUSEKEEPING_OUTPUT = ["hk_history_global", "hk_history", "hk_trends_global", "hk_trends"]


def _compact(options: Dict[str, Any]) -> Dict[str, Any]:
    """Drop unset request parameters so the API applies its defaults."""
    return {key: value for key, value in options.items() if value is not None}


def _coerce_str(value: Any) -> str:
    """Convert a value to string, returning empty string for None."""
    if value is None:
        return ""
    return str(value)


def _coerce_int(value: Any) -> Optional[int]:
    """Convert a value to integer, returning None if conversion fails."""
    try:
        if value is None:
            return None
        return int(str(value))
    except (TypeError, ValueError):
        return None


def _normalise_item(record: Mapping[str, Any]) -> Item:
    """Normalize a Zabbix item record to an Item.

    Args:
        record: Raw item from item.get

    Returns:
        Item with its value mappings flattened to value -> new value
    """
    valuemap: Dict[str, str] = {}
    raw_map = record.get("valuemap")
    if isinstance(raw_map, Mapping):
        for mapping in raw_map.get("mappings") or []:
            if isinstance(mapping, Mapping):
                valuemap[_coerce_str(mapping.get("value"))] = _coerce_str(mapping.get("newvalue"))

    return Item(
        itemid=_coerce_str(record.get("itemid")),
        hostid=_coerce_str(record.get("hostid")),
        key=_coerce_str(record.get("key_")),
        name=_coerce_str(record.get("name")),
        value_type=ValueType(_coerce_str(record.get("value_type")) or "0"),
        units=_coerce_str(record.get("units")),
        history=_coerce_str(record.get("history")) or "0",
        trends=_coerce_str(record.get("trends")) or "0",
        valuemap=valuemap,
    )


def _api_tags(tags: Sequence[TagFilter]) -> List[Dict[str, Any]]:
    return [{"tag": tag.tag, "operator": _coerce_int(tag.operator) or 0, "value": tag.value} for tag in tags]


class ZabbixCatalog(MetricsCatalog):
    def __init__(self, client: ZabbixAPI) -> None:
        self._client = client

    def get_subgroups(self, groupids: Sequence[str]) -> List[str]:
        groups = self._client.hostgroup.get(  # type: ignore[attr-defined]
            output=["groupid", "name"],
            groupids=list(groupids),
        )
        result: List[str] = []
        prefixes: List[str] = []
        for group in groups or []:
            if not isinstance(group, Mapping):
                continue
            result.append(_coerce_str(group.get("groupid")))
            prefixes.append(_coerce_str(group.get("name")) + "/")

        if prefixes:
            children = self._client.hostgroup.get(  # type: ignore[attr-defined]
                output=["groupid"],
                search={"name": prefixes},
                searchByAny=True,
                startSearch=True,
            )
            for child in children or []:
                groupid = _coerce_str(child.get("groupid")) if isinstance(child, Mapping) else ""
                if groupid and groupid not in result:
                    result.append(groupid)
        return result

    def get_hosts(
        self,
        *,
        groupids: Optional[Sequence[str]] = None,
        hostids: Optional[Sequence[str]] = None,
        evaltype: Optional[str] = None,
        tags: Optional[Sequence[TagFilter]] = None,
        time_period: Optional[TimeWindow] = None,
    ) -> Dict[str, str]:
        # host.get has no time filter; the window is only logged
        if time_period is not None:
            logger.debug("Host query for window %s-%s", time_period.time_from, time_period.time_to)
        records = self._client.host.get(  # type: ignore[attr-defined]
            **_compact(
                {
                    "output": ["hostid", "name"],
                    "groupids": list(groupids) if groupids is not None else None,
                    "hostids": list(hostids) if hostids is not None else None,
                    "evaltype": _coerce_int(evaltype) if tags else None,
                    "tags": _api_tags(tags) if tags else None,
                    "monitored_hosts": True,
                }
            )
        )
        return {
            _coerce_str(record.get("hostid")): _coerce_str(record.get("name"))
            for record in records or []
            if isinstance(record, Mapping)
        }

    def get_items(
        self,
        *,
        name: str,
        groupids: Optional[Sequence[str]] = None,
        hostids: Optional[Sequence[str]] = None,
        value_types: Optional[Sequence[ValueType]] = None,
    ) -> List[Item]:
        item_filter: Dict[str, Any] = {"name": name, "status": ITEM_STATUS_ACTIVE}
        if value_types is not None:
            item_filter["value_type"] = [int(value_type.value) for value_type in value_types]

        records = self._client.item.get(  # type: ignore[attr-defined]
            **_compact(
                {
                    "output": _ITEM_OUTPUT,
                    "selectValueMap": ["mappings"],
                    "groupids": list(groupids) if groupids is not None else None,
                    "hostids": list(hostids) if hostids is not None else None,
                    "monitored": True,
                    "webitems": True,
                    "filter": item_filter,
                    "sortfield": "key_",
                }
            )
        )
        items = [_normalise_item(record) for record in records or [] if isinstance(record, Mapping)]
        logger.debug("item.get for %r returned %d item(s)", name, len(items))
        return items


class ZabbixHistory(HistoryReader):
    def __init__(self, client: ZabbixAPI) -> None:
        self._client = client

    def get_last_values(self, items: Sequence[Item], period: int, now: int) -> Dict[str, Any]:
        values: Dict[str, Any] = {}
        for item in items:
            rows = self._client.history.get(  # type: ignore[attr-defined]
                output=["itemid", "clock", "value"],
                history=int(item.value_type.value),
                itemids=[item.itemid],
                time_from=now - period,
                time_till=now,
                sortfield="clock",
                sortorder="DESC",
                limit=1,
            )
            if rows:
                values[item.itemid] = coerce_value(rows[0].get("value"), item.value_type)
        return values

    def get_aggregated_values(
        self,
        items: Sequence[Item],
        function: AggregateFunction,
        window: TimeWindow,
    ) -> Dict[str, Any]:
        values: Dict[str, Any] = {}

        by_table: Dict[tuple[str, ValueType], List[Item]] = defaultdict(list)
        for item in items:
            by_table[(item.source or "history", item.value_type)].append(item)

        for (source, value_type), group in by_table.items():
            itemids = [item.itemid for item in group]
            if source == "trends":
                rows = self._client.trend.get(  # type: ignore[attr-defined]
                    output=_TREND_OUTPUT,
                    itemids=itemids,
                    time_from=window.time_from,
                    time_till=window.time_to,
                )
                per_item = _group_rows(rows)
                for item in group:
                    ordered = sorted(per_item.get(item.itemid, []), key=lambda row: int(row["clock"]))
                    value = aggregate_trends(ordered, function)
                    if value is not None:
                        values[item.itemid] = value
                continue

            rows = self._client.history.get(  # type: ignore[attr-defined]
                output=["itemid", "clock", "ns", "value"],
                history=int(value_type.value),
                itemids=itemids,
                time_from=window.time_from,
                time_till=window.time_to,
                sortfield="clock",
                sortorder="ASC",
            )
            per_item = _group_rows(rows)
            for item in group:
                ordered = sorted(
                    per_item.get(item.itemid, []),
                    key=lambda row: (int(row["clock"]), _coerce_int(row.get("ns")) or 0),
                )
                samples = [(int(row["clock"]), coerce_value(row.get("value"), value_type)) for row in ordered]
                value = aggregate_history(samples, function, value_type.is_numeric)
                if value is not None:
                    values[item.itemid] = value
        return values


def _group_rows(rows: Iterable[Any]) -> Dict[str, List[Mapping[str, Any]]]:
    grouped: Dict[str, List[Mapping[str, Any]]] = defaultdict(list)
    for row in rows or []:
        if isinstance(row, Mapping):
            grouped[_coerce_str(row.get("itemid"))].append(row)
    return grouped


class ZabbixMacros(MacroResolver):
    def __init__(self, client: ZabbixAPI) -> None:
        self._client = client

    def _user_macros(self, hostids: Sequence[str]) -> Dict[str, Dict[str, str]]:
        """Return user macros visible per host, host level overriding global ones."""
        global_macros: Dict[str, str] = {}
        for record in self._client.usermacro.get(  # type: ignore[attr-defined]
            output=["macro", "value"],
            globalmacro=True,
        ) or []:
            global_macros[normalise_macro_name(_coerce_str(record.get("macro")))] = _coerce_str(record.get("value"))

        per_host: Dict[str, Dict[str, str]] = {hostid: dict(global_macros) for hostid in hostids}
        if hostids:
            for record in self._client.usermacro.get(  # type: ignore[attr-defined]
                output=["hostid", "macro", "value"],
                hostids=list(hostids),
            ) or []:
                hostid = _coerce_str(record.get("hostid"))
                per_host.setdefault(hostid, dict(global_macros))[
                    normalise_macro_name(_coerce_str(record.get("macro")))
                ] = _coerce_str(record.get("value"))
        return per_host

    def resolve_text_columns(
        self,
        texts: Mapping[int, str],
        items: Mapping[str, Item],
    ) -> Dict[int, Dict[str, str]]:
        hostids = sorted({item.hostid for item in items.values()})
        hosts: Dict[str, Mapping[str, Any]] = {}
        if hostids:
            for record in self._client.host.get(  # type: ignore[attr-defined]
                output=["hostid", "host", "name", "description"],
                hostids=hostids,
                selectInventory="extend",
            ) or []:
                hosts[_coerce_str(record.get("hostid"))] = record
        macros = self._user_macros(hostids)

        resolved: Dict[int, Dict[str, str]] = {}
        for index, text in texts.items():
            resolved[index] = {
                itemid: expand_macros(
                    text,
                    host_macro_values(hosts.get(item.hostid, {"hostid": item.hostid}), item, macros.get(item.hostid)),
                )
                for itemid, item in items.items()
            }
        return resolved

    def resolve_time_unit_macros(self, items: Sequence[Item], fields: Sequence[str]) -> List[Item]:
        macros = self._user_macros(sorted({item.hostid for item in items}))
        return [
            replace(
                item,
                **{field: expand_macros(str(getattr(item, field)), macros.get(item.hostid, {})) for field in fields},
            )
            for item in items
        ]


class ZabbixSettings(SettingsProvider):
    def __init__(self, client: ZabbixAPI) -> None:
        self._client = client

    def get_history_period(self) -> str:
        settings = self._client.settings.get(output=["history_period"])  # type: ignore[attr-defined]
        return _coerce_str((settings or {}).get("history_period")) or "24h"

    def get_housekeeping(self) -> Mapping[str, Any]:
        return self._client.housekeeping.get(output=_HOUSEKEEPING_OUTPUT) or {}  # type: ignore[attr-defined]


def connect(params: Mapping[str, Any]) -> ZabbixAPI:
    """Create an authenticated Zabbix API client using token or username/password.

    Raises:
        ValueError: If the API url or credentials are missing
    """
    api_url = params.get("api_url")
    if not api_url:
        raise ValueError("Missing Zabbix API url (zabbix.api_url)")

    token = params.get("api_token")
    username = params.get("username")
    password = params.get("password")

    if token:
        auth_kwargs = {"token": token}
    elif username and password:
        auth_kwargs = {"user": username, "password": password}
    else:
        raise ValueError("Provide either zabbix.api_token or zabbix.username/zabbix.password")

    client_kwargs: Dict[str, Any] = {"url": api_url}
    if params.get("timeout") not in (None, ""):
        client_kwargs["timeout"] = int(params["timeout"])
    if "validate_certs" in params:
        client_kwargs["validate_certs"] = bool(params["validate_certs"])

    logger.debug("Connecting to Zabbix API at %s", api_url)
    return ZabbixAPI(**client_kwargs, **auth_kwargs)


def _zabbix_backend(params: Mapping[str, Any]) -> Backend:
    client = connect(params)
    return Backend(
        catalog=ZabbixCatalog(client),
        history=ZabbixHistory(client),
        macros=ZabbixMacros(client),
        settings=ZabbixSettings(client),
    )


register_backend("zabbix", _zabbix_backend, description="Zabbix JSON-RPC API (zabbix-utils)")
