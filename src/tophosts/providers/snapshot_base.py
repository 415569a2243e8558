from __future__ import annotations
import logging
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

import yaml

from tophosts.core.aggregation import aggregate_history, aggregate_trends, coerce_value
from tophosts.core.backends import register_backend
from tophosts.core.base import Backend, HistoryReader, MacroResolver, MetricsCatalog, SettingsProvider
from tophosts.core.macros import expand_macros, host_macro_values, normalise_macro_name
from tophosts.core.models import AggregateFunction, EvalType, Item, TagFilter, TimeWindow, ValueType

logger = logging.getLogger(__name__)

_DEFAULT_SETTINGS = {
    "history_period": "24h",
    "hk_history_global": "0",
    "hk_history": "31d",
    "hk_trends_global": "0",
    "hk_trends": "365d",
}


def _str(value: Any) -> str:
    return "" if value is None else str(value)


class SnapshotStore:
    """Monitoring data held in memory.

    The snapshot layout mirrors the Zabbix API objects::

        settings: {history_period: 24h, hk_history_global: 0, ...}
        macros: {"{$HISTORY}": 7d}
        groups: [{groupid: "1", name: Linux servers}]
        hosts:
          - {hostid: "10", host: web-1, name: Web 1, status: 0, groups: ["1"],
             tags: [{tag: env, value: prod}], inventory: {os: Linux},
             macros: {"{$HISTORY}": 1d}}
        items:
          - {itemid: "100", hostid: "10", name: CPU utilization,
             key_: system.cpu.util, value_type: 0, units: "%",
             history: 7d, trends: 365d, status: 0}
        history: {"100": [[clock, value], ...]}
        trends: {"100": [[clock, num, min, avg, max], ...]}
    """

    def __init__(self, data: Mapping[str, Any]) -> None:
        self.settings: Dict[str, Any] = {**_DEFAULT_SETTINGS, **(data.get("settings") or {})}
        self.macros: Dict[str, str] = {
            normalise_macro_name(_str(name)): _str(value) for name, value in (data.get("macros") or {}).items()
        }
        self.groups: List[Dict[str, str]] = [
            {"groupid": _str(group.get("groupid")), "name": _str(group.get("name"))}
            for group in data.get("groups") or []
        ]
        self.hosts: Dict[str, Dict[str, Any]] = {}
        for host in data.get("hosts") or []:
            record = dict(host)
            record["hostid"] = _str(host.get("hostid"))
            record["groups"] = [_str(groupid) for groupid in host.get("groups") or []]
            self.hosts[record["hostid"]] = record
        self.items: List[Dict[str, Any]] = [dict(item) for item in data.get("items") or []]
        self.history: Dict[str, List[List[Any]]] = {
            _str(itemid): sorted(rows, key=lambda row: int(row[0])) for itemid, rows in (data.get("history") or {}).items()
        }
        self.trends: Dict[str, List[List[Any]]] = {
            _str(itemid): sorted(rows, key=lambda row: int(row[0])) for itemid, rows in (data.get("trends") or {}).items()
        }

    @classmethod
    def from_file(cls, path: Path) -> "SnapshotStore":
        content = yaml.safe_load(path.read_text()) or {}
        logger.debug("Loaded snapshot %s", path)
        return cls(content)

    def host_macros(self, hostid: str) -> Dict[str, str]:
        macros = dict(self.macros)
        host = self.hosts.get(hostid) or {}
        for name, value in (host.get("macros") or {}).items():
            macros[normalise_macro_name(_str(name))] = _str(value)
        return macros

    def is_monitored(self, hostid: str) -> bool:
        host = self.hosts.get(hostid)
        return host is not None and _str(host.get("status", "0")) == "0"


def _tag_matches(host_tags: Sequence[Mapping[str, Any]], condition: TagFilter) -> bool:
    values = [_str(tag.get("value")) for tag in host_tags if _str(tag.get("tag")) == condition.tag]
    operator = condition.operator
    if operator == "4":
        return bool(values)
    if operator == "5":
        return not values
    if operator == "1":
        return condition.value in values
    if operator == "3":
        return condition.value not in values
    contains = any(condition.value.lower() in value.lower() for value in values)
    if operator == "2":
        return not contains
    return contains


def _tags_match(host_tags: Sequence[Mapping[str, Any]], tags: Sequence[TagFilter], evaltype: Optional[str]) -> bool:
    if not tags:
        return True
    if evaltype == EvalType.OR.value:
        return any(_tag_matches(host_tags, condition) for condition in tags)
    # And/Or: conditions on the same tag name are alternatives
    by_name: Dict[str, List[TagFilter]] = {}
    for condition in tags:
        by_name.setdefault(condition.tag, []).append(condition)
    return all(any(_tag_matches(host_tags, condition) for condition in group) for group in by_name.values())


class SnapshotCatalog(MetricsCatalog):
    def __init__(self, store: SnapshotStore) -> None:
        self._store = store

    def get_subgroups(self, groupids: Sequence[str]) -> List[str]:
        wanted = {_str(groupid) for groupid in groupids}
        parents = [group["name"] + "/" for group in self._store.groups if group["groupid"] in wanted]
        return [
            group["groupid"]
            for group in self._store.groups
            if group["groupid"] in wanted or any(group["name"].startswith(prefix) for prefix in parents)
        ]

    def _host_allowed(self, hostid: str, groupids: Optional[Sequence[str]], hostids: Optional[Sequence[str]]) -> bool:
        if not self._store.is_monitored(hostid):
            return False
        if hostids is not None and hostid not in hostids:
            return False
        if groupids is not None and not set(self._store.hosts[hostid]["groups"]) & set(groupids):
            return False
        return True

    def get_hosts(
        self,
        *,
        groupids: Optional[Sequence[str]] = None,
        hostids: Optional[Sequence[str]] = None,
        evaltype: Optional[str] = None,
        tags: Optional[Sequence[TagFilter]] = None,
        time_period: Optional[TimeWindow] = None,
    ) -> Dict[str, str]:
        hosts: Dict[str, str] = {}
        for hostid, host in self._store.hosts.items():
            if not self._host_allowed(hostid, groupids, hostids):
                continue
            if not _tags_match(host.get("tags") or [], tags or (), evaltype):
                continue
            hosts[hostid] = _str(host.get("name") or host.get("host"))
        return hosts

    def get_items(
        self,
        *,
        name: str,
        groupids: Optional[Sequence[str]] = None,
        hostids: Optional[Sequence[str]] = None,
        value_types: Optional[Sequence[ValueType]] = None,
    ) -> List[Item]:
        items: List[Item] = []
        for record in self._store.items:
            hostid = _str(record.get("hostid"))
            if _str(record.get("name")) != name or _str(record.get("status", "0")) != "0":
                continue
            if not self._host_allowed(hostid, groupids, hostids):
                continue
            value_type = ValueType(_str(record.get("value_type", "0")))
            if value_types is not None and value_type not in value_types:
                continue
            items.append(
                Item(
                    itemid=_str(record.get("itemid")),
                    hostid=hostid,
                    key=_str(record.get("key_")),
                    name=name,
                    value_type=value_type,
                    units=_str(record.get("units")),
                    history=_str(record.get("history", "31d")),
                    trends=_str(record.get("trends", "0")),
                    valuemap={_str(k): _str(v) for k, v in (record.get("valuemap") or {}).items()},
                )
            )
        return sorted(items, key=lambda item: item.key)


class SnapshotHistory(HistoryReader):
    def __init__(self, store: SnapshotStore) -> None:
        self._store = store

    def get_last_values(self, items: Sequence[Item], period: int, now: int) -> Dict[str, Any]:
        values: Dict[str, Any] = {}
        for item in items:
            rows = [row for row in self._store.history.get(item.itemid, []) if now - period < int(row[0]) <= now]
            if rows:
                values[item.itemid] = coerce_value(rows[-1][1], item.value_type)
        return values

    def get_aggregated_values(
        self,
        items: Sequence[Item],
        function: AggregateFunction,
        window: TimeWindow,
    ) -> Dict[str, Any]:
        values: Dict[str, Any] = {}
        for item in items:
            if item.source == "trends":
                rows = [
                    {"clock": row[0], "num": row[1], "value_min": row[2], "value_avg": row[3], "value_max": row[4]}
                    for row in self._store.trends.get(item.itemid, [])
                    if window.time_from <= int(row[0]) <= window.time_to
                ]
                value = aggregate_trends(rows, function)
            else:
                samples = [
                    (int(row[0]), coerce_value(row[1], item.value_type))
                    for row in self._store.history.get(item.itemid, [])
                    if window.time_from <= int(row[0]) <= window.time_to
                ]
                value = aggregate_history(samples, function, item.is_numeric)
            if value is not None:
                values[item.itemid] = value
        return values


class SnapshotMacros(MacroResolver):
    def __init__(self, store: SnapshotStore) -> None:
        self._store = store

    def resolve_text_columns(
        self,
        texts: Mapping[int, str],
        items: Mapping[str, Item],
    ) -> Dict[int, Dict[str, str]]:
        resolved: Dict[int, Dict[str, str]] = {}
        for index, text in texts.items():
            resolved[index] = {}
            for itemid, item in items.items():
                host = self._store.hosts.get(item.hostid) or {"hostid": item.hostid}
                values = host_macro_values(host, item, self._store.host_macros(item.hostid))
                resolved[index][itemid] = expand_macros(text, values)
        return resolved

    def resolve_time_unit_macros(self, items: Sequence[Item], fields: Sequence[str]) -> List[Item]:
        return [
            replace(
                item,
                **{field: expand_macros(str(getattr(item, field)), self._store.host_macros(item.hostid)) for field in fields},
            )
            for item in items
        ]


class SnapshotSettings(SettingsProvider):
    def __init__(self, store: SnapshotStore) -> None:
        self._store = store

    def get_history_period(self) -> str:
        return _str(self._store.settings.get("history_period"))

    def get_housekeeping(self) -> Mapping[str, Any]:
        return {key: self._store.settings.get(key) for key in ("hk_history_global", "hk_history", "hk_trends_global", "hk_trends")}


def snapshot_backend(store: SnapshotStore) -> Backend:
    return Backend(
        catalog=SnapshotCatalog(store),
        history=SnapshotHistory(store),
        macros=SnapshotMacros(store),
        settings=SnapshotSettings(store),
    )


def _snapshot_backend(params: Mapping[str, Any]) -> Backend:
    if isinstance(params.get("data"), Mapping):
        return snapshot_backend(SnapshotStore(params["data"]))
    path = params.get("path")
    if not path:
        raise ValueError("Missing snapshot file (snapshot.path)")
    return snapshot_backend(SnapshotStore.from_file(Path(str(path)).expanduser()))


register_backend("snapshot", _snapshot_backend, description="Monitoring data snapshot from a YAML/JSON file")
