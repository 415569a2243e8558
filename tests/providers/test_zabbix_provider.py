from __future__ import annotations

from typing import Any, Callable, Dict

import pytest

from tophosts.core.models import AggregateFunction, DataKind, DisplayMode, ColumnConfig, Item, TagFilter, TimeWindow, ValueType, WidgetConfig
from tophosts.core.widget import TopHostsWidget
from tophosts.providers import zabbix_base


class _API:
    def __init__(self, parent: "DummyClient", name: str) -> None:
        self._parent = parent
        self._name = name

    def get(self, **kwargs: Any) -> Any:
        self._parent.calls.setdefault(self._name, []).append(kwargs)
        return self._parent.handlers[self._name](kwargs)


class DummyClient:
    def __init__(
        self,
        *,
        url: str,
        token: str | None = None,
        user: str | None = None,
        password: str | None = None,
        **_: Any,
    ) -> None:
        self.url = url
        self.token = token
        self._auth_user = user
        self._auth_password = password
        self.calls: Dict[str, list[Dict[str, Any]]] = {}
        self.handlers: Dict[str, Callable[[Dict[str, Any]], Any]] = {
            "hostgroup": self._hostgroups,
            "host": self._hosts,
            "item": self._items,
            "history": self._history,
            "trend": self._trends,
            "usermacro": self._usermacros,
            "settings": lambda _: {"history_period": "1d"},
            "housekeeping": lambda _: {
                "hk_history_global": "0",
                "hk_history": "31d",
                "hk_trends_global": "0",
                "hk_trends": "365d",
            },
        }
        for name in self.handlers:
            setattr(self, name, _API(self, name))

    @staticmethod
    def _hostgroups(kwargs: Dict[str, Any]) -> list[Dict[str, Any]]:
        if "search" in kwargs:
            return [{"groupid": "5"}, {"groupid": "6"}]
        return [{"groupid": "4", "name": "Linux servers"}]

    @staticmethod
    def _hosts(kwargs: Dict[str, Any]) -> list[Dict[str, Any]]:
        hosts = [
            {"hostid": "10", "host": "web-1", "name": "Web 1", "description": "frontend", "inventory": {"os": "Debian"}},
            {"hostid": "11", "host": "db-1", "name": "DB 1", "description": "", "inventory": []},
        ]
        if "hostids" in kwargs:
            return [host for host in hosts if host["hostid"] in kwargs["hostids"]]
        return hosts

    @staticmethod
    def _items(kwargs: Dict[str, Any]) -> list[Dict[str, Any]]:
        if kwargs["filter"]["name"] != "CPU utilization":
            return []
        items = [
            {
                "itemid": "100",
                "hostid": "10",
                "name": "CPU utilization",
                "key_": "system.cpu.util",
                "value_type": "0",
                "units": "%",
                "history": "{$CPU.HISTORY}",
                "trends": "365d",
                "valuemap": [],
            },
            {
                "itemid": "101",
                "hostid": "11",
                "name": "CPU utilization",
                "key_": "system.cpu.util",
                "value_type": "0",
                "units": "%",
                "history": "7d",
                "trends": "365d",
                "valuemap": {"mappings": [{"value": "0", "newvalue": "Idle"}]},
            },
        ]
        if "hostids" in kwargs:
            return [item for item in items if item["hostid"] in kwargs["hostids"]]
        return items

    @staticmethod
    def _history(kwargs: Dict[str, Any]) -> list[Dict[str, Any]]:
        rows = {
            "100": [{"itemid": "100", "clock": "900", "ns": "0", "value": "10.5"}, {"itemid": "100", "clock": "950", "ns": "0", "value": "30.5"}],
            "101": [{"itemid": "101", "clock": "920", "ns": "0", "value": "80"}],
        }
        selected = [row for itemid in kwargs["itemids"] for row in rows.get(itemid, [])]
        if kwargs.get("sortorder") == "DESC":
            selected.sort(key=lambda row: int(row["clock"]), reverse=True)
        return selected[: kwargs["limit"]] if "limit" in kwargs else selected

    @staticmethod
    def _trends(kwargs: Dict[str, Any]) -> list[Dict[str, Any]]:
        return [
            {"itemid": "101", "clock": "3600", "num": "2", "value_min": "1", "value_avg": "4", "value_max": "7"},
            {"itemid": "101", "clock": "0", "num": "1", "value_min": "2", "value_avg": "1", "value_max": "3"},
        ]

    @staticmethod
    def _usermacros(kwargs: Dict[str, Any]) -> list[Dict[str, Any]]:
        if kwargs.get("globalmacro"):
            return [{"macro": "{$CPU.HISTORY}", "value": "1d"}, {"macro": "{$SITE}", "value": "hq"}]
        return [{"hostid": "10", "macro": "{$CPU.HISTORY}", "value": "2d"}]


@pytest.fixture
def client(monkeypatch: pytest.MonkeyPatch) -> DummyClient:
    created: list[DummyClient] = []

    def factory(**kwargs: Any) -> DummyClient:
        instance = DummyClient(**kwargs)
        created.append(instance)
        return instance

    monkeypatch.setattr(zabbix_base, "ZabbixAPI", factory)
    backend = zabbix_base._zabbix_backend({"api_url": "https://api", "api_token": "tok"})
    created[0].backend = backend  # type: ignore[attr-defined]
    return created[0]


def test_connect_prefers_token(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(zabbix_base, "ZabbixAPI", DummyClient)

    client = zabbix_base.connect({"api_url": "https://api", "api_token": "tok", "username": "Admin", "password": "x"})

    assert client.token == "tok"
    assert client._auth_user is None


def test_connect_with_username_password(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(zabbix_base, "ZabbixAPI", DummyClient)

    client = zabbix_base.connect({"api_url": "https://api", "username": "Admin", "password": "zabbix"})

    assert client.token is None
    assert client._auth_user == "Admin"


def test_connect_requires_credentials(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(zabbix_base, "ZabbixAPI", DummyClient)

    with pytest.raises(ValueError, match="api_token"):
        zabbix_base.connect({"api_url": "https://api"})
    with pytest.raises(ValueError, match="api_url"):
        zabbix_base.connect({"api_token": "tok"})


def test_subgroups_include_nested_groups(client: DummyClient) -> None:
    groupids = client.backend.catalog.get_subgroups(["4"])  # type: ignore[attr-defined]

    assert groupids == ["4", "5", "6"]
    search_call = client.calls["hostgroup"][1]
    assert search_call["search"] == {"name": ["Linux servers/"]}
    assert search_call["startSearch"] is True


def test_get_hosts_passes_tag_filter(client: DummyClient) -> None:
    hosts = client.backend.catalog.get_hosts(  # type: ignore[attr-defined]
        groupids=["4"],
        evaltype="2",
        tags=[TagFilter(tag="env", operator="1", value="prod")],
        time_period=TimeWindow(0, 3600),
    )

    assert hosts == {"10": "Web 1", "11": "DB 1"}
    call = client.calls["host"][0]
    assert call["evaltype"] == 2
    assert call["tags"] == [{"tag": "env", "operator": 1, "value": "prod"}]
    assert call["monitored_hosts"] is True
    assert "hostids" not in call


def test_get_items_filters_numeric_types_and_maps_values(client: DummyClient) -> None:
    items = client.backend.catalog.get_items(  # type: ignore[attr-defined]
        name="CPU utilization",
        hostids=["11"],
        value_types=[ValueType.FLOAT, ValueType.UINT],
    )

    assert [item.itemid for item in items] == ["101"]
    assert items[0].valuemap == {"0": "Idle"}
    assert items[0].value_type == ValueType.FLOAT
    call = client.calls["item"][0]
    assert call["filter"] == {"name": "CPU utilization", "status": 0, "value_type": [0, 3]}
    assert call["sortfield"] == "key_"
    assert "groupids" not in call


def test_last_values_query_latest_row(client: DummyClient) -> None:
    item = Item(itemid="100", hostid="10", key="system.cpu.util", value_type=ValueType.FLOAT)

    values = client.backend.history.get_last_values([item], 86400, 1000)  # type: ignore[attr-defined]

    assert values == {"100": 30.5}
    call = client.calls["history"][0]
    assert call["history"] == 0
    assert call["time_from"] == 1000 - 86400
    assert call["limit"] == 1


def test_aggregated_values_from_history_and_trends(client: DummyClient) -> None:
    items = [
        Item(itemid="100", hostid="10", key="k", value_type=ValueType.FLOAT, source="history"),
        Item(itemid="101", hostid="11", key="k", value_type=ValueType.FLOAT, source="trends"),
    ]

    avg = client.backend.history.get_aggregated_values(items, AggregateFunction.AVG, TimeWindow(0, 7200))  # type: ignore[attr-defined]
    first = client.backend.history.get_aggregated_values(items, AggregateFunction.FIRST, TimeWindow(0, 7200))  # type: ignore[attr-defined]

    assert avg["100"] == pytest.approx(20.5)
    assert avg["101"] == pytest.approx(3.0)
    assert first == {"100": 10.5, "101": 1.0}


def test_time_unit_macros_use_host_then_global_values(client: DummyClient) -> None:
    items = [
        Item(itemid="100", hostid="10", key="k", value_type=ValueType.FLOAT, history="{$CPU.HISTORY}"),
        Item(itemid="101", hostid="11", key="k", value_type=ValueType.FLOAT, history="{$CPU.HISTORY}"),
    ]

    resolved = client.backend.macros.resolve_time_unit_macros(items, ["history"])  # type: ignore[attr-defined]

    assert [item.history for item in resolved] == ["2d", "1d"]


def test_text_columns_expand_host_macros(client: DummyClient) -> None:
    items = {
        "100": Item(itemid="100", hostid="10", key="system.cpu.util", name="CPU utilization", value_type=ValueType.FLOAT),
        "101": Item(itemid="101", hostid="11", key="system.cpu.util", name="CPU utilization", value_type=ValueType.FLOAT),
    }

    texts = client.backend.macros.resolve_text_columns(  # type: ignore[attr-defined]
        {2: "{HOST.NAME} ({INVENTORY.OS}) {$SITE} {ITEM.KEY}"},
        items,
    )

    assert texts[2]["100"] == "Web 1 (Debian) hq system.cpu.util"
    assert texts[2]["101"] == "DB 1 ({INVENTORY.OS}) hq system.cpu.util"


def test_settings_are_read_from_api(client: DummyClient) -> None:
    settings = client.backend.settings  # type: ignore[attr-defined]

    assert settings.get_history_period() == "1d"
    assert settings.get_housekeeping()["hk_trends"] == "365d"


def test_widget_runs_against_zabbix_backend(client: DummyClient) -> None:
    config = WidgetConfig(
        columns=(
            ColumnConfig(name="Host", data=DataKind.HOST_NAME),
            ColumnConfig(name="CPU", data=DataKind.ITEM_VALUE, item="CPU utilization", display=DisplayMode.BAR),
        ),
        column=1,
    )

    result = TopHostsWidget(config, client.backend, timezone="UTC").view(now=1000)  # type: ignore[attr-defined]

    assert [[cell.value for cell in row] for row in result.rows] == [["DB 1", 80.0], ["Web 1", 30.5]]
    assert result.configuration[1].min == 30.5
    assert result.configuration[1].max == 80.0
