from __future__ import annotations

from tophosts.core.models import AggregateFunction, ColumnConfig, DataKind, Item, Order, ValueType
from tophosts.core.ranking import is_numeric_ranking, natural_key, rank_master

COLUMN = ColumnConfig(name="CPU", data=DataKind.ITEM_VALUE, item="CPU")


def _items(*specs: tuple[str, ValueType]) -> dict[str, Item]:
    return {
        itemid: Item(itemid=itemid, hostid=f"host-{itemid}", key="k", value_type=value_type)
        for itemid, value_type in specs
    }


def test_top_n_descending_with_extremes() -> None:
    items = _items(("1", ValueType.FLOAT), ("2", ValueType.FLOAT), ("3", ValueType.FLOAT))

    ranking = rank_master({"1": 10.0, "2": 20.0, "3": 5.0}, items, COLUMN, Order.TOP_N, 10)

    assert list(ranking.values.values()) == [20.0, 10.0, 5.0]
    assert ranking.hostids == ["host-2", "host-1", "host-3"]
    assert ranking.numeric is True
    assert (ranking.min, ranking.max) == (5.0, 20.0)


def test_bottom_n_ascending() -> None:
    items = _items(("1", ValueType.UINT), ("2", ValueType.UINT), ("3", ValueType.UINT))

    ranking = rank_master({"1": 10, "2": 20, "3": 5}, items, COLUMN, Order.BOTTOM_N, 10)

    assert list(ranking.values.values()) == [5, 10, 20]
    assert (ranking.min, ranking.max) == (5, 20)


def test_truncation_keeps_extremes_of_full_ranking() -> None:
    items = _items(("1", ValueType.FLOAT), ("2", ValueType.FLOAT), ("3", ValueType.FLOAT))

    ranking = rank_master({"1": 10.0, "2": 20.0, "3": 5.0}, items, COLUMN, Order.TOP_N, 2)

    assert list(ranking.values) == ["2", "1"]
    assert list(ranking.items) == ["2", "1"]
    assert (ranking.min, ranking.max) == (5.0, 20.0)


def test_ties_keep_catalog_order() -> None:
    items = _items(("1", ValueType.FLOAT), ("2", ValueType.FLOAT), ("3", ValueType.FLOAT))

    top = rank_master({"1": 1.0, "2": 1.0, "3": 2.0}, items, COLUMN, Order.TOP_N, 10)
    bottom = rank_master({"1": 1.0, "2": 1.0, "3": 2.0}, items, COLUMN, Order.BOTTOM_N, 10)

    assert list(top.values) == ["3", "1", "2"]
    assert list(bottom.values) == ["1", "2", "3"]


def test_mixed_value_types_rank_naturally() -> None:
    items = _items(("1", ValueType.FLOAT), ("2", ValueType.STR), ("3", ValueType.STR))

    ranking = rank_master({"1": 9.5, "2": "host10", "3": "host2"}, items, COLUMN, Order.BOTTOM_N, 10)

    assert ranking.numeric is False
    assert list(ranking.values.values()) == [9.5, "host2", "host10"]
    assert ranking.min is None and ranking.max is None


def test_count_ranks_numerically_for_text_items() -> None:
    column = ColumnConfig(name="Log lines", data=DataKind.ITEM_VALUE, item="Log", aggregate_function=AggregateFunction.COUNT)
    items = _items(("1", ValueType.LOG), ("2", ValueType.LOG))

    assert is_numeric_ranking(list(items.values()), column)
    ranking = rank_master({"1": 9, "2": 10}, items, column, Order.TOP_N, 10)
    assert list(ranking.values.values()) == [10, 9]


def test_natural_key() -> None:
    values = ["host10", "Host2", "host1", "alpha"]

    assert sorted(values, key=natural_key) == ["alpha", "host1", "Host2", "host10"]


def test_natural_key_ignores_case() -> None:
    values = ["web2", "Zeta", "Web10", "apple"]

    assert sorted(values, key=natural_key) == ["apple", "web2", "Web10", "Zeta"]
    assert natural_key("WEB1") == natural_key("web1")
