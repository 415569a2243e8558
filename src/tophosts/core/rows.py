from __future__ import annotations
from typing import Dict, List, Mapping, Sequence

from .models import (
    Cell,
    DataKind,
    HostNameCell,
    ItemSample,
    ItemValueCell,
    MasterRanking,
    Row,
    TextCell,
    WidgetConfig,
)


def assemble_rows(
    config: WidgetConfig,
    ranking: MasterRanking,
    host_names: Mapping[str, str],
    texts: Mapping[int, Mapping[str, str]],
    samples: Mapping[int, Mapping[str, ItemSample]],
) -> List[Row]:
    """Merge per-column values into one row per ranked host.

    Rows follow the ranking order and hold one cell per configured column.
    Item cells are None for hosts without a value in that column.

    Args:
        config: Widget definition
        ranking: Truncated master ranking
        host_names: hostid -> visible name
        texts: column index -> itemid -> expanded text
        samples: column index -> hostid -> sample

    Returns:
        Rows in ranking order
    """
    hostid_to_itemid: Dict[str, str] = {item.hostid: itemid for itemid, item in ranking.items.items()}
    rows: List[Row] = []

    for hostid in ranking.hostids:
        row: List[Cell] = []
        for index, column in enumerate(config.columns):
            if column.data == DataKind.HOST_NAME:
                row.append(HostNameCell(value=host_names.get(hostid, ""), hostid=hostid))
            elif column.data == DataKind.TEXT:
                row.append(TextCell(value=texts.get(index, {}).get(hostid_to_itemid[hostid], "")))
            else:
                sample = samples.get(index, {}).get(hostid)
                row.append(
                    ItemValueCell(value=sample.value, item=sample.item, is_binary_units=sample.is_binary_units)
                    if sample is not None
                    else None
                )
        rows.append(row)

    return rows


def text_templates(config: WidgetConfig) -> Dict[int, str]:
    return {index: column.text for index, column in enumerate(config.columns) if column.data == DataKind.TEXT}


def needs_host_names(columns: Sequence) -> bool:
    return any(column.data == DataKind.HOST_NAME for column in columns)
