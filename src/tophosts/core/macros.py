from __future__ import annotations
import re
from typing import Any, Dict, Mapping, Optional

from .models import Item

_MACRO_RE = re.compile(r"\{(\$[A-Z0-9_.]+|[A-Z][A-Z0-9_]*(?:\.[A-Z0-9_]+)+)\}")


def normalise_macro_name(name: str) -> str:
    """Turn ``{$NAME}`` or ``$NAME`` into ``$NAME``."""
    text = name.strip()
    if text.startswith("{") and text.endswith("}"):
        text = text[1:-1]
    return text


def expand_macros(template: str, values: Mapping[str, Any]) -> str:
    """Replace ``{MACRO}`` and ``{$USER.MACRO}`` placeholders.

    Macros without a value are left untouched.

    Args:
        template: Text containing macros
        values: Macro name (without braces) -> replacement

    Returns:
        Expanded text
    """

    def _replace(match: re.Match[str]) -> str:
        name = match.group(1)
        if name in values and values[name] is not None:
            return str(values[name])
        return match.group(0)

    return _MACRO_RE.sub(_replace, template or "")


def host_macro_values(
    host: Mapping[str, Any],
    item: Optional[Item] = None,
    user_macros: Optional[Mapping[str, Any]] = None,
) -> Dict[str, Any]:
    """Build the macro values available for a host and one of its items.

    Args:
        host: Host record with ``hostid``, ``host``, ``name``, ``description``
            and an optional ``inventory`` mapping
        item: Item the text is rendered for
        user_macros: User macros visible on the host, global ones first

    Returns:
        Macro name -> value
    """
    values: Dict[str, Any] = {
        "HOST.ID": host.get("hostid", ""),
        "HOST.HOST": host.get("host", ""),
        "HOST.NAME": host.get("name") or host.get("host", ""),
        "HOST.DESCRIPTION": host.get("description", ""),
    }
    inventory = host.get("inventory")
    if isinstance(inventory, Mapping):
        for field, value in inventory.items():
            values[f"INVENTORY.{str(field).upper()}"] = value
    if item is not None:
        values["ITEM.ID"] = item.itemid
        values["ITEM.KEY"] = item.key
        values["ITEM.NAME"] = item.name
    for name, value in (user_macros or {}).items():
        values[normalise_macro_name(name)] = value
    return values
