from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping

from .base import Backend

BackendFactory = Callable[[Mapping[str, Any]], Backend]


@dataclass(frozen=True)
class _BackendEntry:
    name: str
    factory: BackendFactory
    description: str = ""


# Registry of backend factories per name
_BACKENDS: Dict[str, _BackendEntry] = {}


def register_backend(name: str, factory: BackendFactory, *, description: str = "") -> None:
    """Register a factory building the collaborators of a metrics backend.

    Backends register themselves at import time. Registering a name twice
    replaces the previous factory.

    Args:
        name: Backend name used in the ``backend`` configuration key
        factory: Callable receiving the backend's configuration section
        description: One-line description shown by the CLI
    """
    _BACKENDS[name] = _BackendEntry(name=name, factory=factory, description=description)


def registered_backends() -> Dict[str, str]:
    """Return registered backend names with their descriptions."""

    return {name: entry.description for name, entry in sorted(_BACKENDS.items())}


def create_backend(name: str, params: Mapping[str, Any] | None) -> Backend:
    """Build the collaborators of a registered backend.

    Raises:
        KeyError: If no backend is registered under ``name``
    """
    entry = _BACKENDS.get(name)
    if entry is None:
        known = ", ".join(sorted(_BACKENDS)) or "none"
        raise KeyError(f"Unknown backend '{name}' (registered: {known})")
    return entry.factory(params or {})
