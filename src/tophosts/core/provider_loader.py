from __future__ import annotations
import logging
import pkgutil
from importlib import import_module
from importlib.metadata import entry_points

logger = logging.getLogger(__name__)


def load_all_backends() -> None:
    """Import all modules under tophosts.providers and all entry-point backends.

    Backends must call register_backend(name, factory) at import time. A
    backend failing to import is logged and skipped.
    """
    # 1) Local package scan
    import tophosts.providers as root
    for _, name, _ in pkgutil.walk_packages(root.__path__, root.__name__ + "."):
        try:
            import_module(name)
        except Exception as err:
            logger.warning("Could not load backend module %s: %s", name, err)

    # 2) Plugins via entry points (group: tophosts.backends)
    try:
        plugins = list(entry_points(group="tophosts.backends"))
    except Exception as err:
        logger.warning("Could not list backend plugins: %s", err)
        plugins = []
    for ep in plugins:
        try:
            import_module(ep.module)
        except Exception as err:
            logger.warning("Could not load backend plugin %s: %s", ep.name, err)
