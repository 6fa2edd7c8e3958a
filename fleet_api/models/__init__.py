# fleet_api/models/__init__.py
import importlib
import logging
import pkgutil

log = logging.getLogger(__name__)


def load_all() -> list:
    """
    Import every model module in this package so db.metadata is complete
    before create_all() or an Alembic autogenerate.
    """
    loaded = []
    for mod in pkgutil.iter_modules(__path__):
        if mod.name.startswith("_"):
            continue
        loaded.append(importlib.import_module(f"{__name__}.{mod.name}"))
    log.debug("[models] loaded %s", ", ".join(m.__name__ for m in loaded))
    return loaded
