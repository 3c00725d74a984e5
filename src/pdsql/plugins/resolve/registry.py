"""Plugin lookup for the ``plugins:`` config section.

A plugin entry's ``module`` is either a short alias declared with
``@plugin_aliases`` on one of the built-in plugins, or a dotted
``package.module.Class`` path to any BasePlugin subclass.
"""

import importlib
import inspect
import logging
from typing import Dict, Iterable, Optional, Type

from .base import BasePlugin

logger = logging.getLogger(__name__)

BUILTIN_MODULES = ("pdsql.plugins.resolve.powerdns_sql",)


def _normalize(alias: str) -> str:
    return alias.strip().lower().replace("-", "_")


def load_alias_table(
    modules: Iterable[str] = BUILTIN_MODULES,
) -> Dict[str, Type[BasePlugin]]:
    """
    Brief: Map the declared aliases of the built-in plugins to their classes.

    Inputs:
      - modules: Module paths whose BasePlugin subclasses are registered.

    Outputs:
      - dict: Normalized alias -> plugin class.

    Raises:
      - ImportError: When a plugin module fails to import.
      - ValueError: When two classes declare the same alias.

    Example:
        >>> load_alias_table()["gsql"].__name__
        'PowerDNSGenericSQL'
    """
    table: Dict[str, Type[BasePlugin]] = {}
    for modname in modules:
        module = importlib.import_module(modname)
        for _, cls in inspect.getmembers(module, inspect.isclass):
            if not issubclass(cls, BasePlugin) or cls.__module__ != modname:
                continue
            for alias in map(_normalize, cls.get_aliases()):
                owner = table.setdefault(alias, cls)
                if owner is not cls:
                    raise ValueError(
                        f"Plugin alias '{alias}' is declared by both "
                        f"{owner.__module__}.{owner.__name__} and {modname}.{cls.__name__}"
                    )
    logger.debug("plugin aliases: %s", sorted(table))
    return table


def resolve_plugin_class(
    identifier: str, aliases: Optional[Dict[str, Type[BasePlugin]]] = None
) -> Type[BasePlugin]:
    """
    Resolve a ``module`` value from the config to a plugin class.
    - A value with a dot is imported as "pkg.mod.Class".
    - Anything else is looked up in the alias table.

    Raises ValueError for a malformed path, ImportError/AttributeError when the
    path does not exist, TypeError for a non-plugin class, and KeyError for an
    unknown alias.
    """
    ident = identifier.strip()
    if "." in ident:
        modname, _, classname = ident.rpartition(".")
        if not modname or not classname:
            raise ValueError(f"Invalid plugin path '{identifier}'")
        cls = getattr(importlib.import_module(modname), classname)
        if not (inspect.isclass(cls) and issubclass(cls, BasePlugin)):
            raise TypeError(f"{identifier} is not a BasePlugin subclass")
        return cls

    table = aliases if aliases is not None else load_alias_table()
    try:
        return table[_normalize(ident)]
    except KeyError:
        raise KeyError(
            f"Unknown plugin alias '{identifier}'. "
            f"Known aliases: {', '.join(sorted(table))}"
        ) from None
