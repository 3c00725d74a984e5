"""Configuration parsing and plugin loading for pdsql.

Brief:
  Centralizes the steps the CLI entrypoint runs before it starts listening:
    - reading the YAML config file
    - JSON Schema validation of the top-level layout
    - pydantic validation of each plugin's ``config`` mapping
    - plugin construction and the ordered setup phase

Inputs:
  - YAML config paths and parsed config dicts

Outputs:
  - Validated config dicts and constructed, set-up plugin instances
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

import yaml
from pydantic import ValidationError

from pdsql.config.config_schema import validate_config
from pdsql.plugins.resolve.base import BasePlugin
from pdsql.plugins.resolve.registry import load_alias_table, resolve_plugin_class

logger = logging.getLogger(__name__)

# Options consumed by BasePlugin itself rather than by a plugin's config model.
BASE_PLUGIN_KEYS: Tuple[str, ...] = (
    "name",
    "pre_priority",
    "post_priority",
    "setup_priority",
    "abort_on_failure",
    "logging",
    "target_qtypes",
)


def parse_config_file(config_path: str) -> Dict[str, Any]:
    """Brief: Read and schema-validate a YAML config file.

    Inputs:
      - config_path: Path to the YAML configuration file.

    Outputs:
      - dict: Parsed configuration mapping.

    Raises:
      - ValueError: When the root is not a mapping, the YAML is invalid, or
        schema validation fails.
      - OSError: When the file cannot be read.
    """
    with open(config_path, "r", encoding="utf-8") as f:
        try:
            cfg = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {config_path}: {exc}") from exc

    if not isinstance(cfg, dict):
        raise ValueError("Configuration root must be a mapping")

    validate_config(cfg, config_path=config_path)
    return cfg


def _validate_plugin_config(plugin_cls: type[BasePlugin], config: dict | None) -> dict:
    """Brief: Validate plugin configuration through the plugin's pydantic model.

    Inputs:
      - plugin_cls: Plugin class (subclass of BasePlugin).
      - config: Raw config mapping for this plugin (may be None).

    Outputs:
      - dict: Validated mapping to pass into plugin_cls, with BasePlugin-level
        options such as ``logging`` and priorities carried over unchanged.

    Raises:
      - ValueError: When the model rejects the mapping (missing or unknown
        keys, wrong types).
    """
    cfg: dict = dict(config or {})
    base_opts = {k: cfg.pop(k) for k in BASE_PLUGIN_KEYS if k in cfg}

    model_cls = plugin_cls.get_config_model()
    if model_cls is None:
        validated = cfg
    else:
        try:
            validated = model_cls(**cfg).model_dump()
        except ValidationError as exc:
            raise ValueError(
                f"Invalid configuration for plugin {plugin_cls.__name__}: {exc}"
            ) from exc

    validated.update(base_opts)
    return validated


def load_plugins(plugin_specs: Optional[List[Any]]) -> List[BasePlugin]:
    """Brief: Construct plugins from ``plugins:`` config entries.

    Inputs:
      - plugin_specs: List of entries. Each item is either:
        - str: a dotted class path or short alias, or
        - dict: mapping with ``module`` plus optional ``name``, ``enabled``,
          ``comment``, ``priority``/``pre_priority``/``post_priority``/
          ``setup_priority`` and ``config``.

    Outputs:
      - list[BasePlugin]: Initialized (not yet set up) plugin instances.

    Raises:
      - ValueError: On duplicate instance names or invalid plugin config.
      - KeyError: On an unknown plugin alias.

    Notes:
      - ``priority`` is shorthand for all three priority keys; explicit keys
        win. Keys under ``config`` win over the same keys on the entry.
      - When ``name`` is omitted the module text is the instance name.
    """
    alias_table = load_alias_table()
    plugins: List[BasePlugin] = []
    seen_names: set[str] = set()

    for spec in plugin_specs or []:
        if isinstance(spec, str):
            spec = {"module": spec}
        if not isinstance(spec, dict):
            continue

        module_path = spec.get("module")
        if not module_path:
            continue

        raw_config = spec.get("config") or {}
        if not isinstance(raw_config, dict):
            raise ValueError(f"plugins[{module_path}].config must be a mapping")
        plugin_config = dict(raw_config)

        enabled = plugin_config.pop("enabled", spec.get("enabled", True))
        plugin_config.pop("comment", None)
        if not bool(enabled):
            logger.info("Skipping disabled plugin %s", module_path)
            continue

        config_name = plugin_config.pop("name", None)
        name = str(spec.get("name") or config_name or module_path).strip()
        if name in seen_names:
            raise ValueError(
                "Duplicate plugin name '%s'. Each plugin must have a unique name; "
                "set 'name' explicitly in plugins[] to disambiguate." % name
            )
        seen_names.add(name)

        generic = plugin_config.pop("priority", spec.get("priority"))
        for key in ("pre_priority", "post_priority", "setup_priority"):
            value = plugin_config.get(key, spec.get(key, generic))
            if value is not None:
                plugin_config[key] = value

        plugin_cls = resolve_plugin_class(module_path, alias_table)
        validated = _validate_plugin_config(plugin_cls, plugin_config)
        plugins.append(plugin_cls(name=name, **validated))

    return plugins


def _is_setup_plugin(plugin: BasePlugin) -> bool:
    """True when the plugin overrides BasePlugin.setup."""
    return type(plugin).setup is not BasePlugin.setup


def run_setup_plugins(plugins: List[BasePlugin]) -> None:
    """
    Run setup() on all setup-aware plugins in ascending setup_priority order.

    Inputs:
      - plugins: BasePlugin instances, typically from load_plugins().
    Outputs:
      - None; raises RuntimeError if a plugin with abort_on_failure=True
        (the default) fails.

    Example use:
      >>> run_setup_plugins(load_plugins([]))  # no-op
    """
    entries = [p for p in plugins or [] if _is_setup_plugin(p)]
    # sorted() is stable, so config order breaks ties
    entries.sort(key=lambda p: p.setup_priority)

    for plugin in entries:
        abort_on_failure = bool(plugin.config.get("abort_on_failure", True))
        logger.info(
            "Running setup for plugin %s (setup_priority=%d, abort_on_failure=%s)",
            plugin.name,
            plugin.setup_priority,
            abort_on_failure,
        )
        try:
            plugin.setup()
        except Exception as e:
            logger.error("Setup for plugin %s failed: %s", plugin.name, e, exc_info=True)
            if abort_on_failure:
                raise RuntimeError(f"Setup for plugin {plugin.name} failed") from e
            logger.warning(
                "Continuing startup despite setup failure in plugin %s "
                "because abort_on_failure is False",
                plugin.name,
            )
