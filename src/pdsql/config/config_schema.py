"""JSON Schema-based validation for pdsql YAML configuration.

The schema covers the top-level layout only. Each plugin's ``config`` mapping
is validated afterwards by the plugin's own pydantic model.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

from jsonschema import Draft202012Validator, ValidationError

logger = logging.getLogger(__name__)

_LEVEL_NAMES = ["debug", "info", "warn", "warning", "error", "crit", "critical"]

_PRIORITY = {"type": "integer", "minimum": 1, "maximum": 255}

LOGGING_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "level": {"type": "string", "enum": _LEVEL_NAMES},
        "stderr": {"type": "boolean"},
        "file": {"type": "string"},
        "syslog": {
            "oneOf": [
                {"type": "boolean"},
                {
                    "type": "object",
                    "properties": {
                        "address": {"type": "string"},
                        "facility": {"type": "string"},
                    },
                    "additionalProperties": False,
                },
            ]
        },
    },
    "additionalProperties": False,
}

CONFIG_SCHEMA: Dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "title": "pdsql configuration",
    "type": "object",
    "properties": {
        "logging": LOGGING_SCHEMA,
        "listen": {
            "type": "object",
            "properties": {
                "host": {"type": "string", "minLength": 1},
                "port": {"type": "integer", "minimum": 0, "maximum": 65535},
            },
            "additionalProperties": False,
        },
        "server": {
            "type": "object",
            "properties": {
                "fallback_rcode": {
                    "type": "string",
                    "enum": ["SERVFAIL", "NXDOMAIN", "REFUSED", "NOERROR"],
                },
            },
            "additionalProperties": False,
        },
        "plugins": {
            "type": "array",
            "items": {
                "oneOf": [
                    {"type": "string", "minLength": 1},
                    {
                        "type": "object",
                        "required": ["module"],
                        "properties": {
                            "module": {"type": "string", "minLength": 1},
                            "name": {"type": "string", "minLength": 1},
                            "enabled": {"type": "boolean"},
                            "comment": {"type": "string"},
                            "priority": _PRIORITY,
                            "pre_priority": _PRIORITY,
                            "post_priority": _PRIORITY,
                            "setup_priority": _PRIORITY,
                            "config": {"type": "object"},
                        },
                        "additionalProperties": False,
                    },
                ]
            },
        },
    },
    "additionalProperties": False,
}


def _format_errors(errors: List[ValidationError], *, config_path: Optional[str]) -> str:
    header = f"Invalid configuration in {config_path or '<config dict>'}:"
    lines: List[str] = [header]
    for err in errors:
        instance_path = "/".join(str(p) for p in err.path) or "<root>"
        schema_path = "/".join(str(p) for p in err.schema_path)
        lines.append(f"- {instance_path}: {err.message} (schema: {schema_path})")
    return "\n".join(lines)


def _split_extra_property_errors(
    errors: List[ValidationError],
) -> Tuple[List[ValidationError], List[ValidationError]]:
    """Partition errors into (unexpected-property errors, everything else)."""
    extra: List[ValidationError] = []
    other: List[ValidationError] = []
    for err in errors:
        if getattr(err, "validator", None) in {
            "additionalProperties",
            "unevaluatedProperties",
        }:
            extra.append(err)
        else:
            other.append(err)
    return extra, other


def validate_config(
    cfg: Dict[str, Any],
    *,
    schema: Optional[Dict[str, Any]] = None,
    config_path: Optional[str] = None,
    unknown_keys: str = "error",
) -> None:
    """Brief: Validate a parsed YAML configuration mapping against JSON Schema.

    Inputs:
      - cfg: Dict loaded from YAML.
      - schema: Optional schema override; defaults to CONFIG_SCHEMA.
      - config_path: Optional path of the YAML file, used in messages only.
      - unknown_keys: "error" (default), "warn" or "ignore" for keys the
        schema does not describe.

    Outputs:
      - None on success.

    Raises:
      - ValueError: On any validation failure (and on unknown keys unless the
        policy says otherwise). The message lists every offending path.

    Example:
      >>> validate_config({"listen": {"host": "127.0.0.1", "port": 5333}})
    """
    if unknown_keys not in {"ignore", "warn", "error"}:
        raise ValueError(
            f"unknown_keys policy must be 'ignore', 'warn', or 'error', got {unknown_keys!r}"
        )

    validator = Draft202012Validator(schema or CONFIG_SCHEMA)
    all_errors = sorted(validator.iter_errors(cfg), key=lambda e: list(e.path))
    if not all_errors:
        return None

    extra_errors, other_errors = _split_extra_property_errors(all_errors)
    if other_errors:
        raise ValueError(
            _format_errors(other_errors + extra_errors, config_path=config_path)
        )

    message = _format_errors(extra_errors, config_path=config_path)
    if unknown_keys == "ignore":
        return None
    if unknown_keys == "warn":
        logger.warning(message)
        return None
    raise ValueError(message)
