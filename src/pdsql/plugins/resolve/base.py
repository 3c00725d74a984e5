from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, ClassVar, Dict, List, Optional, Sequence, Union, final

from dnslib import RR

from pdsql.config.logging_config import build_handlers, parse_level
from pdsql.query import qtype_mnemonic

logger = logging.getLogger(__name__)


@dataclass
class PluginDecision:
    """
    Brief: Represents a decision made by a plugin.

    Inputs:
      - action: "override" to answer the query with ``response``.
      - response: Packed DNS response used when action == "override".
      - plugin_label: Optional name of the plugin instance that decided,
        used in log lines.

    Outputs:
      - PluginDecision instance with attributes populated.
    """

    action: str
    response: Optional[bytes] = None
    plugin_label: Optional[str] = None


class PluginContext:
    """Brief: Per-query context shared by every plugin in the chain.

    Inputs:
      - client_ip: str IP address of the requesting client.

    Attributes:
      - client_ip: Requestor's IP address.
      - qname: Question name once the pipeline has parsed the request.
      - additional: RRs that delegating plugins want attached to the
        additional section of whichever response is finally sent.

    Example use:
        >>> ctx = PluginContext(client_ip="192.0.2.1")
        >>> ctx.additional
        []
    """

    @final
    def __init__(self, client_ip: str) -> None:
        self.client_ip = client_ip
        self.qname: Optional[str] = None
        self.additional: List[RR] = []


class BasePlugin:
    """Brief: Base class for all resolve plugins.

    Plugins control execution order using:
      - pre_priority (for pre_resolve hooks; lower runs first)
      - post_priority (reserved for response hooks; lower runs first)
      - setup_priority (for setup() hooks; lower runs first)

    Inputs:
      - name: Optional identifier used in logs. Defaults to the first alias
        or the class name.
      - **config: Plugin configuration, including the optional base keys
        pre_priority, post_priority, setup_priority, abort_on_failure,
        logging and target_qtypes.

    Outputs:
      - Initialized plugin instance.

    Example use:
        >>> class MyPlugin(BasePlugin):
        ...     def pre_resolve(self, qname, qtype, req, ctx):
        ...         return None
        >>> plugin = MyPlugin(name="mine", pre_priority=25)
        >>> plugin.pre_priority
        25
    """

    pre_priority: ClassVar[int] = 100
    post_priority: ClassVar[int] = 100
    setup_priority: ClassVar[int] = 100
    aliases: ClassVar[Sequence[str]] = ()
    target_qtypes: ClassVar[Sequence[str]] = ("*",)

    @classmethod
    def get_aliases(cls) -> Sequence[str]:
        return tuple(getattr(cls, "aliases", ()))

    @classmethod
    def get_config_model(cls):
        """Return the pydantic model validating this plugin's config, or None."""
        return None

    @final
    def __init__(self, name: Optional[str] = None, **config: Any) -> None:
        """Initialize name, config, logger, priorities and qtype targeting.

        Priority values are clamped to [1, 255]; invalid values fall back to
        the class default. When setup_priority is absent, pre_priority from
        config is used for it.
        """
        if name is not None:
            self.name = str(name)
        else:
            aliases = list(self.get_aliases())
            self.name = str(aliases[0]) if aliases else self.__class__.__name__

        self.config: Dict[str, Any] = config
        self.logger = logging.getLogger(self.__class__.__module__)
        logging_cfg = config.get("logging")
        if isinstance(logging_cfg, dict):
            self._init_instance_logger(logging_cfg)

        cls = self.__class__
        self.pre_priority = self._parse_priority_value(
            config.get("pre_priority", cls.pre_priority), "pre_priority", cls.pre_priority
        )
        self.post_priority = self._parse_priority_value(
            config.get("post_priority", cls.post_priority), "post_priority", cls.post_priority
        )
        self.setup_priority = self._parse_priority_value(
            config.get("setup_priority", config.get("pre_priority", cls.setup_priority)),
            "setup_priority",
            cls.setup_priority,
        )
        self._target_qtypes = self._normalize_qtype_list(
            config.get("target_qtypes", cls.target_qtypes)
        )
        logger.debug("loaded plugin %s (%s)", self.name, cls.__name__)

    def _init_instance_logger(self, logging_cfg: Dict[str, object]) -> None:
        """Give this plugin's module logger its own level and handlers.

        Accepts the same keys as the root ``logging:`` block.
        """
        plugin_logger = logging.getLogger(self.__class__.__module__)
        plugin_logger.setLevel(parse_level(logging_cfg.get("level", "info")))
        for handler in list(plugin_logger.handlers):
            plugin_logger.removeHandler(handler)
        try:
            handlers = build_handlers(logging_cfg)
        except OSError:  # pragma: no cover - environment-specific
            logger.warning("Failed to configure logging for plugin %s", self.name)
            return
        for handler in handlers:
            plugin_logger.addHandler(handler)
        plugin_logger.propagate = False
        self.logger = plugin_logger

    @staticmethod
    def _normalize_qtype_list(raw: object) -> List[str]:
        """Normalize target_qtypes into upper-case mnemonics; ["*"] means all."""
        if raw is None:
            return ["*"]
        if isinstance(raw, str):
            entries = [raw]
        elif isinstance(raw, (list, tuple)):
            entries = [str(x) for x in raw]
        else:
            logger.warning(
                "BasePlugin: ignoring invalid target_qtypes value %r (expected str or list)",
                raw,
            )
            return ["*"]

        normalized: List[str] = []
        for entry in entries:
            text = entry.strip()
            if not text:
                continue
            if text == "*":
                return ["*"]
            normalized.append(text.upper())
        return normalized or ["*"]

    @staticmethod
    def _parse_priority_value(value: object, key: str, default: int = 100) -> int:
        """Brief: Parse and clamp a priority value to the inclusive range [1, 255].

        Example:
            >>> BasePlugin._parse_priority_value("25", "pre_priority")
            25
            >>> BasePlugin._parse_priority_value(300, "post_priority")
            255
        """
        try:
            val = int(value)  # type: ignore[arg-type]
        except (ValueError, TypeError):
            logger.warning("Invalid %s %r; using default %d", key, value, default)
            return default

        if val < 1:
            logger.warning("%s below 1; clamping to 1", key)
            return 1
        if val > 255:
            logger.warning("%s above 255; clamping to 255", key)
            return 255
        return val

    def targets_qtype(self, qtype: Union[int, str]) -> bool:
        """True when this plugin should run for ``qtype``."""
        if "*" in self._target_qtypes:
            return True
        return qtype_mnemonic(qtype) in self._target_qtypes

    def setup(self) -> None:
        """Brief: One-time initialization run before listeners start.

        Notes:
          - Base implementation is a no-op. The entrypoint calls setup() on
            plugins that override it, in ascending setup_priority order.
        """
        return None

    def pre_resolve(
        self, qname: str, qtype: int, req: bytes, ctx: PluginContext
    ) -> Optional[PluginDecision]:
        """Brief: Hook that runs for every query this plugin targets.

        Inputs:
          - qname: The queried domain name.
          - qtype: The query type code.
          - req: The raw DNS request.
          - ctx: The plugin context.

        Outputs:
          - PluginDecision to answer the query, or None to hand it to the
            next plugin (default). Raising fails the query with SERVFAIL.

        Example use:
            >>> BasePlugin().pre_resolve("example.com", 1, b"", PluginContext("127.0.0.1")) is None
            True
        """
        return None

    def close(self) -> None:
        """Release resources acquired in setup(); default is a no-op."""
        return None


def plugin_aliases(*aliases: str):
    """Brief: Decorator to set aliases on a plugin class for registry discovery.

    Example:
        >>> @plugin_aliases("sql", "pdns")
        ... class SQLBackend(BasePlugin):
        ...     pass
        >>> SQLBackend.aliases
        ('sql', 'pdns')
    """

    def _wrap(cls: type) -> type:
        cls.aliases = tuple(aliases)
        return cls

    return _wrap
