import argparse
import logging
import signal
import threading
from typing import List, Optional

from .config.config_parser import load_plugins, parse_config_file, run_setup_plugins
from .config.logging_config import init_logging
from .servers.server import DNSServer

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 5333


def _close_plugins(plugins, logger: logging.Logger) -> None:
    for plugin in plugins:
        try:
            plugin.close()
        except Exception:
            logger.exception("Error while closing plugin %s", plugin.name)


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the DNS server.
    Parses arguments, loads configuration, sets up plugins, and serves UDP
    until interrupted or sent SIGTERM.

    Args:
        argv: Command-line arguments.

    Returns:
        An exit code: 0 on clean shutdown, 1 on configuration, setup or
        bind failures.

    Example use:
        CLI:
            pdsql --config config.yaml
            python -m pdsql --config config.yaml
    """
    parser = argparse.ArgumentParser(
        description="DNS server answering from a PowerDNS generic-SQL database"
    )
    parser.add_argument("--config", default="config.yaml", help="Path to YAML config")
    args = parser.parse_args(argv)

    try:
        cfg = parse_config_file(args.config)
    except (OSError, ValueError) as exc:
        print(str(exc))
        return 1

    init_logging(cfg.get("logging"))
    logger = logging.getLogger("pdsql.main")
    logger.info("Loaded config from %s", args.config)

    try:
        plugins = load_plugins(cfg.get("plugins", []))
    except (AttributeError, ImportError, KeyError, TypeError, ValueError) as exc:
        logger.error("Failed to load plugins: %s", exc)
        print(str(exc))
        return 1
    logger.info("Loaded %d plugins: %s", len(plugins), [p.name for p in plugins])

    try:
        run_setup_plugins(plugins)
    except RuntimeError as e:
        logger.error("Plugin setup failed: %s", e)
        _close_plugins(plugins, logger)
        return 1

    listen_cfg = cfg.get("listen", {}) or {}
    host = str(listen_cfg.get("host", DEFAULT_HOST))
    port = int(listen_cfg.get("port", DEFAULT_PORT))
    server_cfg = cfg.get("server", {}) or {}

    try:
        server = DNSServer(
            host,
            port,
            plugins,
            fallback_rcode=server_cfg.get("fallback_rcode", "SERVFAIL"),
        )
    except OSError as e:
        logger.error("Failed to start UDP listener on %s:%d: %s", host, port, e)
        _close_plugins(plugins, logger)
        return 1

    shutdown_event = threading.Event()

    def _on_sigterm(signum, frame):  # pragma: no cover - signal delivery
        logger.info("Received signal %d, shutting down", signum)
        shutdown_event.set()

    try:
        signal.signal(signal.SIGTERM, _on_sigterm)
    except ValueError:
        # Not the main thread (embedded use); rely on KeyboardInterrupt.
        pass

    udp_thread = threading.Thread(target=server.serve_forever, name="pdsql-udp", daemon=True)
    udp_thread.start()
    logger.info("Listening for DNS over UDP on %s:%d", host, port)

    try:
        while not shutdown_event.wait(1.0):
            if not udp_thread.is_alive():
                break
    except KeyboardInterrupt:
        logger.info("Received interrupt, shutting down")
    finally:
        server.stop()
        udp_thread.join(timeout=5.0)
        _close_plugins(plugins, logger)

    return 0


if __name__ == "__main__":
    raise SystemExit(main())  # pragma: no cover
