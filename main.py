#!/usr/bin/env python3
"""Homelab Portal console client.

Connects to a running portal (REST API + WebSocket hub) and logs panel
updates as they arrive. Useful for checking that channels are live
without opening the dashboard.

Usage:
    python3 main.py                              # All panels, polling
    python3 main.py --mode websocket             # Prefer live push
    python3 main.py --panels system,docker       # Only some panels
    python3 main.py --log-level DEBUG            # Verbose logging
"""

__version__ = "1.2.0"

import argparse
import json
import logging
import threading

from client import PortalClient, WEBSOCKET, POLLING
from config import PANEL_TO_CHANNEL, load_config

logger = logging.getLogger(__name__)


def parse_args():
    parser = argparse.ArgumentParser(
        description="Homelab Portal console client",
    )
    parser.add_argument("--api-url", default=None, help="REST API base URL")
    parser.add_argument("--ws-url", default=None, help="WebSocket hub URL")
    parser.add_argument(
        "--panels", default=",".join(PANEL_TO_CHANNEL),
        help="Comma-separated panels to show (default: all)",
    )
    parser.add_argument(
        "--mode", default=None, choices=[POLLING, WEBSOCKET],
        help="Data mode for every panel (default: per-panel config, else polling)",
    )
    parser.add_argument(
        "--config", default="portal.yaml",
        help="Path to portal YAML config (default: portal.yaml)",
    )
    parser.add_argument(
        "--log-level", default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Set the logging verbosity (default: INFO)",
    )
    parser.add_argument(
        "--version", action="version",
        version=f"Homelab Portal {__version__}",
    )
    return parser.parse_args()


def setup_logging(level_name: str) -> None:
    """Configure root logger with a consistent format."""
    level = getattr(logging, level_name.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s  %(levelname)-7s  %(name)s  %(message)s",
        datefmt="%H:%M:%S",
    )


def summarize(data, limit: int = 120) -> str:
    text = json.dumps(data, default=str)
    return text if len(text) <= limit else text[:limit] + "..."


def log_update(client: PortalClient):
    def on_update(source):
        snap = source.snapshot()
        if snap["error"]:
            logger.warning("[%s] error: %s", source.panel_id, snap["error"])
            return
        if source.channel == "metrics:network" and client.network_speed.speed:
            speed = client.network_speed.speed
            logger.info("[%s] down %.1f KB/s  up %.1f KB/s", source.panel_id,
                        speed["downloadSpeed"] / 1024, speed["uploadSpeed"] / 1024)
            return
        logger.info("[%s%s] %s", source.panel_id, " live" if snap["isLive"] else "",
                    summarize(snap["data"]))
    return on_update


def main():
    args = parse_args()
    setup_logging(args.log_level)

    settings = load_config(args.config)["client"]
    if args.api_url:
        settings["api_url"] = args.api_url
    if args.ws_url:
        settings["ws_url"] = args.ws_url

    logger.info("Homelab Portal client v%s -> %s", __version__, settings["api_url"])

    client = PortalClient.from_config(settings)
    on_update = log_update(client)
    panel_options = settings.get("panels") or {}

    for panel_id in [p.strip() for p in args.panels.split(",") if p.strip()]:
        options = dict(panel_options.get(panel_id) or {})
        if args.mode:
            options["mode"] = args.mode
        try:
            client.panel(panel_id, on_update=on_update, **options)
        except (ValueError, TypeError) as exc:
            logger.error("Skipping panel %s: %s", panel_id, exc)

    client.start()

    stop = threading.Event()
    try:
        while not stop.wait(1.0):
            pass
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    finally:
        client.close()
        logger.info("Shutdown complete")


if __name__ == "__main__":
    main()
