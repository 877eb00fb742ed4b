from __future__ import annotations

import argparse
import asyncio
import logging
import os
from dataclasses import replace
from pathlib import Path

import httpx
import uvicorn

from service_monitor.alerts import AlertDispatcher
from service_monitor.config import ConfigError, MonitorConfig, load_config
from service_monitor.scheduler import Monitor
from service_monitor.status_api import create_app
from service_monitor.tracker import StatusTracker


LOGGER = logging.getLogger("service-monitor")


def build_monitor(config: MonitorConfig, http_client: httpx.AsyncClient) -> Monitor:
    tracker = StatusTracker(spec.name for spec in config.services)
    dispatcher = AlertDispatcher.from_config(config.alerts, http_client)
    return Monitor(config.services, tracker, dispatcher)


async def run_once(config: MonitorConfig) -> int:
    async with httpx.AsyncClient() as http_client:
        monitor = build_monitor(config, http_client)
        await monitor.run_once()
    snap = monitor.tracker.snapshot()
    down = sorted(name for name, view in snap.items() if not view["status"])
    LOGGER.info("Check cycle done services=%d down=%s", len(snap), ",".join(down) or "none")
    return 1 if down else 0


async def run_loop(config: MonitorConfig) -> int:
    async with httpx.AsyncClient() as http_client:
        monitor = build_monitor(config, http_client)
        server = uvicorn.Server(
            uvicorn.Config(
                create_app(monitor.tracker),
                host=config.status_host,
                port=config.status_port,
                log_level="warning",
            )
        )
        LOGGER.info(
            "Starting service monitor services=%d status_api=%s:%d",
            len(config.services),
            config.status_host,
            config.status_port,
        )

        monitor_task = asyncio.create_task(monitor.run_forever(), name="monitor")
        server_task = asyncio.create_task(server.serve(), name="status-api")
        try:
            done, _pending = await asyncio.wait({monitor_task, server_task}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            monitor_task.cancel()
            server.should_exit = True
            await asyncio.gather(monitor_task, server_task, return_exceptions=True)

        for task in done:
            if not task.cancelled() and task.exception() is not None:
                LOGGER.error("Task exited with error task=%s error=%s", task.get_name(), task.exception())
                return 1
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="HTTP service health monitor")
    parser.add_argument(
        "--config",
        default=os.getenv("SERVICE_MONITOR_CONFIG", "monitor_config.json"),
        help="Path to JSON or YAML config",
    )
    parser.add_argument("--once", action="store_true", help="Run one check cycle and exit")
    parser.add_argument("--host", default=None, help="Status API bind host (overrides config)")
    parser.add_argument("--port", type=int, default=None, help="Status API port (overrides config)")
    parser.add_argument(
        "--log-level",
        default=os.getenv("LOG_LEVEL", "INFO"),
        help="Logging level (INFO, WARNING, ...)",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    # Webhook URLs and the Telegram bot token live in request URLs.
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    try:
        config = load_config(Path(args.config))
    except ConfigError as exc:
        LOGGER.error("Invalid configuration: %s", exc)
        return 2

    if args.host or args.port is not None:
        config = replace(
            config,
            status_host=args.host or config.status_host,
            status_port=args.port if args.port is not None else config.status_port,
        )

    if args.once:
        return asyncio.run(run_once(config))
    return asyncio.run(run_loop(config))


if __name__ == "__main__":
    raise SystemExit(main())
