from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Protocol

import httpx

from service_monitor.config import AlertsConfig, PagerDutyConfig, ServiceSpec, SlackConfig
from service_monitor.pagerduty import PAGERDUTY_EVENTS_URL, resolve_incident, trigger_incident
from service_monitor.slack import send_slack_alert
from service_monitor.telegram import TelegramConfig, send_telegram_alert
from service_monitor.tracker import OutageStarted, Recovered, TransitionEvent


LOGGER = logging.getLogger("service-monitor")


def format_duration(delta: timedelta) -> str:
    seconds = max(0, int(round(delta.total_seconds())))
    days, rem = divmod(seconds, 86400)
    hours, rem = divmod(rem, 3600)
    minutes, rem = divmod(rem, 60)
    if days:
        return f"{days}d {hours:02}h {minutes:02}m"
    if hours:
        return f"{hours}h {minutes:02}m"
    return f"{minutes}m {rem:02}s"


def _format_ts(value: datetime) -> str:
    return value.astimezone(timezone.utc).replace(microsecond=0).isoformat()


def build_outage_message(event: OutageStarted, spec: ServiceSpec) -> str:
    lines = [f"🚨 ALERT: Service {event.service} is DOWN ❌", f"Error: {event.error.strip()[:500]}"]
    lines.append(f"Target: {spec.method} {spec.url}")
    if spec.critical:
        lines.append("Critical: yes (paging)")
    lines.append(f"Time: {_format_ts(event.started_at)}")
    return "\n".join(lines).strip()


def build_recovery_message(event: Recovered) -> str:
    return "\n".join(
        [
            f"✅ Service {event.service} has RECOVERED",
            f"Downtime: {format_duration(event.outage_duration)}",
            f"Time: {_format_ts(event.recovered_at)}",
        ]
    ).strip()


class ChatBackend(Protocol):
    name: str

    def send(self, text: str) -> Awaitable[tuple[bool, Any]]: ...


class PagerBackend(Protocol):
    name: str

    def trigger(self, *, service: str, error: str, occurred_at: datetime) -> Awaitable[tuple[bool, Any]]: ...

    def resolve(self, *, service: str) -> Awaitable[tuple[bool, Any]]: ...


@dataclass
class SlackBackend:
    client: httpx.AsyncClient
    config: SlackConfig
    name: str = "slack"

    async def send(self, text: str) -> tuple[bool, Any]:
        return await send_slack_alert(self.client, self.config, text)


@dataclass
class TelegramBackend:
    client: httpx.AsyncClient
    config: TelegramConfig
    name: str = "telegram"

    async def send(self, text: str) -> tuple[bool, Any]:
        return await send_telegram_alert(self.client, self.config, text)


@dataclass
class PagerDutyBackend:
    client: httpx.AsyncClient
    config: PagerDutyConfig
    events_url: str = PAGERDUTY_EVENTS_URL
    name: str = "pagerduty"

    async def trigger(self, *, service: str, error: str, occurred_at: datetime) -> tuple[bool, Any]:
        return await trigger_incident(
            self.client, self.config, service=service, error=error, occurred_at=occurred_at, url=self.events_url
        )

    async def resolve(self, *, service: str) -> tuple[bool, Any]:
        return await resolve_incident(self.client, self.config, service=service, url=self.events_url)


class AlertDispatcher:
    """
    Forwards tracker transitions to notification backends.

    Every backend call is best-effort and isolated: a failing backend is
    logged and never affects the others or the caller.
    """

    def __init__(self, chat_backends: list[ChatBackend] | None = None, pager: PagerBackend | None = None) -> None:
        self.chat_backends: list[ChatBackend] = list(chat_backends or [])
        self.pager = pager

    @classmethod
    def from_config(cls, alerts: AlertsConfig, client: httpx.AsyncClient) -> "AlertDispatcher":
        chat: list[ChatBackend] = []
        if alerts.slack.configured:
            chat.append(SlackBackend(client=client, config=alerts.slack))
        if alerts.telegram is not None:
            chat.append(TelegramBackend(client=client, config=alerts.telegram))
        pager: PagerBackend | None = None
        if alerts.pagerduty.configured:
            pager = PagerDutyBackend(client=client, config=alerts.pagerduty)

        LOGGER.info(
            "Alert backends chat=%s pager=%s",
            ",".join(b.name for b in chat) or "none",
            pager.name if pager else "none",
        )
        return cls(chat_backends=chat, pager=pager)

    async def dispatch(self, event: TransitionEvent, spec: ServiceSpec) -> dict[str, bool]:
        calls: list[tuple[str, Awaitable[tuple[bool, Any]]]] = []
        if isinstance(event, OutageStarted):
            text = build_outage_message(event, spec)
            calls.extend((b.name, b.send(text)) for b in self.chat_backends)
            if spec.critical and self.pager is not None:
                calls.append(
                    (
                        self.pager.name,
                        self.pager.trigger(service=event.service, error=event.error, occurred_at=event.started_at),
                    )
                )
        elif isinstance(event, Recovered):
            text = build_recovery_message(event)
            calls.extend((b.name, b.send(text)) for b in self.chat_backends)
            if self.pager is not None:
                calls.append((self.pager.name, self.pager.resolve(service=event.service)))
        else:
            raise TypeError(f"Unsupported event type: {type(event).__name__}")

        if not calls:
            LOGGER.info("No alert backends configured; skipping service=%s event=%s", spec.name, type(event).__name__)
            return {}

        results = await asyncio.gather(*(self._call(name, spec.name, event, aw) for name, aw in calls))
        return {name: ok for (name, _aw), ok in zip(calls, results)}

    async def _call(
        self, backend: str, service: str, event: TransitionEvent, aw: Awaitable[tuple[bool, Any]]
    ) -> bool:
        kind = type(event).__name__
        try:
            ok, info = await aw
        except Exception:
            LOGGER.exception("Alert backend crashed backend=%s service=%s event=%s", backend, service, kind)
            return False
        if ok:
            LOGGER.info("Alert sent backend=%s service=%s event=%s", backend, service, kind)
        else:
            LOGGER.warning("Alert failed backend=%s service=%s event=%s info=%s", backend, service, kind, info)
        return bool(ok)
