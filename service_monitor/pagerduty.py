from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import httpx

from service_monitor.config import PagerDutyConfig


PAGERDUTY_EVENTS_URL = "https://events.pagerduty.com/v2/enqueue"


def dedup_key_for(service: str) -> str:
    # Trigger and resolve must share a key so the resolve closes the right incident.
    return f"service-monitor/{service}"


def build_trigger_event(
    config: PagerDutyConfig, *, service: str, error: str, occurred_at: datetime
) -> dict[str, Any]:
    return {
        "routing_key": config.service_key,
        "event_action": "trigger",
        "dedup_key": dedup_key_for(service),
        "payload": {
            "summary": f"Service {service} is DOWN - {error}"[:1024],
            "source": service,
            "severity": "critical",
            "timestamp": occurred_at.astimezone(timezone.utc).isoformat(),
            "custom_details": {"error": error},
        },
    }


def build_resolve_event(config: PagerDutyConfig, *, service: str) -> dict[str, Any]:
    return {
        "routing_key": config.service_key,
        "event_action": "resolve",
        "dedup_key": dedup_key_for(service),
    }


async def send_pagerduty_event(
    client: httpx.AsyncClient,
    config: PagerDutyConfig,
    event: dict[str, Any],
    *,
    url: str = PAGERDUTY_EVENTS_URL,
) -> tuple[bool, dict[str, Any]]:
    headers = {"Content-Type": "application/json"}
    if config.api_key:
        headers["Authorization"] = f"Token token={config.api_key}"
    try:
        resp = await client.post(url, json=event, headers=headers, timeout=15.0)
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        return False, {"ok": False, "error": f"{type(e).__name__}: {e}"}

    try:
        data = resp.json()
    except ValueError:
        data = {"raw": (resp.text or "")[:300]}
    if not isinstance(data, dict):
        data = {"raw": data}

    if resp.status_code >= 400:
        return False, {"ok": False, "status_code": resp.status_code, "error": data}
    return True, {"ok": True, "status_code": resp.status_code, **data}


async def trigger_incident(
    client: httpx.AsyncClient,
    config: PagerDutyConfig,
    *,
    service: str,
    error: str,
    occurred_at: datetime,
    url: str = PAGERDUTY_EVENTS_URL,
) -> tuple[bool, dict[str, Any]]:
    event = build_trigger_event(config, service=service, error=error, occurred_at=occurred_at)
    return await send_pagerduty_event(client, config, event, url=url)


async def resolve_incident(
    client: httpx.AsyncClient,
    config: PagerDutyConfig,
    *,
    service: str,
    url: str = PAGERDUTY_EVENTS_URL,
) -> tuple[bool, dict[str, Any]]:
    return await send_pagerduty_event(client, config, build_resolve_event(config, service=service), url=url)
