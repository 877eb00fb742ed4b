from __future__ import annotations

from typing import Any

import httpx

from service_monitor.config import SlackConfig


def _redact(text: str, config: SlackConfig) -> str:
    # Incoming webhook URLs are bearer secrets.
    if config.webhook_url:
        return text.replace(config.webhook_url, "<redacted-webhook>")
    return text


async def post_slack_message(
    client: httpx.AsyncClient, config: SlackConfig, text: str, *, channel: str | None = None
) -> tuple[bool, dict[str, Any]]:
    payload: dict[str, Any] = {"text": text}
    if channel:
        payload["channel"] = channel
    try:
        resp = await client.post(config.webhook_url, json=payload, timeout=15.0)
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        return False, {"ok": False, "error": _redact(f"{type(e).__name__}: {e}", config)}

    body = (resp.text or "").strip()[:300]
    if resp.status_code >= 400:
        return False, {"ok": False, "status_code": resp.status_code, "error": body or "http_error"}
    return True, {"ok": True, "status_code": resp.status_code}


async def send_slack_alert(
    client: httpx.AsyncClient, config: SlackConfig, text: str
) -> tuple[bool, list[dict[str, Any]]]:
    """
    Post to the webhook once, or once per configured channel override.
    """
    channels: list[str | None] = list(config.channels) or [None]
    ok_all = True
    responses: list[dict[str, Any]] = []
    for channel in channels:
        ok, resp = await post_slack_message(client, config, text, channel=channel)
        ok_all = ok_all and ok
        responses.append(resp)
    return ok_all, responses
