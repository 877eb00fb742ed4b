from __future__ import annotations

from dataclasses import dataclass

import httpx


# Telegram rejects messages above 4096 chars; alerts carry arbitrary error text.
TELEGRAM_MAX_MESSAGE_LEN = 3900


@dataclass(frozen=True)
class TelegramConfig:
    bot_token: str
    chat_id: str


def split_alert_text(text: str, *, max_len: int = TELEGRAM_MAX_MESSAGE_LEN) -> list[str]:
    """Split on line breaks where possible so no part exceeds ``max_len``."""
    remaining = (text or "").strip()
    if not remaining:
        return [""]

    max_len = max(1, int(max_len))
    parts: list[str] = []
    while len(remaining) > max_len:
        cut = remaining.rfind("\n", 0, max_len + 1)
        # Fall back to a hard cut when the last newline would leave a tiny part.
        if cut < max_len // 2:
            cut = max_len
        parts.append(remaining[:cut].rstrip())
        remaining = remaining[cut:].lstrip()
    if remaining:
        parts.append(remaining)
    return parts


def _redact(text: str, config: TelegramConfig) -> str:
    if config.bot_token:
        return text.replace(config.bot_token, "<redacted>")
    return text


async def send_telegram_message(
    client: httpx.AsyncClient, config: TelegramConfig, text: str
) -> tuple[bool, dict]:
    url = f"https://api.telegram.org/bot{config.bot_token}/sendMessage"
    payload = {"chat_id": config.chat_id, "text": text, "disable_web_page_preview": True}
    try:
        resp = await client.post(url, json=payload, timeout=15.0)
        data = resp.json()
    except (httpx.HTTPError, ValueError) as e:
        return False, {"ok": False, "error": _redact(f"{type(e).__name__}: {e}", config)}
    if not isinstance(data, dict):
        return False, {"ok": False, "error": f"unexpected response status={resp.status_code}"}
    return bool(data.get("ok")), data


async def send_telegram_alert(
    client: httpx.AsyncClient,
    config: TelegramConfig,
    text: str,
    *,
    max_len: int = TELEGRAM_MAX_MESSAGE_LEN,
) -> tuple[bool, list[dict]]:
    ok_all = True
    responses: list[dict] = []
    for part in split_alert_text(text, max_len=max_len):
        ok, resp = await send_telegram_message(client, config, part)
        ok_all = ok_all and ok
        responses.append(resp)
    return ok_all, responses
