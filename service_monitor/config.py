from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import yaml

from service_monitor.telegram import TelegramConfig


class ConfigError(ValueError):
    """Raised for unreadable or malformed monitor configuration."""


@dataclass(frozen=True)
class ServiceSpec:
    name: str
    url: str
    method: str = "GET"
    headers: Mapping[str, str] = field(default_factory=dict)
    expected_status: int = 200
    # 0 disables the per-attempt timeout.
    timeout_seconds: float = 10.0
    check_interval_seconds: float = 60.0
    retry_attempts: int = 3
    retry_delay_seconds: float = 1.0
    critical: bool = False

    def __post_init__(self) -> None:
        if not str(self.name or "").strip():
            raise ValueError("service name must be non-empty")
        if not str(self.url or "").startswith(("http://", "https://")):
            raise ValueError(f"service {self.name!r}: url must start with http:// or https://")
        if self.timeout_seconds < 0:
            raise ValueError(f"service {self.name!r}: timeout must be >= 0")
        if self.check_interval_seconds < 0:
            raise ValueError(f"service {self.name!r}: check_interval must be >= 0")
        if self.retry_delay_seconds < 0:
            raise ValueError(f"service {self.name!r}: retry_delay must be >= 0")
        if self.retry_attempts < 1:
            raise ValueError(f"service {self.name!r}: retry_attempts must be >= 1")

    def expected_status_ok(self, status_code: int) -> bool:
        return int(status_code) == int(self.expected_status)


@dataclass(frozen=True)
class SlackConfig:
    webhook_url: str = ""
    channels: tuple[str, ...] = ()

    @property
    def configured(self) -> bool:
        return bool(self.webhook_url)


@dataclass(frozen=True)
class PagerDutyConfig:
    # Events API v2 routing key (the "integration key" of a PagerDuty service).
    service_key: str = ""
    api_key: str = ""

    @property
    def configured(self) -> bool:
        return bool(self.service_key)


@dataclass(frozen=True)
class AlertsConfig:
    slack: SlackConfig = field(default_factory=SlackConfig)
    telegram: TelegramConfig | None = None
    pagerduty: PagerDutyConfig = field(default_factory=PagerDutyConfig)


@dataclass(frozen=True)
class MonitorConfig:
    services: tuple[ServiceSpec, ...]
    alerts: AlertsConfig = field(default_factory=AlertsConfig)
    status_host: str = "0.0.0.0"
    status_port: int = 8080


def _str_or_env(value: Any, env_name: str) -> str:
    s = str(value or "").strip()
    if s:
        return s
    return str(os.getenv(env_name) or "").strip()


def _get_section(data: dict[str, Any], key: str) -> dict[str, Any]:
    section = data.get(key) or {}
    if not isinstance(section, dict):
        raise ConfigError(f"{key} must be a mapping, got {type(section).__name__}")
    return section


def _first_present(entry: dict[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if entry.get(key) is not None:
            return entry[key]
    return default


def _coerce_bool(value: Any, *, where: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    s = str(value).strip().lower()
    if s in {"1", "true", "yes", "y", "on"}:
        return True
    if s in {"0", "false", "no", "n", "off"}:
        return False
    raise ConfigError(f"{where} must be a boolean, got {value!r}")


def parse_service_entry(idx: int, entry: Any) -> ServiceSpec:
    if not isinstance(entry, dict):
        raise ConfigError(f"services[{idx}] must be a mapping, got {type(entry).__name__}")

    headers_raw = entry.get("headers") or {}
    if not isinstance(headers_raw, dict):
        raise ConfigError(f"services[{idx}].headers must be a mapping")
    for key, value in headers_raw.items():
        if value is None:
            raise ConfigError(f"services[{idx}].headers.{key} has no value")

    critical = _coerce_bool(
        _first_present(entry, "critical", "critical_service", default=False),
        where=f"services[{idx}].critical_service",
    )

    try:
        return ServiceSpec(
            name=str(entry.get("name") or "").strip(),
            url=str(entry.get("url") or "").strip(),
            method=str(entry.get("method") or "GET").strip().upper(),
            headers={str(k): str(v) for k, v in headers_raw.items()},
            expected_status=int(entry.get("expected_status", 200)),
            timeout_seconds=float(_first_present(entry, "timeout_seconds", "timeout", default=10.0)),
            check_interval_seconds=float(
                _first_present(entry, "check_interval_seconds", "check_interval", default=60.0)
            ),
            retry_attempts=int(entry.get("retry_attempts", 3)),
            retry_delay_seconds=float(_first_present(entry, "retry_delay_seconds", "retry_delay", default=1.0)),
            critical=critical,
        )
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"services[{idx}]: {exc}") from exc


def parse_alerts(data: dict[str, Any]) -> AlertsConfig:
    slack_raw = _get_section(data, "slack")
    channels = slack_raw.get("channels") or []
    if not isinstance(channels, list):
        raise ConfigError("alerts.slack.channels must be a list")
    slack = SlackConfig(
        webhook_url=_str_or_env(slack_raw.get("webhook_url"), "SLACK_WEBHOOK_URL"),
        channels=tuple(str(c).strip() for c in channels if str(c).strip()),
    )

    telegram_raw = _get_section(data, "telegram")
    bot_token = _str_or_env(telegram_raw.get("bot_token"), "TELEGRAM_BOT_TOKEN")
    chat_id = _str_or_env(telegram_raw.get("chat_id"), "TELEGRAM_CHAT_ID")
    telegram = TelegramConfig(bot_token=bot_token, chat_id=chat_id) if bot_token and chat_id else None

    pagerduty_raw = _get_section(data, "pagerduty")
    pagerduty = PagerDutyConfig(
        service_key=_str_or_env(pagerduty_raw.get("service_key"), "PAGERDUTY_SERVICE_KEY"),
        api_key=_str_or_env(pagerduty_raw.get("api_key"), "PAGERDUTY_API_KEY"),
    )
    return AlertsConfig(slack=slack, telegram=telegram, pagerduty=pagerduty)


def parse_config(data: Any) -> MonitorConfig:
    if not isinstance(data, dict):
        raise ConfigError("Config must be a mapping")

    services_raw = data.get("services")
    if not isinstance(services_raw, list) or not services_raw:
        raise ConfigError("Config must contain a non-empty 'services' list")

    services: list[ServiceSpec] = []
    seen: set[str] = set()
    for idx, entry in enumerate(services_raw):
        spec = parse_service_entry(idx, entry)
        if spec.name in seen:
            raise ConfigError(f"services[{idx}]: duplicate service name {spec.name!r}")
        seen.add(spec.name)
        services.append(spec)

    alerts = parse_alerts(_get_section(data, "alerts"))

    api_raw = _get_section(data, "status_api")
    host = _str_or_env(api_raw.get("host"), "SERVICE_MONITOR_HOST") or "0.0.0.0"
    try:
        port = int(_str_or_env(api_raw.get("port"), "SERVICE_MONITOR_PORT") or 8080)
    except ValueError as exc:
        raise ConfigError(f"status_api.port: {exc}") from exc

    return MonitorConfig(services=tuple(services), alerts=alerts, status_host=host, status_port=port)


def load_config(path: Path) -> MonitorConfig:
    try:
        with open(path, "r", encoding="utf-8") as f:
            if path.suffix.lower() == ".json":
                data = json.load(f)
            else:
                data = yaml.safe_load(f) or {}
    except OSError as exc:
        raise ConfigError(f"error reading config path={path}: {exc}") from exc
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ConfigError(f"error parsing config path={path}: {exc}") from exc
    return parse_config(data)
