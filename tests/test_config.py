from __future__ import annotations

import json
from pathlib import Path

import pytest

from service_monitor.config import ConfigError, ServiceSpec, load_config, parse_config


def _write(tmp_path: Path, data: dict, name: str = "monitor_config.json") -> Path:
    p = tmp_path / name
    p.write_text(json.dumps(data), encoding="utf-8")
    return p


def _service(**overrides) -> dict:
    entry = {
        "name": "api",
        "url": "https://api.example.com/health",
        "method": "get",
        "headers": {"Authorization": "Bearer x"},
        "expected_status": 200,
        "timeout": 5,
        "check_interval": 30,
        "retry_attempts": 3,
        "retry_delay": 1,
        "critical_service": True,
    }
    entry.update(overrides)
    return entry


@pytest.fixture(autouse=True)
def _clear_backend_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "SLACK_WEBHOOK_URL",
        "TELEGRAM_BOT_TOKEN",
        "TELEGRAM_CHAT_ID",
        "PAGERDUTY_SERVICE_KEY",
        "PAGERDUTY_API_KEY",
        "SERVICE_MONITOR_HOST",
        "SERVICE_MONITOR_PORT",
    ):
        monkeypatch.delenv(name, raising=False)


def test_repo_example_config_loads() -> None:
    config_path = Path(__file__).resolve().parents[1] / "monitor_config.json"
    config = load_config(config_path)
    assert config.services
    for spec in config.services:
        assert spec.name
        assert spec.url.startswith(("http://", "https://"))
        assert spec.retry_attempts >= 1


def test_load_json_config(tmp_path: Path) -> None:
    path = _write(
        tmp_path,
        {
            "services": [_service()],
            "alerts": {
                "slack": {"webhook_url": "https://hooks.example.com/x", "channels": ["#ops"]},
                "pagerduty": {"service_key": "routing", "api_key": "key"},
            },
        },
    )
    config = load_config(path)
    (spec,) = config.services
    assert spec == ServiceSpec(
        name="api",
        url="https://api.example.com/health",
        method="GET",
        headers={"Authorization": "Bearer x"},
        expected_status=200,
        timeout_seconds=5.0,
        check_interval_seconds=30.0,
        retry_attempts=3,
        retry_delay_seconds=1.0,
        critical=True,
    )
    assert config.alerts.slack.configured
    assert config.alerts.slack.channels == ("#ops",)
    assert config.alerts.pagerduty.configured
    assert config.alerts.telegram is None
    assert (config.status_host, config.status_port) == ("0.0.0.0", 8080)


def test_load_yaml_config(tmp_path: Path) -> None:
    p = tmp_path / "config.yaml"
    p.write_text(
        "services:\n"
        "  - name: web\n"
        "    url: http://web.internal/healthz\n"
        "    check_interval_seconds: 15\n"
        "status_api:\n"
        "  port: 9090\n",
        encoding="utf-8",
    )
    config = load_config(p)
    assert config.services[0].check_interval_seconds == 15.0
    assert config.services[0].critical is False
    assert config.status_port == 9090


def test_missing_backend_credentials_mean_not_configured() -> None:
    config = parse_config({"services": [_service()], "alerts": {"slack": {}, "pagerduty": {"api_key": "only-api"}}})
    assert not config.alerts.slack.configured
    assert not config.alerts.pagerduty.configured
    assert config.alerts.telegram is None


def test_backend_credentials_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SLACK_WEBHOOK_URL", "https://hooks.example.com/env")
    monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "tok")
    monkeypatch.setenv("TELEGRAM_CHAT_ID", "42")
    monkeypatch.setenv("PAGERDUTY_SERVICE_KEY", "routing")
    config = parse_config({"services": [_service()]})
    assert config.alerts.slack.webhook_url == "https://hooks.example.com/env"
    assert config.alerts.telegram is not None and config.alerts.telegram.chat_id == "42"
    assert config.alerts.pagerduty.service_key == "routing"


@pytest.mark.parametrize(
    "services",
    [
        [],
        [_service(retry_attempts=0)],
        [_service(check_interval=-1)],
        [_service(timeout=-5)],
        [_service(retry_delay=-1)],
        [_service(name="")],
        [_service(url="ftp://example.com")],
        [_service(), _service()],
        [_service(headers=["not", "a", "mapping"])],
        [_service(expected_status="abc")],
        ["not-a-mapping"],
        [_service(critical_service="maybe")],
        [_service(headers={"X-A": None})],
    ],
)
def test_invalid_services_rejected(services: list) -> None:
    with pytest.raises(ConfigError):
        parse_config({"services": services})


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("false", False), ("no", False), ("0", False), (0, False), ("true", True), ("Yes", True), (1, True)],
)
def test_critical_flag_parses_string_booleans(raw, expected: bool) -> None:
    config = parse_config({"services": [_service(critical_service=raw)]})
    assert config.services[0].critical is expected


def test_unreadable_and_malformed_config(tmp_path: Path) -> None:
    with pytest.raises(ConfigError):
        load_config(tmp_path / "missing.json")

    bad = tmp_path / "bad.json"
    bad.write_text("{not json", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(bad)

    with pytest.raises(ConfigError):
        parse_config(["services"])


def test_service_spec_validates_directly() -> None:
    with pytest.raises(ValueError):
        ServiceSpec(name="x", url="https://x.example.com", retry_attempts=0)
    spec = ServiceSpec(name="x", url="https://x.example.com", expected_status=204)
    assert spec.expected_status_ok(204)
    assert not spec.expected_status_ok(200)
