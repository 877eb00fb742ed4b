from __future__ import annotations

import sys
import threading
from http.server import BaseHTTPRequestHandler, HTTPServer
from pathlib import Path

import pytest

from service_monitor import main as monitor_main
from service_monitor.config import AlertsConfig, MonitorConfig, ServiceSpec


class _Handler(BaseHTTPRequestHandler):
    def log_message(self, format: str, *args) -> None:  # noqa: A002
        return

    def do_GET(self) -> None:  # noqa: N802
        status = 200 if self.path == "/ok" else 503
        self.send_response(status)
        self.send_header("Content-Length", "0")
        self.end_headers()


@pytest.fixture(scope="module")
def local_server_base_url() -> str:
    httpd = HTTPServer(("127.0.0.1", 0), _Handler)
    host, port = httpd.server_address
    thread = threading.Thread(target=httpd.serve_forever, daemon=True)
    thread.start()
    try:
        yield f"http://{host}:{port}"
    finally:
        httpd.shutdown()
        thread.join(timeout=5)
        httpd.server_close()


def _config(*services: ServiceSpec) -> MonitorConfig:
    return MonitorConfig(services=tuple(services), alerts=AlertsConfig())


@pytest.mark.asyncio
async def test_run_once_exit_codes(local_server_base_url: str) -> None:
    ok = ServiceSpec(name="ok", url=f"{local_server_base_url}/ok", retry_attempts=1)
    down = ServiceSpec(name="down", url=f"{local_server_base_url}/down", retry_attempts=2, retry_delay_seconds=0.0)

    assert await monitor_main.run_once(_config(ok)) == 0
    assert await monitor_main.run_once(_config(ok, down)) == 1


def test_main_rejects_invalid_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    bad = tmp_path / "monitor_config.json"
    bad.write_text('{"services": [{"name": "x", "url": "https://x.example.com", "retry_attempts": 0}]}', encoding="utf-8")
    monkeypatch.setattr(sys, "argv", ["service-monitor", "--config", str(bad), "--once"])
    assert monitor_main.main() == 2
