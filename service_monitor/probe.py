from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable

import httpx

from service_monitor.config import ServiceSpec


LOGGER = logging.getLogger("service-monitor")


@dataclass(frozen=True)
class ProbeOutcome:
    ok: bool
    error: str
    latency_seconds: float
    attempts: int
    status_code: int | None = None

    @property
    def latency_ms(self) -> float:
        return round(self.latency_seconds * 1000.0, 3)


def _client_timeout(spec: ServiceSpec) -> httpx.Timeout:
    if spec.timeout_seconds <= 0:
        return httpx.Timeout(None)
    return httpx.Timeout(spec.timeout_seconds)


async def probe(
    spec: ServiceSpec,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> ProbeOutcome:
    """
    Run one health check (including retries) against ``spec``.

    Only the status code is inspected. Every failure mode ends up in
    ``ProbeOutcome.error``; nothing is raised for transport problems.
    """
    started = time.perf_counter()
    last_error = ""
    last_status: int | None = None
    attempts = 0

    async with httpx.AsyncClient(
        timeout=_client_timeout(spec),
        follow_redirects=False,
        transport=transport,
    ) as client:
        for attempt in range(1, spec.retry_attempts + 1):
            attempts = attempt
            try:
                async with client.stream(spec.method, spec.url, headers=dict(spec.headers)) as resp:
                    last_status = resp.status_code
            except (httpx.RequestError, httpx.InvalidURL, ValueError) as e:
                # ValueError: header values httpx cannot encode (UnicodeEncodeError).
                last_status = None
                last_error = f"{type(e).__name__}: {e}"
            else:
                if spec.expected_status_ok(last_status):
                    return ProbeOutcome(
                        ok=True,
                        error="",
                        latency_seconds=time.perf_counter() - started,
                        attempts=attempts,
                        status_code=last_status,
                    )
                last_error = f"unexpected status code: {last_status}"

            LOGGER.debug(
                "Probe attempt failed service=%s attempt=%d/%d error=%s",
                spec.name,
                attempt,
                spec.retry_attempts,
                last_error,
            )
            if attempt < spec.retry_attempts:
                await sleep(spec.retry_delay_seconds)

    return ProbeOutcome(
        ok=False,
        error=last_error,
        latency_seconds=time.perf_counter() - started,
        attempts=attempts,
        status_code=last_status,
    )
