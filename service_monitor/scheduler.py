"""Per-service check loops: probe, apply the outcome, dispatch, then wait."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Iterable

from service_monitor.alerts import AlertDispatcher
from service_monitor.config import ServiceSpec
from service_monitor.probe import ProbeOutcome, probe
from service_monitor.tracker import OutageStarted, Recovered, StatusTracker, TransitionEvent


LOGGER = logging.getLogger("service-monitor")

ProbeFn = Callable[[ServiceSpec], Awaitable[ProbeOutcome]]


class Monitor:
    def __init__(
        self,
        services: Iterable[ServiceSpec],
        tracker: StatusTracker,
        dispatcher: AlertDispatcher,
        *,
        probe_fn: ProbeFn = probe,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.services = list(services)
        self.tracker = tracker
        self.dispatcher = dispatcher
        self._probe = probe_fn
        self._sleep = sleep
        self._tasks: list[asyncio.Task[None]] = []

    async def check_service(self, spec: ServiceSpec) -> TransitionEvent | None:
        outcome = await self._probe(spec)
        event = self.tracker.apply(spec.name, outcome)

        if isinstance(event, OutageStarted):
            LOGGER.warning("Service DOWN service=%s attempts=%d error=%s", spec.name, outcome.attempts, outcome.error)
            try:
                await self.dispatcher.dispatch(event, spec)
            finally:
                self.tracker.mark_alerted(spec.name)
        elif isinstance(event, Recovered):
            LOGGER.info(
                "Service RECOVERED service=%s downtime_s=%.1f",
                spec.name,
                event.outage_duration.total_seconds(),
            )
            await self.dispatcher.dispatch(event, spec)
        elif not outcome.ok:
            LOGGER.info("Service still down service=%s error=%s", spec.name, outcome.error)
        else:
            LOGGER.debug("Service up service=%s latency_ms=%.1f", spec.name, outcome.latency_ms)
        return event

    async def _service_loop(self, spec: ServiceSpec) -> None:
        while True:
            try:
                await self.check_service(spec)
            except asyncio.CancelledError:
                raise
            except Exception:
                LOGGER.exception("Service check crashed service=%s", spec.name)
            await self._sleep(spec.check_interval_seconds)

    async def run_once(self) -> dict[str, TransitionEvent | None]:
        events = await asyncio.gather(*(self.check_service(spec) for spec in self.services))
        return {spec.name: event for spec, event in zip(self.services, events)}

    def start(self) -> None:
        if self._tasks:
            return
        for spec in self.services:
            task = asyncio.create_task(self._service_loop(spec), name=f"monitor-{spec.name}")
            self._tasks.append(task)
        LOGGER.info("Monitoring started services=%d", len(self._tasks))

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()

    async def run_forever(self) -> None:
        self.start()
        try:
            await asyncio.gather(*self._tasks)
        finally:
            await self.stop()
