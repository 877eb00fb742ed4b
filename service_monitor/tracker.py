from __future__ import annotations

import threading
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Iterable, Union

from service_monitor.probe import ProbeOutcome


class Health(str, Enum):
    UP = "up"
    DOWN = "down"


@dataclass
class HealthRecord:
    """
    Health of one service.

    States: Up; Down with ``alert_active`` False (between the Up->Down
    transition and the outage dispatch attempt); Down with ``alert_active``
    True. Only ``StatusTracker`` mutates records.
    """

    name: str
    health: Health = Health.UP
    last_check: datetime | None = None
    last_error: str = ""
    failure_count: int = 0
    response_time_seconds: float | None = None
    alert_active: bool = False
    down_since: datetime | None = None
    recovered_at: datetime | None = None

    @property
    def is_up(self) -> bool:
        return self.health is Health.UP


@dataclass(frozen=True)
class OutageStarted:
    service: str
    error: str
    started_at: datetime


@dataclass(frozen=True)
class Recovered:
    service: str
    recovered_at: datetime
    outage_duration: timedelta


TransitionEvent = Union[OutageStarted, Recovered]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


class StatusTracker:
    """
    Owns the service name -> ``HealthRecord`` mapping.

    One coarse lock guards the map; every update is O(1). Readers always get
    copies, never the live records.
    """

    def __init__(self, service_names: Iterable[str]) -> None:
        self._lock = threading.Lock()
        self._records: dict[str, HealthRecord] = {}
        for name in service_names:
            if name in self._records:
                raise ValueError(f"duplicate service name {name!r}")
            self._records[name] = HealthRecord(name=name)

    def apply(self, name: str, outcome: ProbeOutcome, *, now: datetime | None = None) -> TransitionEvent | None:
        now = now or _utcnow()
        with self._lock:
            record = self._records[name]
            record.last_check = now
            record.response_time_seconds = outcome.latency_seconds

            if record.health is Health.UP:
                if outcome.ok:
                    return None
                record.health = Health.DOWN
                record.failure_count = 1
                record.last_error = outcome.error
                record.alert_active = False
                record.down_since = now
                record.recovered_at = None
                return OutageStarted(service=name, error=outcome.error, started_at=now)

            if not outcome.ok:
                # Outage already signalled; never re-page.
                record.failure_count += 1
                record.last_error = outcome.error
                return None

            down_since = record.down_since or now
            record.health = Health.UP
            record.failure_count = 0
            record.last_error = ""
            record.alert_active = False
            record.recovered_at = now
            record.down_since = None
            return Recovered(service=name, recovered_at=now, outage_duration=max(timedelta(0), now - down_since))

    def mark_alerted(self, name: str) -> None:
        """Record that the outage dispatch was attempted (whatever its result)."""
        with self._lock:
            record = self._records[name]
            if record.health is Health.DOWN:
                record.alert_active = True

    def get(self, name: str) -> HealthRecord:
        with self._lock:
            return replace(self._records[name])

    def names(self) -> list[str]:
        with self._lock:
            return list(self._records)

    def snapshot(self) -> dict[str, dict[str, Any]]:
        with self._lock:
            records = [replace(r) for r in self._records.values()]
        return {r.name: _record_view(r) for r in records}


def _record_view(record: HealthRecord) -> dict[str, Any]:
    response_time_ms = None
    if record.response_time_seconds is not None:
        response_time_ms = round(record.response_time_seconds * 1000.0, 3)
    return {
        "status": record.is_up,
        "last_check": _iso(record.last_check),
        "last_error": record.last_error,
        "failure_count": record.failure_count,
        "response_time_ms": response_time_ms,
    }
