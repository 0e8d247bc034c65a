from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from threading import Lock
from typing import Dict


@dataclass
class LedgerSnapshot:
    operations: Dict[str, int]
    points: Dict[str, int]
    rejections: Dict[str, int]
    failures: Dict[str, int]
    notifications: Dict[str, int]
    sweeps: Dict[str, int]

    def as_dict(self) -> Dict[str, object]:
        return {
            "operations": dict(self.operations),
            "points": dict(self.points),
            "rejections": dict(self.rejections),
            "failures": dict(self.failures),
            "notifications": dict(self.notifications),
            "sweeps": dict(self.sweeps),
        }


class LedgerObservabilityStore:
    """Collect points ledger telemetry for dashboards and alerting."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._operations: Dict[str, int] = defaultdict(int)
        self._points: Dict[str, int] = defaultdict(int)
        self._rejections: Dict[str, int] = defaultdict(int)
        self._failures: Dict[str, int] = defaultdict(int)
        self._notifications: Dict[str, int] = defaultdict(int)
        self._sweeps: Dict[str, int] = defaultdict(int)

    def record_operation(self, kind: str, points: int) -> None:
        with self._lock:
            self._operations[kind] += 1
            self._points[kind] += abs(points)

    def record_rejection(self, code: str) -> None:
        with self._lock:
            self._rejections[code] += 1

    def record_failure(self, code: str) -> None:
        with self._lock:
            self._failures[code] += 1

    def record_notification(self, message_type: str, *, delivered: bool) -> None:
        with self._lock:
            outcome = "sent" if delivered else "failed"
            self._notifications[outcome] += 1
            self._notifications[f"{message_type}:{outcome}"] += 1

    def record_sweep(self, *, expired_batches: int, customers_affected: int, customers_failed: int) -> None:
        with self._lock:
            self._sweeps["runs"] += 1
            self._sweeps["expired_batches"] += expired_batches
            self._sweeps["customers_affected"] += customers_affected
            self._sweeps["customers_failed"] += customers_failed

    def snapshot(self) -> LedgerSnapshot:
        with self._lock:
            return LedgerSnapshot(
                operations=dict(self._operations),
                points=dict(self._points),
                rejections=dict(self._rejections),
                failures=dict(self._failures),
                notifications=dict(self._notifications),
                sweeps=dict(self._sweeps),
            )

    def reset(self) -> None:
        with self._lock:
            self._operations.clear()
            self._points.clear()
            self._rejections.clear()
            self._failures.clear()
            self._notifications.clear()
            self._sweeps.clear()


_STORE = LedgerObservabilityStore()


def get_ledger_store() -> LedgerObservabilityStore:
    return _STORE


__all__ = ["get_ledger_store", "LedgerObservabilityStore", "LedgerSnapshot"]
