"""
Metrics Collection for the SoftOne sync

Collects in-process counters for:
- Request dispatch (calls, auth retries, failures by kind)
- Item import (batches, rows created/updated/skipped, stale products)
- Order export (attempts, successes, failures)
- Processing times per stage (average, p95)
"""

import statistics
from collections import defaultdict
from dataclasses import dataclass, field
from threading import Lock
from typing import Any, Dict, List, Optional


# =============================================================================
# Metric Data Classes
# =============================================================================

@dataclass
class DispatchMetrics:
    """Metrics for SoftOne request dispatch."""
    calls: int = 0
    auth_retries: int = 0
    failures: Dict[str, int] = field(default_factory=lambda: defaultdict(int))
    by_service: Dict[str, int] = field(default_factory=lambda: defaultdict(int))


@dataclass
class ImportMetrics:
    """Metrics for item import."""
    started: int = 0
    completed: int = 0
    batches: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    stale: int = 0


@dataclass
class ExportMetrics:
    """Metrics for order export."""
    attempts: int = 0
    succeeded: int = 0
    failed: int = 0
    aborted: int = 0


@dataclass
class TimingMetrics:
    """Processing time samples by stage (last N kept)."""
    max_samples: int = 1000
    by_stage: Dict[str, List[float]] = field(default_factory=lambda: defaultdict(list))

    def add_sample(self, stage: str, duration_ms: float):
        samples = self.by_stage[stage]
        samples.append(duration_ms)
        if len(samples) > self.max_samples:
            self.by_stage[stage] = samples[-self.max_samples:]

    def get_average(self, stage: str) -> float:
        samples = self.by_stage.get(stage, [])
        return statistics.mean(samples) if samples else 0.0

    def get_p95(self, stage: str) -> float:
        samples = self.by_stage.get(stage, [])
        if not samples:
            return 0.0
        sorted_samples = sorted(samples)
        idx = int(len(sorted_samples) * 0.95)
        return sorted_samples[min(idx, len(sorted_samples) - 1)]


# =============================================================================
# Metrics Collector (Singleton)
# =============================================================================

class SyncMetrics:
    """
    Thread-safe metrics collector for the sync engines.

    Usage:
        metrics = SyncMetrics.instance()
        metrics.record_dispatch("SqlData")
        metrics.record_import_batch(created=2, updated=1, skipped=0)
    """

    _instance: Optional["SyncMetrics"] = None
    _instance_lock = Lock()

    def __init__(self):
        self.dispatch = DispatchMetrics()
        self.imports = ImportMetrics()
        self.exports = ExportMetrics()
        self.timings = TimingMetrics()
        self._lock = Lock()

    @classmethod
    def instance(cls) -> "SyncMetrics":
        """Get singleton instance."""
        if cls._instance is None:
            with cls._instance_lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    # =========================================================================
    # Dispatch
    # =========================================================================

    def record_dispatch(self, service: str):
        with self._lock:
            self.dispatch.calls += 1
            self.dispatch.by_service[service] += 1

    def record_auth_retry(self, service: str):
        with self._lock:
            self.dispatch.auth_retries += 1

    def record_dispatch_failure(self, kind: str):
        with self._lock:
            self.dispatch.failures[kind] += 1

    # =========================================================================
    # Item import
    # =========================================================================

    def record_import_started(self):
        with self._lock:
            self.imports.started += 1

    def record_import_batch(self, created: int, updated: int, skipped: int, duration_ms: float = None):
        with self._lock:
            self.imports.batches += 1
            self.imports.created += created
            self.imports.updated += updated
            self.imports.skipped += skipped
            if duration_ms:
                self.timings.add_sample("import.batch", duration_ms)

    def record_import_completed(self, stale: int = 0):
        with self._lock:
            self.imports.completed += 1
            self.imports.stale += stale

    # =========================================================================
    # Order export
    # =========================================================================

    def record_export_attempt(self):
        with self._lock:
            self.exports.attempts += 1

    def record_export_result(self, success: bool):
        with self._lock:
            if success:
                self.exports.succeeded += 1
            else:
                self.exports.failed += 1

    def record_export_aborted(self):
        with self._lock:
            self.exports.aborted += 1

    # =========================================================================
    # Summary
    # =========================================================================

    def get_summary(self) -> Dict[str, Any]:
        """Get a summary of all metrics."""
        with self._lock:
            return {
                "dispatch": {
                    "calls": self.dispatch.calls,
                    "auth_retries": self.dispatch.auth_retries,
                    "failures": dict(self.dispatch.failures),
                    "by_service": dict(self.dispatch.by_service),
                },
                "imports": {
                    "started": self.imports.started,
                    "completed": self.imports.completed,
                    "batches": self.imports.batches,
                    "created": self.imports.created,
                    "updated": self.imports.updated,
                    "skipped": self.imports.skipped,
                    "stale": self.imports.stale,
                },
                "exports": {
                    "attempts": self.exports.attempts,
                    "succeeded": self.exports.succeeded,
                    "failed": self.exports.failed,
                    "aborted": self.exports.aborted,
                },
                "timings": {
                    stage: {
                        "average_ms": self.timings.get_average(stage),
                        "p95_ms": self.timings.get_p95(stage),
                    }
                    for stage in self.timings.by_stage.keys()
                },
            }


def get_metrics() -> SyncMetrics:
    """Get the global metrics collector."""
    return SyncMetrics.instance()
