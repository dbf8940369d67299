"""Request counters for the query service."""
import time
import logging
from collections import defaultdict
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

COUNTERS = ("requests", "ok", "empty", "failed", "rejected")


class Metrics:
    """Track query outcomes since process start."""

    def __init__(self):
        self.start_time = time.time()
        self.counters: Dict[str, int] = defaultdict(int)
        self.errors_by_kind: Dict[str, int] = defaultdict(int)

    def increment(self, key: str, amount: int = 1) -> None:
        """Increment a counter."""
        self.counters[key] = self.counters.get(key, 0) + amount

    def record_error(self, kind: str) -> None:
        self.errors_by_kind[kind] += 1

    def get_rate(self) -> float:
        """Requests per second since start."""
        elapsed = time.time() - self.start_time
        if elapsed > 0:
            return self.counters.get("requests", 0) / elapsed
        return 0.0

    def report(self) -> None:
        """Log current counters."""
        logger.info(
            f"Requests: {self.counters.get('requests', 0)} | "
            f"OK: {self.counters.get('ok', 0)} | "
            f"Empty: {self.counters.get('empty', 0)} | "
            f"Failed: {self.counters.get('failed', 0)} | "
            f"Rejected: {self.counters.get('rejected', 0)} | "
            f"Rate: {self.get_rate():.2f}/s"
        )

    def get_summary(self, pool_stats: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Counters plus pool occupancy, when a pool snapshot is given."""
        summary: Dict[str, Any] = {name: self.counters.get(name, 0) for name in COUNTERS}
        summary["errors_by_kind"] = dict(self.errors_by_kind)
        summary["rate"] = self.get_rate()
        summary["elapsed_seconds"] = time.time() - self.start_time
        if pool_stats is not None:
            summary["pool"] = {
                "size": pool_stats.get("size", 0),
                "busy": pool_stats.get("busy", 0),
                "waiting": pool_stats.get("waiting", 0),
            }
        return summary
