"""Metrics collection for the request pipeline."""

import threading
from dataclasses import dataclass, field
from typing import ClassVar


@dataclass
class HttpMetrics:
    """Metrics for HTTP request execution.

    Singleton class that tracks request counts by status, retries,
    and failures by classification kind.
    """

    http_requests_total: dict[int, int] = field(default_factory=dict)
    http_retry_total: int = 0
    http_failures_total: dict[str, int] = field(default_factory=dict)
    http_duration_ms_total: float = 0.0
    http_request_count: int = 0

    _instance: ClassVar["HttpMetrics | None"] = None
    _lock: ClassVar[threading.Lock] = threading.Lock()

    @classmethod
    def get_instance(cls) -> "HttpMetrics":
        """Get singleton metrics instance."""
        with cls._lock:
            if cls._instance is None:
                cls._instance = cls()
            return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Reset metrics (primarily for testing)."""
        with cls._lock:
            cls._instance = None

    def record_request(self, status_code: int) -> None:
        """Record a transport call that produced a response.

        Args:
            status_code: HTTP status code.
        """
        with self._lock:
            self.http_requests_total[status_code] = (
                self.http_requests_total.get(status_code, 0) + 1
            )
            self.http_request_count += 1

    def record_retry(self) -> None:
        """Record a retry attempt."""
        with self._lock:
            self.http_retry_total += 1

    def record_failure(self, kind: str) -> None:
        """Record a request that ended in a typed error.

        Args:
            kind: Classification kind of the final failure.
        """
        with self._lock:
            self.http_failures_total[kind] = self.http_failures_total.get(kind, 0) + 1

    def record_duration(self, duration_ms: float) -> None:
        """Record total execution time of one call, retries included."""
        with self._lock:
            self.http_duration_ms_total += duration_ms

    def to_dict(self) -> dict[str, int | float | dict[str, int] | dict[int, int]]:
        """Convert metrics to dictionary.

        Returns:
            Dictionary of metric name to value.
        """
        return {
            "http_requests_total": dict(self.http_requests_total),
            "http_retry_total": self.http_retry_total,
            "http_failures_total": dict(self.http_failures_total),
            "http_duration_ms_total": self.http_duration_ms_total,
            "http_request_count": self.http_request_count,
        }
