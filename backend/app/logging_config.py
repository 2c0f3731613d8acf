# backend/app/logging_config.py
"""
Process-wide logging setup plus a tiny in-memory metrics registry.

Counters and "last timing" gauges are served as-is by GET /metrics; they
reset when the process restarts.
"""

import logging
import os
import threading
import time
from contextlib import contextmanager
from typing import Dict, Iterator, Union

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

# SDK and HTTP client chatter drowns out the per-request lines.
QUIET_LOGGERS = ("urllib3", "httpx", "httpcore", "google_genai")


def configure_logging(level: str = "") -> None:
    level = (level or os.getenv("LOG_LEVEL") or "INFO").upper()
    logging.basicConfig(level=level, format=LOG_FORMAT)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(logging.WARNING, logging.getLogger().level))


configure_logging()

log = logging.getLogger("viral-score")

MetricValue = Union[int, float]

_metrics: Dict[str, MetricValue] = {}
# blocking collaborator calls run on worker threads
_lock = threading.Lock()
_started_at = time.monotonic()


def inc_metric(name: str, amount: int = 1) -> None:
    with _lock:
        _metrics[name] = int(_metrics.get(name, 0)) + amount


def set_metric(name: str, value: MetricValue) -> None:
    with _lock:
        _metrics[name] = value


def record_response(status_code: int) -> None:
    """Count one finished score request by outcome class and exact status."""
    inc_metric("score_success_total" if status_code < 400 else f"score_errors_{status_code}")


def get_metrics_snapshot() -> Dict[str, MetricValue]:
    with _lock:
        snapshot = dict(_metrics)
    snapshot["uptime_s"] = round(time.monotonic() - _started_at, 1)
    return snapshot


def reset_metrics() -> None:
    with _lock:
        _metrics.clear()


@contextmanager
def measure(name: str) -> Iterator[None]:
    """Time a block; keeps the last duration and a call count per name."""
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed_ms = round((time.perf_counter() - start) * 1000, 1)
        log.debug("%s took %.1fms", name, elapsed_ms)
        with _lock:
            _metrics[f"time_ms_last_{name}"] = elapsed_ms
            _metrics[f"calls_{name}"] = int(_metrics.get(f"calls_{name}", 0)) + 1
