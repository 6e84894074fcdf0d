"""
Reading sinks for the polling hub.

Two implementations:
  - LogExporter: writes each reading through the logging module
  - MemoryExporter: keeps the most recent points in memory (tests, live views)
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, List

from .sensors.base import SensorReading

logger = logging.getLogger(__name__)


class Exporter(ABC):
    """Receives the readings of every polling cycle."""

    @abstractmethod
    def export(self, readings: List[SensorReading]) -> None:
        """Hand over one cycle's readings. May be empty."""


class LogExporter(Exporter):
    """Logs readings at INFO, one line per reading."""

    def __init__(self, level: int = logging.INFO):
        self.level = level

    def export(self, readings: List[SensorReading]) -> None:
        for r in readings:
            if r.tags:
                tags = ",".join(f"{k}={v}" for k, v in sorted(r.tags.items()))
                logger.log(self.level, "%s{%s} %s=%.2f", r.source, tags, r.metric, r.value)
            else:
                logger.log(self.level, "%s %s=%.2f", r.source, r.metric, r.value)


class MemoryExporter(Exporter):
    """In-memory point store with FIFO eviction. Thread-safe."""

    def __init__(self, max_size: int = 10_000):
        self._max_size = max_size
        self._points: List[Dict[str, Any]] = []
        self._lock = threading.Lock()

    def export(self, readings: List[SensorReading]) -> None:
        points = [r.to_point() for r in readings]
        with self._lock:
            self._points.extend(points)
            if len(self._points) > self._max_size:
                overflow = len(self._points) - self._max_size
                logger.warning("Exporter full, dropped %d oldest points", overflow)
                self._points = self._points[overflow:]

    def get_all(self) -> List[Dict[str, Any]]:
        with self._lock:
            return list(self._points)

    def latest(self) -> Dict[str, Dict[str, Any]]:
        """Most recent point per (source, metric, tags) series."""
        series: Dict[str, Dict[str, Any]] = {}
        with self._lock:
            for point in self._points:
                tags = ",".join(f"{k}={v}" for k, v in sorted(point.get("tags", {}).items()))
                series[f"{point['source']}/{point['metric']}{{{tags}}}"] = point
        return series

    def clear(self) -> None:
        with self._lock:
            self._points.clear()

    def size(self) -> int:
        with self._lock:
            return len(self._points)
