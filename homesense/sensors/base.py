"""
Base classes for sensor drivers and the polling hub.

Every driver follows the same contract:

    sensor = SCD4x()
    sensor.initialize(bus, 0x62)    # fallible, at most once
    readings = sensor.collect()     # once per polling tick, never raises

collect() catches per-cycle failures (bus errors, checksum and protocol
errors), logs and counts them, and hands back the last good reading set.
"""

import logging
import threading
import time
from abc import ABC, abstractmethod
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, TYPE_CHECKING

from ..errors import SensorError
from .measurements import Measurement

if TYPE_CHECKING:
    from ..bus import I2CBus
    from ..exporters import Exporter

logger = logging.getLogger(__name__)


@dataclass
class SensorReading:
    """One measurement record handed to exporters."""

    measurement: Measurement
    value: float
    source: str
    tags: Dict[str, str] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)

    @property
    def metric(self) -> str:
        return self.measurement.id

    def to_point(self) -> Dict[str, Any]:
        point = {
            "metric": self.metric,
            "value": self.value,
            "source": self.source,
            "timestamp": self.timestamp,
        }
        if self.tags:
            point["tags"] = dict(self.tags)
        return point


class BaseSensor(ABC):
    """
    Base class for I2C sensor drivers.

    Subclasses set ``name``, ``description`` and ``i2c_addresses`` and
    implement ``setup()`` (device bring-up) and ``sample()`` (one poll cycle,
    allowed to raise SensorError).
    """

    name = "base"
    description = ""
    i2c_addresses: List[int] = []

    def __init__(self, tags: Optional[Dict[str, str]] = None):
        self.tags = tags or {}
        self.bus: Optional["I2CBus"] = None
        self.address: Optional[int] = None
        self.error_counts: Counter = Counter()
        self._readings: List[SensorReading] = []
        self._init_attempted = False
        self._active = False
        self.qualify_source = False

    @property
    def active(self) -> bool:
        return self._active

    def initialize(self, bus: "I2CBus", address: Optional[int] = None) -> None:
        """Bind the driver to a bus address and bring the device up.

        Raises whatever setup() raises (CalibrationError, BusError, ...).
        The driver stays inactive on failure and cannot be initialized again.
        """
        if self._init_attempted:
            raise RuntimeError(f"{self.name} at 0x{self.address:02X} already initialized")
        self._init_attempted = True

        self.bus = bus
        self.address = address if address is not None else self.i2c_addresses[0]
        self.setup()
        self._active = True

    @abstractmethod
    def setup(self) -> None:
        """Bring the device into a state where sample() can run."""

    @abstractmethod
    def sample(self) -> List[SensorReading]:
        """Run one acquisition and return fresh readings."""

    def collect(self) -> List[SensorReading]:
        """Sample the device, keeping the previous readings on failure."""
        if not self._active:
            return []

        try:
            self._readings = self.sample()
        except SensorError as e:
            self.error_counts[type(e).__name__] += 1
            logger.warning("%s: %s (keeping previous readings)", self.name, e)
        return list(self._readings)

    @property
    def source_id(self) -> str:
        return self._qualified(self.name)

    def _qualified(self, source: str) -> str:
        # Set by SensorHub when another device of the same family is present
        if self.qualify_source and self.address is not None:
            return f"{source}@0x{self.address:02X}"
        return source

    def matches_family(self, token: str) -> bool:
        return token.lower() == self.name

    def cleanup(self) -> None:
        """Put the device in a quiet state. Optional."""

    def reading(self, measurement: Measurement, value: float, **tags: str) -> SensorReading:
        merged = dict(self.tags)
        merged.update(tags)
        return SensorReading(measurement, value, self.source_id, merged)

    def __repr__(self) -> str:
        if self.address is None:
            return f"{type(self).__name__}()"
        return f"{type(self).__name__}(address=0x{self.address:02X})"


class SensorHub:
    """
    Polls a set of sensors on a fixed interval and hands the readings to
    exporters.

    Cycles never overlap: when a cycle overruns the interval the next one
    starts straight away. Within a cycle, sensors are collected one after
    another.

    Args:
        interval: Seconds between the start of consecutive cycles.
    """

    def __init__(self, interval: float = 10.0):
        self.interval = interval
        self.sensors: List[BaseSensor] = []
        self.exporters: List["Exporter"] = []
        self.cycles = 0
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def add(self, sensor: BaseSensor) -> "SensorHub":
        siblings = [s for s in self.sensors if s.name == sensor.name]
        if siblings:
            for s in siblings + [sensor]:
                s.qualify_source = True
        self.sensors.append(sensor)
        return self

    def add_exporter(self, exporter: "Exporter") -> "SensorHub":
        self.exporters.append(exporter)
        return self

    def get_sensor(self, name: str) -> Optional[BaseSensor]:
        for sensor in self.sensors:
            if sensor.name == name:
                return sensor
        return None

    def read_all(self) -> List[SensorReading]:
        readings: List[SensorReading] = []
        for sensor in self.sensors:
            try:
                readings.extend(sensor.collect())
            except Exception:
                logger.exception("Unexpected failure collecting %s", sensor.name)
        return readings

    def poll_once(self) -> List[SensorReading]:
        """Run one cycle: collect every sensor, then export."""
        readings = self.read_all()
        for exporter in self.exporters:
            try:
                exporter.export(readings)
            except Exception:
                logger.exception("Exporter %s failed", type(exporter).__name__)
        self.cycles += 1
        return readings

    def run(self, max_cycles: Optional[int] = None) -> None:
        """Poll until stop() is called (blocking)."""
        self._stop.clear()
        self._loop(max_cycles)

    def _loop(self, max_cycles: Optional[int] = None) -> None:
        logger.info(
            "Collecting sensor data from %d sensor(s) every %ss",
            len(self.sensors), self.interval,
        )
        next_start = time.monotonic()
        count = 0
        while not self._stop.is_set():
            self.poll_once()
            count += 1
            if max_cycles is not None and count >= max_cycles:
                break

            next_start += self.interval
            delay = next_start - time.monotonic()
            if delay <= 0:
                # Overran the interval: start the next cycle now
                next_start = time.monotonic()
                continue
            self._stop.wait(delay)

    def start(self) -> threading.Thread:
        """Run the polling loop on a background thread."""
        if self._thread and self._thread.is_alive():
            return self._thread
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="homesense-poll", daemon=True)
        self._thread.start()
        return self._thread

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        if self._thread and self._thread is not threading.current_thread():
            self._thread.join(timeout)
        self._thread = None

    def cleanup(self) -> None:
        for sensor in self.sensors:
            try:
                sensor.cleanup()
            except SensorError as e:
                logger.warning("Cleanup of %s failed: %s", sensor.name, e)
