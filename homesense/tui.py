"""
Live terminal dashboard for homesense.

Shows a real-time table of every series the hub produces: source, metric,
tags, current value, age and per-sensor error counts.

Usage:
    homesense run --live

Requires: pip install homesense-agent[tui] (installs 'rich')
"""

import threading
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .exporters import Exporter
from .sensors.base import SensorHub, SensorReading

# Rich is optional, imported lazily
_rich_available = False
try:
    from rich.console import Console
    from rich.live import Live
    from rich.table import Table
    _rich_available = True
except ImportError:
    pass


@dataclass
class SeriesState:
    """Tracks the latest value of one series for display."""
    source: str
    metric: str
    tags: str = ""
    value: str = ""
    unit: str = ""
    last_update: float = 0.0
    update_count: int = 0

    def update(self, reading: SensorReading):
        self.value = _format_value(reading.value)
        self.unit = reading.measurement.unit
        self.last_update = reading.timestamp
        self.update_count += 1


@dataclass
class DashboardState:
    """Global state for the live dashboard."""
    series: Dict[str, SeriesState] = field(default_factory=dict)
    errors: Dict[str, int] = field(default_factory=dict)
    cycles: int = 0
    start_time: float = field(default_factory=time.time)
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def update(self, readings: List[SensorReading]):
        with self._lock:
            for r in readings:
                tags = ",".join(f"{k}={v}" for k, v in sorted(r.tags.items()))
                key = f"{r.source}/{r.metric}{{{tags}}}"
                if key not in self.series:
                    self.series[key] = SeriesState(source=r.source, metric=r.metric, tags=tags)
                self.series[key].update(r)
            self.cycles += 1

    def set_errors(self, errors: Dict[str, int]):
        with self._lock:
            self.errors = dict(errors)

    @property
    def uptime(self) -> str:
        elapsed = int(time.time() - self.start_time)
        if elapsed < 60:
            return f"{elapsed}s"
        elif elapsed < 3600:
            return f"{elapsed // 60}m {elapsed % 60}s"
        else:
            return f"{elapsed // 3600}h {(elapsed % 3600) // 60}m"


def _format_value(value) -> str:
    """Format a reading value for display."""
    if isinstance(value, float):
        if abs(value) < 10:
            return f"{value:.3f}"
        elif abs(value) < 1000:
            return f"{value:.1f}"
        else:
            return f"{value:.0f}"
    return str(value)[:32]


def build_dashboard(state: DashboardState, interval: float) -> "Table":
    """Build the Rich table for display."""
    total_errors = sum(state.errors.values())
    table = Table(
        title=f"  homesense  {state.cycles} cycles  {total_errors} errors  {state.uptime}",
        title_style="bold",
        show_header=True,
        header_style="bold dim",
        border_style="dim",
        pad_edge=True,
        expand=True,
    )

    table.add_column("Sensor", style="cyan", no_wrap=True, ratio=1)
    table.add_column("Metric", no_wrap=True, ratio=3)
    table.add_column("Tags", style="dim", ratio=2)
    table.add_column("Value", justify="right", ratio=1)
    table.add_column("Unit", style="dim", ratio=1)
    table.add_column("Status", justify="center", ratio=1)

    with state._lock:
        if not state.series:
            table.add_row("[dim]Waiting for data...[/dim]", "", "", "", "", "")
        else:
            for key in sorted(state.series):
                series = state.series[key]
                # Staleness is relative to the polling interval
                age = time.time() - series.last_update if series.last_update > 0 else 999
                if age < interval * 2:
                    status_cell = "[green]live[/green]"
                elif age < interval * 6:
                    status_cell = "[yellow]stale[/yellow]"
                else:
                    status_cell = "[red]timeout[/red]"

                table.add_row(
                    series.source,
                    series.metric,
                    series.tags,
                    series.value,
                    series.unit,
                    status_cell,
                )

    return table


class LiveDashboard(Exporter):
    """
    Live terminal dashboard fed by a SensorHub.

    Registered as an exporter, so every polling cycle updates the table.
    """

    def __init__(self):
        if not _rich_available:
            raise ImportError(
                "\n"
                "  Live dashboard requires 'rich'.\n"
                "\n"
                "  Install with:\n"
                "    pip install homesense-agent[tui]\n"
                "\n"
                "  Or: pip install rich\n"
            )
        self.state = DashboardState()
        self.console = Console()
        self._live: Optional[Live] = None

    def export(self, readings: List[SensorReading]) -> None:
        self.state.update(readings)

    def run(self, hub: SensorHub):
        """
        Run the hub on a background thread and render until interrupted.

        Args:
            hub: Composed hub. The dashboard adds itself as an exporter.
        """
        self.state = DashboardState()
        hub.add_exporter(self)
        thread = hub.start()

        try:
            with Live(
                build_dashboard(self.state, hub.interval),
                console=self.console,
                refresh_per_second=4,
                screen=False,
            ) as live:
                self._live = live
                while thread.is_alive():
                    errors = {}
                    for sensor in hub.sensors:
                        count = sum(sensor.error_counts.values())
                        if count:
                            errors[sensor.name] = count
                    self.state.set_errors(errors)
                    live.update(build_dashboard(self.state, hub.interval))
                    time.sleep(0.25)
        except KeyboardInterrupt:
            pass
        finally:
            self._live = None
            hub.stop(timeout=5.0)
