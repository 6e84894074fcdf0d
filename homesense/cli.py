"""
Command-line interface for homesense.

Usage:
    homesense sensors                  # List supported sensors
    homesense scan                     # Probe the I2C bus
    homesense read bme68x              # Print one sample from one sensor
    homesense run                      # Poll all configured sensors
    homesense run --live               # ... with a live dashboard
    homesense scd4x calibrate 420      # Forced recalibration of an SCD4x
    homesense config                   # Show effective configuration
"""

import logging
import sys
import time
from typing import Dict, Optional

import click

from homesense import __version__
from homesense.bus import I2CBus, scan as scan_bus
from homesense.config import (
    SensorConfig,
    get_bus_number,
    get_config_path,
    get_default_address,
    get_interval,
    get_sensor_configs,
    load_config,
)
from homesense.errors import SensorError
from homesense.exporters import LogExporter
from homesense.sensors import SUPPORTED_SENSORS, SensorHub, sniff
from homesense.sensors.scd4x import SCD4X_ADDR, SCD4x

logger = logging.getLogger("homesense")


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
    )


def build_hub(
    bus: I2CBus,
    configs: Dict[str, SensorConfig],
    interval: float,
    strict: bool = False,
) -> SensorHub:
    """Initialize every enabled sensor and add the ones that came up.

    A sensor that fails to initialize is logged and skipped, or aborts the
    whole run when strict is set.
    """
    hub = SensorHub(interval=interval)
    for name, cfg in configs.items():
        if not cfg.enabled:
            logger.debug("%s disabled in config", name)
            continue

        sensor = sniff(name)
        if sensor is None:
            logger.warning("Unknown sensor %r in config", name)
            continue

        try:
            sensor.initialize(bus, cfg.address)
        except SensorError as e:
            if strict:
                raise
            logger.warning("Skipping %s at 0x%02X: %s", name, cfg.address, e)
            continue
        hub.add(sensor)
    return hub


@click.group()
@click.version_option(version=__version__, prog_name="homesense")
def main():
    """
    homesense - Poll environmental sensors over I2C.

    Quick start:

        homesense scan                 # What is on the bus?

        homesense read scd4x           # One sample

        homesense run                  # Poll everything
    """
    pass


@main.command()
def sensors():
    """
    List supported sensors and their default addresses.
    """
    click.echo("\nSupported sensors")
    click.echo("─" * 60)
    for factory in SUPPORTED_SENSORS:
        addresses = ", ".join(f"0x{a:02X}" for a in factory.i2c_addresses)
        click.echo(f"  {factory.name:<10} {addresses:<12} {factory.description}")
    click.echo("")


@main.command()
@click.option("--bus", "-b", "bus_num", type=int, default=None, help="I2C bus number")
def scan(bus_num: Optional[int]):
    """
    Probe the I2C bus and name the devices found.
    """
    bus_num = get_bus_number() if bus_num is None else bus_num
    try:
        found = scan_bus(bus_num=bus_num)
    except (ImportError, OSError) as e:
        click.secho(f"  ✗ {e}", fg="red")
        sys.exit(1)

    click.echo(f"\nI2C bus {bus_num}")
    click.echo("─" * 40)
    if not found:
        click.secho("  No devices found", fg="yellow")
        return

    for address in found:
        names = [f.name for f in SUPPORTED_SENSORS if address in f.i2c_addresses]
        label = ", ".join(names) if names else "unknown"
        click.echo(f"  0x{address:02X}  {label}")
    click.echo("")


@main.command()
def config():
    """
    Show current configuration.
    """
    cfg = load_config()
    click.echo(f"Config file: {get_config_path()}\n")
    click.echo(f"  interval: {get_interval()}s")
    click.echo(f"  i2c_bus: {get_bus_number()}")
    click.echo("  sensors:")
    for name, sensor_cfg in get_sensor_configs(cfg).items():
        state = "enabled" if sensor_cfg.enabled else "disabled"
        click.echo(f"    {name}: 0x{sensor_cfg.address:02X} ({state})")


@main.command()
@click.argument("name")
@click.option("--address", "-a", type=lambda v: int(v, 0), default=None,
              help="I2C address, e.g. 0x62 (default: the sensor's usual one)")
@click.option("--bus", "-b", "bus_num", type=int, default=None, help="I2C bus number")
@click.option("--timeout", "-t", type=float, default=10.0, help="Seconds to wait for data")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
def read(name: str, address: Optional[int], bus_num: Optional[int], timeout: float, verbose: bool):
    """
    Initialize one sensor and print one sample.

    Example:

        homesense read scd41 --address 0x62
    """
    _setup_logging(verbose)

    sensor = sniff(name)
    if sensor is None:
        click.secho(f"Unknown sensor {name!r}. Try: homesense sensors", fg="red")
        sys.exit(1)

    if address is None:
        address = get_default_address(sensor.name)

    bus = I2CBus(get_bus_number() if bus_num is None else bus_num)
    try:
        sensor.initialize(bus, address)

        # Periodic sensors need a moment before the first sample is ready
        deadline = time.monotonic() + timeout
        readings = sensor.collect()
        while not readings and time.monotonic() < deadline:
            time.sleep(0.5)
            readings = sensor.collect()

        if not readings:
            click.secho(f"  ✗ No data from {sensor.name} within {timeout:.0f}s", fg="yellow")
            sys.exit(1)

        click.echo(f"\n{sensor.source_id} at 0x{sensor.address:02X}")
        click.echo("─" * 40)
        for r in readings:
            tags = " ".join(f"{k}={v}" for k, v in sorted(r.tags.items()))
            click.echo(f"  {r.metric:<45} {r.value:>10.2f} {r.measurement.unit} {tags}")
        click.echo("")
    except SensorError as e:
        click.secho(f"  ✗ {e}", fg="red")
        sys.exit(1)
    finally:
        if sensor.active:
            sensor.cleanup()
        bus.close()


@main.command()
@click.option("--interval", "-i", type=float, default=None, help="Seconds between polling cycles")
@click.option("--bus", "-b", "bus_num", type=int, default=None, help="I2C bus number")
@click.option("--live", is_flag=True, help="Show a live dashboard (requires rich)")
@click.option("--strict", is_flag=True, help="Abort if any enabled sensor fails to initialize")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
def run(interval: Optional[float], bus_num: Optional[int], live: bool, strict: bool, verbose: bool):
    """
    Poll every configured sensor until interrupted.

    Example:

        homesense run --interval 30
    """
    _setup_logging(verbose)

    interval = get_interval() if interval is None else interval
    bus = I2CBus(get_bus_number() if bus_num is None else bus_num)

    try:
        hub = build_hub(bus, get_sensor_configs(), interval, strict=strict)
    except SensorError as e:
        click.secho(f"  ✗ {e}", fg="red")
        bus.close()
        sys.exit(1)

    if not hub.sensors:
        click.secho("No sensors initialized. Run 'homesense scan' to check wiring.", fg="yellow")
        bus.close()
        sys.exit(1)

    try:
        if live:
            from homesense.tui import LiveDashboard

            LiveDashboard().run(hub)
        else:
            hub.add_exporter(LogExporter())
            click.echo("\n  Press Ctrl+C to stop\n")
            hub.run()
    except KeyboardInterrupt:
        click.echo("\n  Stopped.")
    finally:
        hub.stop()
        hub.cleanup()
        bus.close()


# =============================================================================
# SCD4x maintenance
# =============================================================================


@main.group()
@click.option("--address", "-a", type=lambda v: int(v, 0), default=SCD4X_ADDR,
              help="I2C address (default 0x62)")
@click.option("--bus", "-b", "bus_num", type=int, default=None, help="I2C bus number")
@click.pass_context
def scd4x(ctx: click.Context, address: int, bus_num: Optional[int]):
    """
    SCD4x calibration and settings.
    """
    ctx.obj = {"address": address, "bus_num": bus_num}


def _connect_scd4x(ctx: click.Context) -> SCD4x:
    _setup_logging(False)
    opts = ctx.find_object(dict) or {}
    bus_num = opts.get("bus_num")
    bus = I2CBus(get_bus_number() if bus_num is None else bus_num)
    ctx.call_on_close(bus.close)

    sensor = SCD4x()
    try:
        sensor.initialize(bus, opts.get("address", SCD4X_ADDR))
    except SensorError as e:
        click.secho(f"  ✗ {e}", fg="red")
        sys.exit(1)
    return sensor


@scd4x.command("self-test")
@click.pass_context
def scd4x_self_test(ctx: click.Context):
    """Run the on-chip self test (takes about 10 seconds)."""
    sensor = _connect_scd4x(ctx)
    click.echo("  Running self test...")
    if sensor.self_test():
        click.secho("  ✓ Self test passed", fg="green")
    else:
        click.secho("  ✗ Self test reported a malfunction", fg="red")
        sys.exit(1)
    sensor.start_periodic_measurement()


@scd4x.command("calibrate")
@click.argument("target_ppm", type=int)
@click.pass_context
def scd4x_calibrate(ctx: click.Context, target_ppm: int):
    """
    Forced recalibration against a known CO2 level.

    Run the sensor in the target atmosphere for at least 3 minutes first.
    """
    sensor = _connect_scd4x(ctx)
    try:
        correction = sensor.force_recalibration(target_ppm)
    except SensorError as e:
        click.secho(f"  ✗ {e}", fg="red")
        sys.exit(1)
    click.secho(f"  ✓ Recalibrated, correction {correction:+d} ppm", fg="green")
    sensor.start_periodic_measurement()


@scd4x.command("set-altitude")
@click.argument("metres", type=int)
@click.pass_context
def scd4x_set_altitude(ctx: click.Context, metres: int):
    """Set the altitude used for pressure compensation."""
    sensor = _connect_scd4x(ctx)
    sensor.stop_periodic_measurement()
    try:
        sensor.set_altitude(metres)
    except SensorError as e:
        click.secho(f"  ✗ {e}", fg="red")
        sensor.start_periodic_measurement()
        sys.exit(1)
    click.echo(f"  Altitude: {sensor.get_altitude()} m")
    sensor.start_periodic_measurement()


@scd4x.command("set-temperature-offset")
@click.argument("celsius", type=float)
@click.pass_context
def scd4x_set_temperature_offset(ctx: click.Context, celsius: float):
    """Set the self-heating temperature offset."""
    sensor = _connect_scd4x(ctx)
    sensor.stop_periodic_measurement()
    try:
        sensor.set_temperature_offset(celsius)
    except SensorError as e:
        click.secho(f"  ✗ {e}", fg="red")
        sensor.start_periodic_measurement()
        sys.exit(1)
    click.echo(f"  Temperature offset: {sensor.get_temperature_offset():.2f} °C")
    sensor.start_periodic_measurement()


@scd4x.command("persist")
@click.pass_context
def scd4x_persist(ctx: click.Context):
    """Store the current settings in EEPROM."""
    sensor = _connect_scd4x(ctx)
    sensor.stop_periodic_measurement()
    sensor.persist_settings()
    click.secho("  ✓ Settings persisted", fg="green")
    sensor.start_periodic_measurement()


@scd4x.command("factory-reset")
@click.confirmation_option(prompt="Reset the SCD4x to factory settings?")
@click.pass_context
def scd4x_factory_reset(ctx: click.Context):
    """Reset all settings and calibration history."""
    sensor = _connect_scd4x(ctx)
    sensor.factory_reset()
    click.secho("  ✓ Factory reset done", fg="green")
    sensor.start_periodic_measurement()


if __name__ == "__main__":
    main()
