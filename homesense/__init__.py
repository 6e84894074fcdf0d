"""
homesense - poll environmental sensors on an I2C bus.

Usage:
    from homesense.bus import I2CBus
    from homesense.sensors import SensorHub, SCD4x, BME68x
    from homesense.exporters import LogExporter

    bus = I2CBus(1)
    hub = SensorHub(interval=10)

    scd = SCD4x()
    scd.initialize(bus, 0x62)
    hub.add(scd)

    hub.add_exporter(LogExporter())
    hub.run()
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
