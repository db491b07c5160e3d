"""
Pydantic models for a parsed Kostal inverter measurement snapshot.

A DeviceSnapshot is one inverter's full telemetry at an instant, as read from
``/measurements.xml``.  Each Measurement keeps ``value`` optional: the
inverter omits the ``Value`` attribute for channels without a current
reading (e.g. an unused DC string), and that absence must not turn into 0.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

from collections.abc import Iterator

from pydantic import BaseModel


class Measurement(BaseModel):
    """One named instantaneous reading.

    Attributes:
        type: Stable sensor identifier (e.g. ``"AC_Voltage"``).
        unit: Physical unit label (e.g. ``"V"``, ``"W"``, ``"%"``).
        value: Reading, or ``None`` when the inverter reported no value.
    """

    type: str
    unit: str
    value: float | None = None

    @property
    def has_value(self) -> bool:
        return self.value is not None


class DeviceSnapshot(BaseModel):
    """Full telemetry of one inverter at one poll.

    Only ``name`` and ``measurements`` feed the emitted metrics.  The device
    clock (``timestamp``) is diagnostic; points are stamped with the poll's
    capture time instead.  The remaining attributes are carried verbatim from
    the ``Device`` element and default to an empty string when absent.

    Attributes:
        name: Device name, used as tag / label on every emitted series.
        serial: Serial number.
        timestamp: Device-reported local time (``DateTime`` attribute).
        measurements: Readings in source order; types are not deduplicated.
    """

    name: str
    serial: str = ""
    timestamp: str = ""
    device_type: str = ""
    platform: str = ""
    hmi_platform: str = ""
    nominal_power: str = ""
    user_power_limit: str = ""
    country_power_limit: str = ""
    oem_serial: str = ""
    bus_address: str = ""
    netbios_name: str = ""
    web_portal: str = ""
    manufacturer_url: str = ""
    ip_address: str = ""
    milliseconds: str = ""
    measurements: list[Measurement] = []

    def present_measurements(self) -> Iterator[Measurement]:
        """Yield the measurements that carry a value, in source order."""
        return (m for m in self.measurements if m.has_value)
