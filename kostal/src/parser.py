"""
Pure parser that converts the inverter's ``measurements.xml`` into a DeviceSnapshot.

Expected document layout::

    <root>
      <Device Name="..." Serial="..." DateTime="..." ...>
        <Measurements>
          <Measurement Value="223.3" Unit="V" Type="AC_Voltage"/>
          <Measurement Unit="A" Type="AC_Current"/>
          ...
        </Measurements>
      </Device>
    </root>

This is a pure function: no side effects, no I/O, no clock.  Any structural
or numeric problem raises ParseError; a partially populated snapshot is never
returned.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET

from kostal.src.errors import ParseError
from kostal.src.models import DeviceSnapshot, Measurement

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Mapping from DeviceSnapshot field names to <Device> attribute names.
# ---------------------------------------------------------------------------

_DEVICE_ATTR_MAP: dict[str, str] = {
    "name": "Name",
    "serial": "Serial",
    "timestamp": "DateTime",
    "device_type": "Type",
    "platform": "Platform",
    "hmi_platform": "HmiPlatform",
    "nominal_power": "NominalPower",
    "user_power_limit": "UserPowerLimit",
    "country_power_limit": "CountryPowerLimit",
    "oem_serial": "OEMSerial",
    "bus_address": "BusAddress",
    "netbios_name": "NetBiosName",
    "web_portal": "WebPortal",
    "manufacturer_url": "ManufacturerURL",
    "ip_address": "IpAddress",
    "milliseconds": "MilliSeconds",
}
"""Maps DeviceSnapshot field name -> attribute of the <Device> element."""

_ROOT_TAG = "root"


def _parse_measurement(element: ET.Element) -> Measurement:
    """Build a Measurement from a single <Measurement> element.

    A missing ``Value`` attribute yields ``value=None``.  A present but
    non-numeric ``Value`` raises ParseError.
    """
    m_type = element.get("Type", "")
    unit = element.get("Unit", "")
    raw_value = element.get("Value")

    if raw_value is None:
        return Measurement(type=m_type, unit=unit, value=None)

    # float() also accepts digit separators and padding; the inverter never sends those.
    if "_" in raw_value or raw_value != raw_value.strip():
        raise ParseError(f"Measurement '{m_type}': invalid Value {raw_value!r}")

    try:
        value = float(raw_value)
    except ValueError as exc:
        raise ParseError(
            f"Measurement '{m_type}': invalid Value {raw_value!r}"
        ) from exc

    return Measurement(type=m_type, unit=unit, value=value)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def parse_snapshot(data: bytes) -> DeviceSnapshot:
    """Parse a ``measurements.xml`` document into a DeviceSnapshot.

    Args:
        data: Raw XML bytes as returned by the inverter.

    Returns:
        The parsed snapshot.  Measurements keep their source order and count.

    Raises:
        ParseError: If the document is not well-formed XML, the root element
            is not ``<root>``, the ``<Device>`` element is missing, or a
            ``Value`` attribute is not a number.
    """
    try:
        root = ET.fromstring(data)
    except (ET.ParseError, LookupError, ValueError) as exc:
        # LookupError: unknown declared encoding; ValueError: undecodable bytes.
        raise ParseError(f"Malformed XML: {exc}") from exc

    if root.tag != _ROOT_TAG:
        raise ParseError(f"Expected <{_ROOT_TAG}> element, got <{root.tag}>")

    device = root.find("Device")
    if device is None:
        raise ParseError("Missing <Device> element")

    fields = {
        field_name: device.get(attr, "")
        for field_name, attr in _DEVICE_ATTR_MAP.items()
    }

    # A device without a <Measurements> block yields an empty snapshot.
    measurements = [
        _parse_measurement(element)
        for element in device.iterfind("Measurements/Measurement")
    ]

    logger.debug(
        "Parsed snapshot: device=%s measurements=%d",
        fields["name"],
        len(measurements),
    )
    return DeviceSnapshot(measurements=measurements, **fields)
