"""
Metric encoders turning a (snapshot, power balance, capture time) triple into
sink-specific payloads.

Two independent encoders, both pure:

1. **Tagged points** for InfluxDB v2 (``influxdb_client.Point``):
   ``kostal_inverter_raw`` with one ``<Type>_<Unit>`` field per measurement,
   and ``kostal_inverter_msf`` with the four derived power fields.
2. **Exposition text** for VictoriaMetrics' Prometheus import endpoint:
   ``name{device="..."} value unix_millis`` lines.

Both stamp everything with the poll's capture time, never the device clock.
Measurements without a value (or with a non-finite one) are skipped, not
emitted as 0.  Derived power output requires a valid PowerBalance.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from influxdb_client import Point, WritePrecision

if TYPE_CHECKING:
    from kostal.src.models import DeviceSnapshot, Measurement
    from kostal.src.power import PowerBalance

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

RAW_MEASUREMENT = "kostal_inverter_raw"
MSF_MEASUREMENT = "kostal_inverter_msf"
DEVICE_TAG = "DeviceName"

METRIC_PREFIX = "kostal"
DEVICE_LABEL = "device"

TOTAL_POWER_METRIC = "kostal_total_power_watts"
OWN_CONSUMED_METRIC = "kostal_own_consumed_watts"
GRID_CONSUMED_METRIC = "kostal_grid_consumed_watts"
GRID_INJECTED_METRIC = "kostal_grid_injected_watts"

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)

_NAME_REPLACEMENTS: tuple[tuple[str, str], ...] = (
    (" ", "_"),
    ("/", "_"),
    ("%", "percent"),
)


def _emittable(measurement: Measurement) -> bool:
    """Return True if *measurement* has a finite value worth emitting."""
    if measurement.value is None:
        logger.debug("Measurement '%s' has no value, skipping", measurement.type)
        return False
    if not math.isfinite(measurement.value):
        logger.debug(
            "Measurement '%s' has non-finite value %s, skipping",
            measurement.type,
            measurement.value,
        )
        return False
    return True


# ---------------------------------------------------------------------------
# Tagged-point encoder (InfluxDB)
# ---------------------------------------------------------------------------


def build_raw_point(snapshot: DeviceSnapshot, captured_at: datetime) -> Point | None:
    """Build the ``kostal_inverter_raw`` point for *snapshot*.

    Returns:
        The point, or ``None`` if no measurement carries a value (InfluxDB
        rejects points without fields).
    """
    point = (
        Point(RAW_MEASUREMENT)
        .tag(DEVICE_TAG, snapshot.name)
        .time(captured_at, WritePrecision.NS)
    )
    field_count = 0
    for measurement in snapshot.measurements:
        if not _emittable(measurement):
            continue
        point.field(f"{measurement.type}_{measurement.unit}", measurement.value)
        field_count += 1

    if field_count == 0:
        logger.warning(
            "No measurement with a value for device=%s, skipping raw point",
            snapshot.name,
        )
        return None
    return point


def build_msf_point(
    snapshot: DeviceSnapshot,
    balance: PowerBalance,
    captured_at: datetime,
) -> Point:
    """Build the ``kostal_inverter_msf`` point with the derived power fields."""
    return (
        Point(MSF_MEASUREMENT)
        .tag(DEVICE_TAG, snapshot.name)
        .time(captured_at, WritePrecision.NS)
        .field("TotalPower_W", balance.total())
        .field("OwnConsumed_W", balance.own_consumed)
        .field("GridConsumed_W", balance.grid_consumed)
        .field("GridInjected_W", balance.grid_injected)
    )


def encode_points(
    snapshot: DeviceSnapshot,
    balance: PowerBalance,
    captured_at: datetime,
) -> list[Point]:
    """Return every InfluxDB point for one poll cycle.

    The raw point is included whenever it has fields; the msf point only
    when *balance* validates.
    """
    points: list[Point] = []
    raw = build_raw_point(snapshot, captured_at)
    if raw is not None:
        points.append(raw)
    if balance.is_valid:
        points.append(build_msf_point(snapshot, balance, captured_at))
    return points


# ---------------------------------------------------------------------------
# Exposition-text encoder (VictoriaMetrics)
# ---------------------------------------------------------------------------


def sanitize_metric_name(name: str) -> str:
    """Make *name* usable as a Prometheus metric name.

    Spaces and ``/`` become ``_`` and ``%`` becomes ``percent``.  The mapping
    is idempotent: none of the replacements introduce a replaced character.
    """
    for old, new in _NAME_REPLACEMENTS:
        name = name.replace(old, new)
    return name


def escape_label_value(value: str) -> str:
    """Escape backslash, double quote and newline in a label value."""
    return value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")


def format_value(value: float) -> str:
    """Render *value* with the shortest representation that round-trips.

    Integral values drop the trailing ``.0`` (``1000.0`` -> ``"1000"``).
    """
    text = repr(float(value))
    if text.endswith(".0"):
        return text[:-2]
    return text


def to_unix_millis(captured_at: datetime) -> int:
    """Convert an aware datetime to integer milliseconds since the epoch."""
    return (captured_at - _EPOCH) // timedelta(milliseconds=1)


def _line(name: str, label: str, value: float, timestamp_ms: int) -> str:
    return f'{name}{{{DEVICE_LABEL}="{label}"}} {format_value(value)} {timestamp_ms}\n'


def build_exposition_payload(
    device_name: str,
    measurements: Iterable[Measurement],
    balance: PowerBalance,
    timestamp_ms: int,
) -> str:
    """Compose the Prometheus text payload for one poll cycle.

    Args:
        device_name: Inverter name, used as the ``device`` label.
        measurements: Measurements in source order.
        balance: Power balance; its four metrics are appended only if valid.
        timestamp_ms: Capture time in unix milliseconds, shared by every line.

    Returns:
        Newline-terminated lines, one per measurement with a value, plus the
        derived power lines.
    """
    label = escape_label_value(device_name)
    lines: list[str] = []

    for measurement in measurements:
        if not _emittable(measurement):
            continue
        name = sanitize_metric_name(
            f"{METRIC_PREFIX}_{measurement.type}_{measurement.unit}"
        )
        lines.append(_line(name, label, measurement.value, timestamp_ms))  # type: ignore[arg-type]

    if balance.is_valid:
        lines.append(_line(TOTAL_POWER_METRIC, label, balance.total(), timestamp_ms))
        lines.append(_line(OWN_CONSUMED_METRIC, label, balance.own_consumed, timestamp_ms))
        lines.append(_line(GRID_CONSUMED_METRIC, label, balance.grid_consumed, timestamp_ms))
        lines.append(_line(GRID_INJECTED_METRIC, label, balance.grid_injected, timestamp_ms))

    return "".join(lines)
