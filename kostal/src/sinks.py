"""
Sink clients delivering encoded metrics to InfluxDB v2 and VictoriaMetrics.

Every sink exposes the same small capability interface (:class:`MetricSink`):
``enabled``, ``emit(snapshot, balance, captured_at)`` and ``close()``.  The
poll loop iterates over the configured sinks without caring which is which;
an unconfigured sink is a :class:`DisabledSink` whose methods are no-ops.

- :class:`InfluxSink` buffers points with a non-blocking ``write()`` and
  delivers them with ``flush()`` once per cycle.  Delivery failures are not
  raised to the caller; they are published on the ``errors`` queue, which a
  background task drains and logs.
- :class:`VictoriaMetricsSink` POSTs the Prometheus text payload
  synchronously and raises DeliveryError on failure.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import abc
import asyncio
import logging
from typing import TYPE_CHECKING

import httpx
from influxdb_client.client.influxdb_client_async import InfluxDBClientAsync

from kostal.src.encoders import build_exposition_payload, encode_points, to_unix_millis
from kostal.src.errors import DeliveryError

if TYPE_CHECKING:
    from datetime import datetime

    from influxdb_client import Point

    from kostal.src.config import KostalSettings
    from kostal.src.models import DeviceSnapshot
    from kostal.src.power import PowerBalance

logger = logging.getLogger(__name__)

_DEFAULT_ERROR_QUEUE_SIZE = 100
_DEFAULT_TIMEOUT_S = 10.0

INFLUX_SINK_NAME = "influxdb"
VM_SINK_NAME = "victoriametrics"


class MetricSink(abc.ABC):
    """Capability interface shared by all sinks."""

    name: str = ""
    enabled: bool = True

    @abc.abstractmethod
    async def emit(
        self,
        snapshot: DeviceSnapshot,
        balance: PowerBalance,
        captured_at: datetime,
    ) -> None:
        """Encode one poll cycle and deliver it.

        Raises:
            DeliveryError: If the sink reports delivery failures in-band.
        """

    async def close(self) -> None:
        """Release any client resources."""


class DisabledSink(MetricSink):
    """Placeholder for a sink without destination configuration.

    All operations are safe no-ops, so callers never need to special-case an
    unconfigured destination.
    """

    enabled = False

    def __init__(self, name: str) -> None:
        self.name = name

    async def emit(
        self,
        snapshot: DeviceSnapshot,
        balance: PowerBalance,
        captured_at: datetime,
    ) -> None:
        return None

    def write(self, point: Point) -> None:
        return None

    async def flush(self) -> None:
        return None

    async def post(self, payload: str) -> None:
        return None


# ---------------------------------------------------------------------------
# InfluxDB v2 (tagged points)
# ---------------------------------------------------------------------------


class InfluxSink(MetricSink):
    """Buffered InfluxDB v2 writer with an out-of-band error channel.

    Points handed to :meth:`write` are kept in memory until :meth:`flush`
    sends them in a single request.  A failed flush drops the pending points
    and puts a :class:`DeliveryError` on :attr:`errors`; if that queue is full
    the error is logged and discarded.

    Args:
        url: InfluxDB base URL, e.g. ``http://influx:8086``.
        token: API token (opaque, never logged).
        org: Organisation name.
        bucket: Destination bucket.
        error_queue_size: Capacity of the error channel.

    Usage::

        sink = InfluxSink(url="http://influx:8086", token="...", org="home",
                          bucket="solar")
        sink.write(point)
        await sink.flush()
    """

    name = INFLUX_SINK_NAME

    def __init__(
        self,
        url: str,
        token: str,
        org: str,
        bucket: str,
        error_queue_size: int = _DEFAULT_ERROR_QUEUE_SIZE,
    ) -> None:
        self._url = url
        self._org = org
        self._bucket = bucket
        self._client = InfluxDBClientAsync(url=url, token=token, org=org)
        self._write_api = self._client.write_api()
        self._pending: list[Point] = []
        self._errors: asyncio.Queue[DeliveryError] = asyncio.Queue(
            maxsize=error_queue_size
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def errors(self) -> asyncio.Queue[DeliveryError]:
        """Queue of delivery errors, to be drained by a background task."""
        return self._errors

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def write(self, point: Point) -> None:
        """Queue *point* for the next flush.  Never blocks."""
        self._pending.append(point)

    async def flush(self) -> None:
        """Send all pending points in one request.

        Failures are reported on :attr:`errors`, never raised.
        """
        if not self._pending:
            return

        points, self._pending = self._pending, []
        try:
            await self._write_api.write(
                bucket=self._bucket,
                org=self._org,
                record=points,
            )
        except Exception as exc:
            self._report(
                DeliveryError(
                    self.name,
                    f"write of {len(points)} points to bucket "
                    f"'{self._bucket}' failed: {exc!r}",
                )
            )
            return

        logger.info(
            "InfluxDB flushed: points=%d bucket=%s", len(points), self._bucket
        )

    async def emit(
        self,
        snapshot: DeviceSnapshot,
        balance: PowerBalance,
        captured_at: datetime,
    ) -> None:
        for point in encode_points(snapshot, balance, captured_at):
            self.write(point)
        await self.flush()

    async def close(self) -> None:
        await self._client.close()

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _report(self, error: DeliveryError) -> None:
        try:
            self._errors.put_nowait(error)
        except asyncio.QueueFull:
            logger.warning("InfluxDB error channel full, dropping error: %s", error)


# ---------------------------------------------------------------------------
# VictoriaMetrics (Prometheus text exposition)
# ---------------------------------------------------------------------------


class VictoriaMetricsSink(MetricSink):
    """Single-POST-per-cycle writer for VictoriaMetrics' Prometheus import API.

    Any 2xx or 3xx response counts as delivered.  Transport errors and other
    statuses raise :class:`DeliveryError`, with the response body attached
    for diagnostics.

    Args:
        host: VictoriaMetrics hostname.
        port: VictoriaMetrics HTTP port (default 8428).
        timeout_s: Request timeout in seconds.
    """

    name = VM_SINK_NAME

    def __init__(
        self,
        host: str,
        port: int = 8428,
        timeout_s: float = _DEFAULT_TIMEOUT_S,
    ) -> None:
        self._host = host
        self._port = port
        self._timeout_s = timeout_s

    @property
    def url(self) -> str:
        return f"http://{self._host}:{self._port}/api/v1/import/prometheus"

    async def post(self, payload: str) -> None:
        """POST *payload* to the import endpoint.

        Raises:
            DeliveryError: On a transport error or a status outside 2xx/3xx.
        """
        try:
            async with httpx.AsyncClient(timeout=self._timeout_s) as client:
                response = await client.post(
                    self.url,
                    content=payload.encode("utf-8"),
                    headers={"Content-Type": "text/plain"},
                )
        except httpx.HTTPError as exc:
            raise DeliveryError(self.name, f"request failed: {exc!r}") from exc

        if not 200 <= response.status_code < 400:
            raise DeliveryError(
                self.name,
                f"returned status {response.status_code}: {response.text}",
                status_code=response.status_code,
                body=response.text,
            )

        logger.info(
            "VictoriaMetrics written: lines=%d status=%d",
            payload.count("\n"),
            response.status_code,
        )

    async def emit(
        self,
        snapshot: DeviceSnapshot,
        balance: PowerBalance,
        captured_at: datetime,
    ) -> None:
        payload = build_exposition_payload(
            snapshot.name,
            snapshot.measurements,
            balance,
            to_unix_millis(captured_at),
        )
        await self.post(payload)


# ---------------------------------------------------------------------------
# Construction from settings
# ---------------------------------------------------------------------------


def build_sinks(settings: KostalSettings) -> list[MetricSink]:
    """Create one sink per destination; unconfigured ones are disabled.

    Must be called from within a running event loop (the InfluxDB async
    client opens its HTTP session on construction).
    """
    sinks: list[MetricSink] = []

    if settings.influx_enabled:
        sinks.append(
            InfluxSink(
                url=settings.influx_url,
                token=settings.influx_token,
                org=settings.influx_org,
                bucket=settings.influx_bucket,
            )
        )
    else:
        sinks.append(DisabledSink(INFLUX_SINK_NAME))

    if settings.vm_enabled:
        sinks.append(
            VictoriaMetricsSink(
                host=settings.vm_host,
                port=settings.vm_port,
                timeout_s=settings.request_timeout_s,
            )
        )
    else:
        sinks.append(DisabledSink(VM_SINK_NAME))

    return sinks
