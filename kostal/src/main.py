"""
Edge daemon main loop for the Kostal-to-InfluxDB pipeline.

Runs one sequential asyncio poll loop plus one background task per sink
error channel:

1. **Poll loop**: waits ``sleep_secs``, fetches ``measurements.xml`` from the
   inverter, parses it into a DeviceSnapshot, derives the PowerBalance and
   hands the cycle to every enabled sink in turn.
2. **Error drain**: consumes the InfluxDB sink's error queue for the lifetime
   of the process and logs each delivery error.

A fetch or parse failure ends the current cycle only.  An inconsistent power
balance only suppresses the derived metrics.  A delivery failure in one sink
never prevents the other sink's attempt.  Graceful shutdown on SIGTERM/SIGINT
sets a shared asyncio.Event; the loop finishes its current cycle and the sinks
are closed.

Structured JSON logging is used for all events.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import asyncio
import contextlib
import hashlib
import json
import logging
import signal
import sys
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from kostal.src.errors import DeliveryError, FetchError, ParseError
from kostal.src.parser import parse_snapshot
from kostal.src.power import PowerBalance

if TYPE_CHECKING:
    from kostal.src.fetcher import DeviceFetcher
    from kostal.src.models import DeviceSnapshot
    from kostal.src.sinks import MetricSink

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Structured JSON logging setup
# ---------------------------------------------------------------------------


def configure_logging() -> None:
    """Configure structured JSON logging for the edge daemon.

    Sets up the root logger with a JSON-formatted handler writing to stderr.
    """

    class _JsonFormatter(logging.Formatter):
        """Minimal JSON log formatter."""

        def format(self, record: logging.LogRecord) -> str:
            log_entry = {
                "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
                "level": record.levelname,
                "logger": record.name,
                "msg": record.getMessage(),
            }
            if record.exc_info and record.exc_info[1] is not None:
                log_entry["exception"] = self.formatException(record.exc_info)
            return json.dumps(log_entry)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(_JsonFormatter())
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(logging.INFO)


def _masked_token(value: str | None) -> str:
    """Return a short non-reversible token fingerprint for diagnostics."""
    if not value:
        return "empty"
    digest = hashlib.sha256(value.encode("utf-8")).hexdigest()[:10]
    return f"len={len(value)} sha256={digest}"


# ---------------------------------------------------------------------------
# Startup config logging
# ---------------------------------------------------------------------------


def log_config_summary(settings: object) -> None:
    """Log a config summary at startup, excluding secrets.

    The InfluxDB token is replaced by a fingerprint.

    Args:
        settings: A KostalSettings instance (or any object with the same attrs).
    """
    logger.info(
        "Edge daemon starting with config: "
        "kostal_host=%s, influx_host=%s, influx_port=%s, influx_org=%s, "
        "influx_bucket=%s, vm_host=%s, vm_port=%s, sleep_secs=%s, "
        "request_timeout_s=%s, influx_token_masked=%s",
        settings.kostal_host,  # type: ignore[attr-defined]
        settings.influx_host,  # type: ignore[attr-defined]
        settings.influx_port,  # type: ignore[attr-defined]
        settings.influx_org,  # type: ignore[attr-defined]
        settings.influx_bucket,  # type: ignore[attr-defined]
        settings.vm_host,  # type: ignore[attr-defined]
        settings.vm_port,  # type: ignore[attr-defined]
        settings.sleep_secs,  # type: ignore[attr-defined]
        settings.request_timeout_s,  # type: ignore[attr-defined]
        _masked_token(settings.influx_token),  # type: ignore[attr-defined]
    )


# ---------------------------------------------------------------------------
# Single-iteration functions (easily testable)
# ---------------------------------------------------------------------------


async def _emit_all(
    sinks: Sequence[MetricSink],
    snapshot: DeviceSnapshot,
    balance: PowerBalance,
    captured_at: datetime,
) -> None:
    """Hand one cycle to every enabled sink, isolating their failures."""
    for sink in sinks:
        if not sink.enabled:
            continue
        try:
            await sink.emit(snapshot, balance, captured_at)
        except DeliveryError as exc:
            logger.error("Delivery failed: sink=%s error=%s", sink.name, exc)
        except Exception:
            logger.error("Unexpected error in sink=%s", sink.name, exc_info=True)


async def _poll_once(
    *,
    fetcher: DeviceFetcher,
    sinks: Sequence[MetricSink],
) -> bool:
    """Execute a single fetch-parse-reconcile-emit cycle.

    Catches all exceptions so that the caller's loop is never broken.

    Args:
        fetcher: The inverter feed fetcher.
        sinks: Configured sinks; disabled ones are skipped.

    Returns:
        True if a snapshot was obtained and handed to the sinks.
    """
    captured_at = datetime.now(tz=UTC)

    try:
        body = await fetcher.fetch()
    except FetchError as exc:
        logger.warning(
            "Fetch failed: method=fetch kostal_host=%s error=%s", fetcher.host, exc
        )
        return False
    except Exception:
        logger.error("Unexpected fetch error: kostal_host=%s", fetcher.host, exc_info=True)
        return False

    try:
        snapshot = parse_snapshot(body)
    except ParseError as exc:
        logger.warning(
            "Parse failed: kostal_host=%s error=%s", fetcher.host, exc
        )
        return False
    except Exception:
        logger.error("Unexpected parse error: kostal_host=%s", fetcher.host, exc_info=True)
        return False

    logger.info(
        "Measurement ok: device=%s measurements=%d time=%s device_time=%s",
        snapshot.name,
        len(snapshot.measurements),
        captured_at.isoformat(),
        snapshot.timestamp,
    )

    try:
        balance = PowerBalance.from_snapshot(snapshot)
        problem = balance.validate()
        logger.info(
            "Power: total=%s own_consumed=%s grid_consumed=%s grid_injected=%s err=%s",
            balance.total(),
            balance.own_consumed,
            balance.grid_consumed,
            balance.grid_injected,
            problem,
        )
        if problem is not None:
            logger.warning("Power balance invalid, skipping derived metrics: %s", problem)

        await _emit_all(sinks, snapshot, balance, captured_at)
    except Exception:
        logger.error("Poll cycle error", exc_info=True)
    return True


async def drain_errors(sink_name: str, errors: asyncio.Queue[DeliveryError]) -> None:
    """Log every error published on *errors*, forever.

    Meant to run as a background task for the whole process lifetime.
    """
    while True:
        error = await errors.get()
        logger.error("Async write error: sink=%s error=%s", sink_name, error)
        errors.task_done()


# ---------------------------------------------------------------------------
# Loop runners
# ---------------------------------------------------------------------------


async def _poll_loop(
    *,
    fetcher: DeviceFetcher,
    sinks: Sequence[MetricSink],
    poll_interval_s: float,
    shutdown_event: asyncio.Event,
) -> None:
    """Run the poll loop until shutdown_event is set.

    Each iteration first waits poll_interval_s (returning early on shutdown)
    and then executes _poll_once.

    Args:
        fetcher: The inverter feed fetcher.
        sinks: Configured sinks.
        poll_interval_s: Seconds between poll cycles.
        shutdown_event: Event to signal graceful shutdown.
    """
    logger.info("Poll loop started (interval=%ss)", poll_interval_s)
    while not shutdown_event.is_set():
        # Use wait with timeout so we can check shutdown between sleeps
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(
                shutdown_event.wait(),
                timeout=poll_interval_s,
            )
        if shutdown_event.is_set():
            break
        await _poll_once(fetcher=fetcher, sinks=sinks)
    logger.info("Poll loop stopped")


async def run(
    *,
    fetcher: DeviceFetcher,
    sinks: Sequence[MetricSink],
    poll_interval_s: float,
    shutdown_event: asyncio.Event,
) -> None:
    """Run the poll loop and the error drains until shutdown.

    One drain task is started for every enabled sink exposing an ``errors``
    asyncio.Queue.  On shutdown the drains are cancelled and every sink is closed.

    Args:
        fetcher: The inverter feed fetcher.
        sinks: Configured sinks.
        poll_interval_s: Seconds between poll cycles.
        shutdown_event: Event to signal graceful shutdown.
    """
    drains = []
    for sink in sinks:
        errors = getattr(sink, "errors", None)
        if sink.enabled and isinstance(errors, asyncio.Queue):
            drains.append(asyncio.create_task(drain_errors(sink.name, errors)))
    try:
        await _poll_loop(
            fetcher=fetcher,
            sinks=sinks,
            poll_interval_s=poll_interval_s,
            shutdown_event=shutdown_event,
        )
    finally:
        for task in drains:
            task.cancel()
        await asyncio.gather(*drains, return_exceptions=True)
        for sink in sinks:
            try:
                await sink.close()
            except Exception:
                logger.warning("Failed to close sink=%s", sink.name, exc_info=True)
        logger.info("Shutdown complete")


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------


async def async_main(argv: Sequence[str] | None = None) -> None:
    """Async entrypoint: load config, build components, run the loop.

    Sets up SIGTERM/SIGINT handlers to trigger graceful shutdown.
    """
    configure_logging()

    from pydantic import ValidationError

    from kostal.src.config import load_settings
    from kostal.src.fetcher import DeviceFetcher
    from kostal.src.sinks import build_sinks

    try:
        settings = load_settings(argv)
    except ValidationError as exc:
        logger.error("Invalid configuration: %s", exc)
        raise SystemExit(1) from exc

    log_config_summary(settings)

    shutdown_event = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(
            sig,
            lambda: _handle_signal(shutdown_event),
        )

    fetcher = DeviceFetcher(
        host=settings.kostal_host,
        timeout_s=settings.request_timeout_s,
    )
    sinks = build_sinks(settings)

    await run(
        fetcher=fetcher,
        sinks=sinks,
        poll_interval_s=settings.sleep_secs,
        shutdown_event=shutdown_event,
    )


def _handle_signal(shutdown_event: asyncio.Event) -> None:
    """Handle SIGTERM/SIGINT by setting the shutdown event.

    Args:
        shutdown_event: The event to set for graceful shutdown.
    """
    logger.info("Received shutdown signal, initiating graceful shutdown")
    shutdown_event.set()


def main() -> None:
    """Synchronous entrypoint for the edge daemon."""
    asyncio.run(async_main())


if __name__ == "__main__":
    main()
