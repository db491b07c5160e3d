"""
Async HTTP fetcher for the Kostal PIKO ``measurements.xml`` feed.

Issues a single unauthenticated ``GET http://<host>/measurements.xml`` per
poll cycle and returns the raw body.  The inverter is treated as untrusted:
the body is handed to the parser unmodified.

There is no retry or backoff within a cycle; a failed fetch raises FetchError
and the poll loop simply tries again on the next interval.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import logging

import httpx

from kostal.src.errors import FetchError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

MEASUREMENTS_PATH: str = "/measurements.xml"
"""Path of the measurement document on the inverter's web server."""

DEFAULT_TIMEOUT_S: float = 10.0
"""Timeout for the whole request in seconds."""


class DeviceFetcher:
    """Fetches the measurement document from one inverter.

    Args:
        host: Inverter hostname or IP address (optionally ``host:port``).
        timeout_s: Request timeout in seconds.

    Usage::

        fetcher = DeviceFetcher(host="192.168.0.11")
        body = await fetcher.fetch()
    """

    def __init__(self, host: str, timeout_s: float = DEFAULT_TIMEOUT_S) -> None:
        self._host = host
        self._timeout_s = timeout_s

    @property
    def host(self) -> str:
        return self._host

    @property
    def url(self) -> str:
        return f"http://{self._host}{MEASUREMENTS_PATH}"

    async def fetch(self) -> bytes:
        """GET the measurement document.

        Returns:
            The raw response body.

        Raises:
            FetchError: On any transport error or a non-2xx response.
        """
        try:
            async with httpx.AsyncClient(timeout=self._timeout_s) as client:
                response = await client.get(self.url)
        except httpx.HTTPError as exc:
            raise FetchError(self._host, f"request failed: {exc!r}") from exc

        if not 200 <= response.status_code < 300:
            raise FetchError(
                self._host,
                f"unexpected HTTP status {response.status_code}",
            )

        logger.debug("Fetched %d bytes from %s", len(response.content), self.url)
        return response.content
