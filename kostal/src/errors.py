"""
Exception taxonomy for the Kostal edge daemon.

None of these are fatal to the process.  FetchError and ParseError end the
current poll cycle, PowerBalanceError only suppresses the derived power
metrics, and DeliveryError is scoped to the sink that raised it.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from kostal.src.power import PowerBalance


class KostalError(Exception):
    """Base exception for all edge daemon errors."""

    pass


class FetchError(KostalError):
    """Failed to retrieve the measurement document from the inverter."""

    def __init__(self, host: str, message: str) -> None:
        self.host = host
        super().__init__(f"{host}: {message}")


class ParseError(KostalError):
    """The measurement document is malformed or has an unexpected layout."""

    pass


class PowerBalanceError(KostalError):
    """A power balance violates one of its consistency invariants.

    Returned (not raised) by :meth:`PowerBalance.validate`.

    Args:
        balance: The offending power balance.
        reason: Human-readable description of the violated invariant.
    """

    def __init__(self, balance: PowerBalance, reason: str) -> None:
        self.balance = balance
        self.reason = reason
        super().__init__(f"{balance} {reason}")


class DeliveryError(KostalError):
    """A sink failed to deliver its payload.

    Args:
        sink: Name of the sink that failed (``"influxdb"``, ``"victoriametrics"``).
        message: Description of the failure.
        status_code: HTTP status returned by the remote store, if any.
        body: Response body returned by the remote store, if any.
    """

    def __init__(
        self,
        sink: str,
        message: str,
        *,
        status_code: int | None = None,
        body: str | None = None,
    ) -> None:
        self.sink = sink
        self.status_code = status_code
        self.body = body
        super().__init__(f"{sink}: {message}")
