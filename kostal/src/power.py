"""
Power balance reconciliation for a Kostal snapshot.

The inverter reports three power-flow channels:

- ``OwnConsumedPower``: self-generated power used by the house.
- ``GridConsumedPower``: power drawn from the grid.
- ``GridInjectedPower``: surplus power exported to the grid.

PowerBalance collects them (missing channels count as 0 W), computes the total
house consumption, and checks the balance for consistency.  An inconsistent
balance is not an error for the poll cycle; it only suppresses the derived
("msf") metrics.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import TYPE_CHECKING

from kostal.src.errors import PowerBalanceError

if TYPE_CHECKING:
    from kostal.src.models import DeviceSnapshot

logger = logging.getLogger(__name__)

OWN_CONSUMED_TYPE = "OwnConsumedPower"
GRID_CONSUMED_TYPE = "GridConsumedPower"
GRID_INJECTED_TYPE = "GridInjectedPower"

_FIELD_BY_TYPE: dict[str, str] = {
    OWN_CONSUMED_TYPE: "own_consumed",
    GRID_CONSUMED_TYPE: "grid_consumed",
    GRID_INJECTED_TYPE: "grid_injected",
}
"""Maps measurement type -> PowerBalance field name."""


@dataclass(frozen=True, slots=True)
class PowerBalance:
    """Grid / self-consumption decomposition in watts.

    Attributes:
        own_consumed: Self-generated power consumed locally.
        grid_consumed: Power drawn from the grid.
        grid_injected: Power exported to the grid.
    """

    own_consumed: float = 0.0
    grid_consumed: float = 0.0
    grid_injected: float = 0.0

    @classmethod
    def from_snapshot(cls, snapshot: DeviceSnapshot) -> PowerBalance:
        """Build a balance from the power-flow measurements of *snapshot*.

        Channels that are missing or carry no (or a non-finite) value
        default to 0.  When a channel appears more than once the last
        occurrence wins.
        """
        values: dict[str, float] = {}
        for measurement in snapshot.measurements:
            field_name = _FIELD_BY_TYPE.get(measurement.type)
            if field_name is None or measurement.value is None:
                continue
            if not math.isfinite(measurement.value):
                continue
            if field_name in values:
                logger.warning(
                    "Duplicate measurement '%s': replacing %s with %s",
                    measurement.type,
                    values[field_name],
                    measurement.value,
                )
            values[field_name] = measurement.value
        return cls(**values)

    def total(self) -> float:
        """Total house consumption in watts.

        While drawing from the grid, the house uses grid power plus the
        self-generated share.  Otherwise self-generated power feeds the load
        first and the surplus is exported.
        """
        if self.grid_consumed > 0:
            return self.grid_consumed + self.own_consumed
        return self.own_consumed + self.grid_injected

    def validate(self) -> PowerBalanceError | None:
        """Return the first violated invariant, or ``None`` if consistent.

        - No field may be negative.
        - Exactly one of grid_consumed / grid_injected must be positive.
        """
        if self.own_consumed < 0 or self.grid_consumed < 0 or self.grid_injected < 0:
            return PowerBalanceError(self, "invalid, power cannot be negative")
        if (self.grid_consumed == 0 and self.grid_injected == 0) or (
            self.grid_consumed > 0 and self.grid_injected > 0
        ):
            return PowerBalanceError(
                self,
                "inconsistent, either we are injecting power into the grid "
                "or consuming from the grid",
            )
        return None

    @property
    def is_valid(self) -> bool:
        return self.validate() is None
