"""
Edge daemon configuration loaded from command-line flags and environment variables.

Uses Pydantic BaseSettings for env var loading and validation.  Command-line
flags are parsed with argparse and passed as init values; environment
variables take precedence over flags, which take precedence over a ``.env``
file and the field defaults.  Empty environment variables are ignored.

No hardcoded hosts, buckets, or credentials: the inverter host is required,
and at least one sink (InfluxDB or VictoriaMetrics) must be configured.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import argparse
from collections.abc import Sequence

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource


class KostalSettings(BaseSettings):
    """Edge daemon configuration for the Kostal-to-InfluxDB pipeline.

    Attributes:
        kostal_host: Hostname or IP of the Kostal inverter.
        influx_host: InfluxDB v2 hostname.
        influx_port: InfluxDB v2 HTTP port (default 8086).
        influx_token: InfluxDB v2 API token.  Enables the InfluxDB sink.
        influx_org: InfluxDB v2 organisation.
        influx_bucket: InfluxDB v2 destination bucket.
        vm_host: VictoriaMetrics hostname.  Enables the VictoriaMetrics sink.
        vm_port: VictoriaMetrics HTTP port (default 8428).
        sleep_secs: Seconds between poll cycles.
        request_timeout_s: Timeout for inverter and VictoriaMetrics requests.
    """

    kostal_host: str
    influx_host: str = ""
    influx_port: int = 8086
    influx_token: str = ""
    influx_org: str = ""
    influx_bucket: str = ""
    vm_host: str = ""
    vm_port: int = 8428
    sleep_secs: int = 5
    request_timeout_s: float = 10.0

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_ignore_empty": True,
    }

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Let environment variables override command-line flags."""
        return env_settings, init_settings, dotenv_settings, file_secret_settings

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    @property
    def influx_enabled(self) -> bool:
        return bool(self.influx_token)

    @property
    def vm_enabled(self) -> bool:
        return bool(self.vm_host)

    @property
    def influx_url(self) -> str:
        return f"http://{self.influx_host}:{self.influx_port}"

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    @field_validator("kostal_host")
    @classmethod
    def kostal_host_must_be_set(cls, v: str) -> str:
        """Reject an empty inverter host."""
        if not v.strip():
            raise ValueError("KOSTAL_HOST must not be empty")
        return v

    @field_validator("influx_port", "vm_port")
    @classmethod
    def port_must_be_valid(cls, v: int) -> int:
        """Validate TCP port is in valid range."""
        if v < 1 or v > 65535:
            raise ValueError("port must be between 1 and 65535")
        return v

    @field_validator("sleep_secs")
    @classmethod
    def sleep_secs_must_be_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("SLEEP_SECS must be >= 1")
        return v

    @field_validator("request_timeout_s")
    @classmethod
    def request_timeout_must_be_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("REQUEST_TIMEOUT_S must be > 0")
        return v

    @model_validator(mode="after")
    def _require_a_sink(self) -> KostalSettings:
        """At least one sink must be configured, and InfluxDB completely."""
        if not self.influx_enabled and not self.vm_enabled:
            raise ValueError(
                "Either InfluxDB token (INFLUX_TOKEN) or VictoriaMetrics host "
                "(VM_HOST) required"
            )
        if self.influx_enabled:
            missing = [
                name.upper()
                for name in ("influx_host", "influx_org", "influx_bucket")
                if not getattr(self, name)
            ]
            if missing:
                raise ValueError(
                    f"INFLUX_TOKEN is set but {', '.join(missing)} missing"
                )
        return self


# ---------------------------------------------------------------------------
# Command-line flags
# ---------------------------------------------------------------------------


def build_arg_parser() -> argparse.ArgumentParser:
    """Return the argument parser for the daemon's command-line flags.

    Flags default to ``argparse.SUPPRESS`` so that only flags given
    explicitly reach the settings; everything else falls through to the
    ``.env`` file and the field defaults.
    """
    parser = argparse.ArgumentParser(
        prog="kostal2influx",
        description="Poll a Kostal PIKO inverter and write its measurements "
        "to InfluxDB v2 and/or VictoriaMetrics.",
        argument_default=argparse.SUPPRESS,
    )
    parser.add_argument("--kostal-host", dest="kostal_host",
                        help="hostname or IP of the Kostal inverter")
    parser.add_argument("--influx-host", dest="influx_host",
                        help="hostname of the InfluxDB v2 server")
    parser.add_argument("--influx-port", dest="influx_port", type=int,
                        help="InfluxDB v2 port (default 8086)")
    parser.add_argument("--influx-token", dest="influx_token",
                        help="InfluxDB v2 token (or use INFLUX_TOKEN env)")
    parser.add_argument("--influx-org", dest="influx_org",
                        help="InfluxDB v2 organisation")
    parser.add_argument("--influx-bucket", dest="influx_bucket",
                        help="InfluxDB v2 bucket")
    parser.add_argument("--vm-host", dest="vm_host",
                        help="VictoriaMetrics host (for double-write)")
    parser.add_argument("--vm-port", dest="vm_port", type=int,
                        help="VictoriaMetrics port (default 8428)")
    parser.add_argument("--sleep-secs", dest="sleep_secs", type=int,
                        help="seconds between polls (default 5)")
    parser.add_argument("--request-timeout-s", dest="request_timeout_s", type=float,
                        help="HTTP request timeout in seconds (default 10)")
    return parser


def load_settings(argv: Sequence[str] | None = None) -> KostalSettings:
    """Parse *argv* (default ``sys.argv[1:]``) and build the settings.

    Raises:
        pydantic.ValidationError: If the combined configuration is invalid.
    """
    flags = vars(build_arg_parser().parse_args(argv))
    return KostalSettings(**flags)
