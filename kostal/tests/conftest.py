"""
Shared test fixtures for edge daemon tests.

Provides environment variable fixtures for KostalSettings configuration tests
and a real ``measurements.xml`` document captured from a PIKO 4.6-2 MP plus.
All daemon env vars are cleaned before each test to ensure isolation.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import pytest

# All KostalSettings environment variable names, used for cleanup.
_ALL_KOSTAL_ENV_VARS = (
    "KOSTAL_HOST",
    "INFLUX_HOST",
    "INFLUX_PORT",
    "INFLUX_TOKEN",
    "INFLUX_ORG",
    "INFLUX_BUCKET",
    "VM_HOST",
    "VM_PORT",
    "SLEEP_SECS",
    "REQUEST_TIMEOUT_S",
)

MEASUREMENTS_XML = (
    b"<?xml version='1.0' encoding='UTF-8'?><root>"
    b"<Device Name='PIKO 4.6-2 MP plus' Type='Inverter' Platform='Net16' "
    b"HmiPlatform='HMI17' NominalPower='4600' UserPowerLimit='nan' "
    b"CountryPowerLimit='nan' Serial='766360FJ007607750018' OEMSerial='10351317' "
    b"BusAddress='1' NetBiosName='INV007607750018' WebPortal='PIKO Solar Portal' "
    b"ManufacturerURL='kostal-solar-electric.com' IpAddress='192.168.0.11' "
    b"DateTime='2021-03-07T21:09:38' MilliSeconds='404'>"
    b"<Measurements>"
    b"<Measurement Value='223.3' Unit='V' Type='AC_Voltage'/>"
    b"<Measurement Unit='A' Type='AC_Current'/>"
    b"<Measurement Unit='W' Type='AC_Power'/>"
    b"<Measurement Unit='W' Type='AC_Power_fast'/>"
    b"<Measurement Value='50.028' Unit='Hz' Type='AC_Frequency'/>"
    b"<Measurement Value='3.6' Unit='V' Type='DC_Voltage1'/>"
    b"<Measurement Value='3.2' Unit='V' Type='DC_Voltage2'/>"
    b"<Measurement Unit='A' Type='DC_Current1'/>"
    b"<Measurement Unit='A' Type='DC_Current2'/>"
    b"<Measurement Value='1.3' Unit='V' Type='LINK_Voltage'/>"
    b"<Measurement Value='-981.8' Unit='W' Type='GridPower'/>"
    b"<Measurement Value='981.8' Unit='W' Type='GridConsumedPower'/>"
    b"<Measurement Value='0.0' Unit='W' Type='GridInjectedPower'/>"
    b"<Measurement Value='0.0' Unit='W' Type='OwnConsumedPower'/>"
    b"<Measurement Value='43.0' Unit='%' Type='Derating'/>"
    b"</Measurements></Device></root>"
)
"""Snapshot with 15 measurements, 5 of which carry no value."""


@pytest.fixture(autouse=True)
def _clean_kostal_env(monkeypatch: pytest.MonkeyPatch, tmp_path: str) -> None:
    """Remove all daemon env vars and isolate from .env files before each test.

    Changes working directory to tmp_path so no .env file is accidentally
    loaded by Pydantic BaseSettings.
    """
    for var in _ALL_KOSTAL_ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture()
def measurements_xml() -> bytes:
    """Return the 15-measurement inverter document."""
    return MEASUREMENTS_XML


@pytest.fixture()
def env_vars_full(monkeypatch: pytest.MonkeyPatch) -> dict[str, str]:
    """Set every environment variable for KostalSettings.

    Returns the dict of env var names to values for assertion convenience.
    """
    env = {
        "KOSTAL_HOST": "192.168.0.11",
        "INFLUX_HOST": "influx.lan",
        "INFLUX_PORT": "9086",
        "INFLUX_TOKEN": "test-influx-token",
        "INFLUX_ORG": "home",
        "INFLUX_BUCKET": "solar",
        "VM_HOST": "vm.lan",
        "VM_PORT": "9428",
        "SLEEP_SECS": "15",
        "REQUEST_TIMEOUT_S": "3.5",
    }
    for key, value in env.items():
        monkeypatch.setenv(key, value)
    return env


@pytest.fixture()
def env_vars_vm_only(monkeypatch: pytest.MonkeyPatch) -> dict[str, str]:
    """Set the minimum environment for a VictoriaMetrics-only daemon."""
    env = {
        "KOSTAL_HOST": "10.0.0.50",
        "VM_HOST": "localhost",
    }
    for key, value in env.items():
        monkeypatch.setenv(key, value)
    return env
