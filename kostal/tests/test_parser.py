"""
Tests for the measurements.xml parser -- converts raw XML bytes to DeviceSnapshot.

Verifies measurement order and count, optional-value handling, device
attribute mapping, and that malformed documents raise ParseError.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import pytest
from kostal.src.errors import ParseError
from kostal.src.models import DeviceSnapshot
from kostal.src.parser import parse_snapshot


def _doc(measurements: str, device_attrs: str = "Name='inv'") -> bytes:
    return (
        f"<root><Device {device_attrs}><Measurements>{measurements}"
        "</Measurements></Device></root>"
    ).encode()


# ===========================================================================
# Fixture document
# ===========================================================================


class TestParseFixture:
    """Parsing the captured PIKO document."""

    def test_returns_snapshot(self, measurements_xml: bytes) -> None:
        snapshot = parse_snapshot(measurements_xml)
        assert isinstance(snapshot, DeviceSnapshot)

    def test_measurement_count(self, measurements_xml: bytes) -> None:
        snapshot = parse_snapshot(measurements_xml)
        assert len(snapshot.measurements) == 15

    def test_first_measurement(self, measurements_xml: bytes) -> None:
        first = parse_snapshot(measurements_xml).measurements[0]
        assert first.type == "AC_Voltage"
        assert first.unit == "V"
        assert first.value == 223.3

    def test_second_measurement_has_no_value(self, measurements_xml: bytes) -> None:
        """A missing Value attribute is None, not 0."""
        second = parse_snapshot(measurements_xml).measurements[1]
        assert second.type == "AC_Current"
        assert second.unit == "A"
        assert second.value is None
        assert second.has_value is False

    def test_source_order_preserved(self, measurements_xml: bytes) -> None:
        types = [m.type for m in parse_snapshot(measurements_xml).measurements]
        assert types[:3] == ["AC_Voltage", "AC_Current", "AC_Power"]
        assert types[-1] == "Derating"

    def test_zero_value_is_present(self, measurements_xml: bytes) -> None:
        snapshot = parse_snapshot(measurements_xml)
        injected = [m for m in snapshot.measurements if m.type == "GridInjectedPower"]
        assert injected[0].value == 0.0
        assert injected[0].has_value is True

    def test_present_measurements_skips_missing(self, measurements_xml: bytes) -> None:
        snapshot = parse_snapshot(measurements_xml)
        present = list(snapshot.present_measurements())
        assert len(present) == 10
        assert all(m.value is not None for m in present)

    def test_device_attributes(self, measurements_xml: bytes) -> None:
        snapshot = parse_snapshot(measurements_xml)
        assert snapshot.name == "PIKO 4.6-2 MP plus"
        assert snapshot.serial == "766360FJ007607750018"
        assert snapshot.timestamp == "2021-03-07T21:09:38"
        assert snapshot.device_type == "Inverter"
        assert snapshot.nominal_power == "4600"
        assert snapshot.ip_address == "192.168.0.11"
        assert snapshot.milliseconds == "404"


# ===========================================================================
# Lenient structure
# ===========================================================================


class TestOptionalStructure:
    """Missing optional attributes and elements."""

    def test_missing_device_attributes_default_empty(self) -> None:
        snapshot = parse_snapshot(_doc("", device_attrs=""))
        assert snapshot.name == ""
        assert snapshot.serial == ""
        assert snapshot.timestamp == ""

    def test_missing_measurements_element(self) -> None:
        snapshot = parse_snapshot(b"<root><Device Name='inv'/></root>")
        assert snapshot.measurements == []

    def test_duplicate_types_kept(self) -> None:
        xml = _doc(
            "<Measurement Value='1' Unit='W' Type='GridConsumedPower'/>"
            "<Measurement Value='2' Unit='W' Type='GridConsumedPower'/>"
        )
        snapshot = parse_snapshot(xml)
        assert [m.value for m in snapshot.measurements] == [1.0, 2.0]

    def test_negative_and_exponent_values(self) -> None:
        xml = _doc(
            "<Measurement Value='-981.8' Unit='W' Type='GridPower'/>"
            "<Measurement Value='1e3' Unit='W' Type='AC_Power'/>"
        )
        values = [m.value for m in parse_snapshot(xml).measurements]
        assert values == [-981.8, 1000.0]


# ===========================================================================
# Failures
# ===========================================================================


class TestParseErrors:
    """Malformed documents raise ParseError and return no snapshot."""

    def test_truncated_document(self, measurements_xml: bytes) -> None:
        with pytest.raises(ParseError):
            parse_snapshot(measurements_xml[:200])

    def test_empty_body(self) -> None:
        with pytest.raises(ParseError):
            parse_snapshot(b"")

    def test_not_xml(self) -> None:
        with pytest.raises(ParseError):
            parse_snapshot(b"<html><body>Login</body>")

    def test_wrong_root_element(self) -> None:
        with pytest.raises(ParseError, match="root"):
            parse_snapshot(b"<html><Device Name='x'/></html>")

    def test_missing_device(self) -> None:
        with pytest.raises(ParseError, match="Device"):
            parse_snapshot(b"<root></root>")

    def test_malformed_value(self) -> None:
        xml = _doc("<Measurement Value='12,5' Unit='V' Type='AC_Voltage'/>")
        with pytest.raises(ParseError, match="AC_Voltage"):
            parse_snapshot(xml)

    def test_parse_error_wraps_cause(self) -> None:
        with pytest.raises(ParseError) as exc_info:
            parse_snapshot(b"<root><Device>")
        assert exc_info.value.__cause__ is not None

    def test_unknown_declared_encoding(self) -> None:
        with pytest.raises(ParseError) as exc_info:
            parse_snapshot(b"<?xml version='1.0' encoding='bogus'?><root/>")
        assert isinstance(exc_info.value.__cause__, LookupError)

    @pytest.mark.parametrize("raw", ["1_000", " 12", "12 ", "\t3.5"])
    def test_value_with_separator_or_padding_rejected(self, raw: str) -> None:
        xml = _doc(f"<Measurement Value='{raw}' Unit='W' Type='AC_Power'/>")
        with pytest.raises(ParseError, match="AC_Power"):
            parse_snapshot(xml)
