"""Tests for timezone detection and output option resolution."""

import logging
import os
from unittest.mock import patch

import pytest

from firex.config import Config
from firex.formats.date_formatter import DEFAULT_DATE_FORMAT
from firex.formats.output_options import (
    OutputOptionsResolver,
    ResolvedOutputOptions,
    TimezoneService,
)


class FixedTimezoneService(TimezoneService):
    """Reports a fixed system zone."""

    def __init__(self, system_zone="Europe/Paris"):
        self.system_zone = system_zone

    def get_system_timezone(self) -> str:
        return self.system_zone


def make_config(**values):
    with patch.dict(os.environ, {}, clear=True):
        return Config(_env_file=None, **values)


@pytest.fixture
def resolver():
    return OutputOptionsResolver(FixedTimezoneService())


class TestTimezoneService:
    """Test system detection and validation."""

    def test_tz_environment_variable(self):
        with patch.dict(os.environ, {"TZ": ":America/Chicago"}):
            assert TimezoneService().get_system_timezone() == "America/Chicago"

    def test_localtime_symlink(self):
        with patch.dict(os.environ, {}, clear=True), patch(
            "firex.formats.output_options.os.path.realpath",
            return_value="/usr/share/zoneinfo/Asia/Tokyo",
        ):
            assert TimezoneService().get_system_timezone() == "Asia/Tokyo"

    def test_undetectable_defaults_to_utc(self):
        with patch.dict(os.environ, {"TZ": "Not/AZone"}), patch(
            "firex.formats.output_options.os.path.realpath",
            return_value="/etc/localtime",
        ):
            assert TimezoneService().get_system_timezone() == "UTC"

    def test_validate(self):
        service = TimezoneService()
        assert service.validate_timezone("Asia/Tokyo").unwrap() == "Asia/Tokyo"
        assert service.validate_timezone("Nowhere/Land").error.code == "INVALID_TIMEZONE"
        assert service.validate_timezone("").is_err

    def test_resolve_invalid_falls_back_with_warning(self, caplog):
        with caplog.at_level(logging.WARNING, logger="firex.formats.output_options"):
            assert TimezoneService().resolve_timezone("Nowhere/Land") == "UTC"
        assert "Nowhere/Land" in caplog.text


class TestOutputOptionsResolver:
    """Test CLI > config > default precedence."""

    def test_defaults(self, resolver):
        resolved = resolver.resolve(make_config())
        assert resolved == ResolvedOutputOptions(
            date_format=DEFAULT_DATE_FORMAT,
            timezone="Europe/Paris",
        )

    def test_config_values(self, resolver):
        config = make_config(timezone="Asia/Tokyo", date_format="yyyy/MM/dd", raw_output=True)
        resolved = resolver.resolve(config)
        assert resolved.timezone == "Asia/Tokyo"
        assert resolved.date_format == "yyyy/MM/dd"
        assert resolved.raw_output is True

    def test_cli_overrides_config(self, resolver):
        config = make_config(timezone="Asia/Tokyo", date_format="yyyy/MM/dd", raw_output=True)
        resolved = resolver.resolve(
            config,
            timezone="America/New_York",
            date_format="HH:mm",
            raw_output=False,
            no_date_format=True,
        )
        assert resolved.timezone == "America/New_York"
        assert resolved.date_format == "HH:mm"
        assert resolved.raw_output is False
        assert resolved.no_date_format is True

    def test_invalid_cli_timezone_uses_utc(self, resolver):
        resolved = resolver.resolve(make_config(timezone="Asia/Tokyo"), timezone="Bogus/Zone")
        assert resolved.timezone == "UTC"


class TestTimestampOptions:
    def test_raw_output_disables_conversion(self):
        resolved = ResolvedOutputOptions(date_format="yyyy", timezone="UTC", raw_output=True)
        assert resolved.timestamp_options() is None

    def test_options_carry_values(self):
        resolved = ResolvedOutputOptions(date_format="yyyy", timezone="UTC", no_date_format=True)
        options = resolved.timestamp_options()
        assert options.date_format == "yyyy"
        assert options.timezone == "UTC"
        assert options.no_date_format is True
