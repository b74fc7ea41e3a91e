"""Timezone detection and resolution of timestamp rendering options."""

import logging
import os
from typing import Optional

import pytz
from pydantic import BaseModel, ConfigDict

from ..client.exceptions import InvalidTimezoneError
from ..config import Config
from ..domain.models import TimestampFormatOptions
from ..result import Result, err, ok
from .date_formatter import DEFAULT_DATE_FORMAT

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = "UTC"
_LOCALTIME = "/etc/localtime"


class TimezoneService:
    """Detects the system timezone and validates IANA zone names."""

    def get_system_timezone(self) -> str:
        """Return the system zone name, or UTC when it cannot be determined."""
        env_tz = os.environ.get("TZ", "").lstrip(":")
        if env_tz and self.validate_timezone(env_tz).is_ok:
            return env_tz

        try:
            target = os.path.realpath(_LOCALTIME)
        except OSError:
            return DEFAULT_TIMEZONE

        marker = "zoneinfo" + os.sep
        if marker in target:
            name = target.split(marker, 1)[1]
            if self.validate_timezone(name).is_ok:
                return name
        return DEFAULT_TIMEZONE

    def validate_timezone(self, timezone_name: str) -> Result[str]:
        """Check an IANA identifier.

        Returns:
            Result with the zone name, or INVALID_TIMEZONE
        """
        if not timezone_name or not timezone_name.strip():
            return err(InvalidTimezoneError(timezone_name, "No timezone given"))
        try:
            pytz.timezone(timezone_name)
        except pytz.UnknownTimeZoneError:
            return err(InvalidTimezoneError(timezone_name))
        return ok(timezone_name)

    def resolve_timezone(self, timezone_name: str) -> str:
        """Return ``timezone_name`` if valid, otherwise UTC with a warning."""
        result = self.validate_timezone(timezone_name)
        if result.is_ok:
            return result.value
        logger.warning("Invalid timezone '%s', falling back to UTC", timezone_name)
        return DEFAULT_TIMEZONE


class ResolvedOutputOptions(BaseModel):
    """Final timestamp rendering settings for one command."""

    model_config = ConfigDict(frozen=True)

    date_format: str
    timezone: str
    raw_output: bool = False
    no_date_format: bool = False

    def timestamp_options(self) -> Optional[TimestampFormatOptions]:
        """Options for the formatter; ``None`` in raw output mode."""
        if self.raw_output:
            return None
        return TimestampFormatOptions(
            date_format=self.date_format,
            timezone=self.timezone,
            no_date_format=self.no_date_format,
        )


class OutputOptionsResolver:
    """Resolves rendering options with priority CLI flag > config > default."""

    def __init__(self, timezone_service: Optional[TimezoneService] = None):
        self.timezone_service = timezone_service or TimezoneService()

    def resolve(
        self,
        config: Config,
        timezone: Optional[str] = None,
        date_format: Optional[str] = None,
        raw_output: Optional[bool] = None,
        no_date_format: Optional[bool] = None,
    ) -> ResolvedOutputOptions:
        """Merge CLI values (``None`` when not given) with configuration.

        An explicitly chosen timezone that is not valid falls back to UTC; with
        no timezone anywhere the system zone is used.
        """
        resolved_format = date_format or config.date_format or DEFAULT_DATE_FORMAT

        zone = timezone or config.timezone
        if zone:
            zone = self.timezone_service.resolve_timezone(zone)
        else:
            zone = self.timezone_service.get_system_timezone()

        raw = raw_output if raw_output is not None else config.raw_output

        return ResolvedOutputOptions(
            date_format=resolved_format,
            timezone=zone,
            raw_output=bool(raw),
            no_date_format=bool(no_date_format),
        )
