"""Configuration management for firex."""

import os
import sys
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables from .env file
load_dotenv()

VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class Config(BaseSettings):
    """Configuration for the firex command line client.

    Values come from constructor arguments first, then environment variables
    (and a ``.env`` file), then the defaults below.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    project_id: Optional[str] = Field(
        default=None,
        validation_alias="FIRESTORE_PROJECT_ID",
        description="Google Cloud project id",
    )

    credential_path: Optional[str] = Field(
        default=None,
        validation_alias="GOOGLE_APPLICATION_CREDENTIALS",
        description="Service account key file",
    )

    emulator_host: Optional[str] = Field(
        default=None,
        validation_alias="FIRESTORE_EMULATOR_HOST",
        description="host:port of a Firestore emulator",
    )

    default_list_limit: int = Field(
        default=100,
        validation_alias="FIREX_DEFAULT_LIMIT",
        description="Limit applied to list queries without --limit",
    )

    watch_show_initial: bool = Field(
        default=False,
        validation_alias="FIREX_WATCH_SHOW_INITIAL",
        description="Deliver the initial snapshot in watch mode",
    )

    verbose: bool = Field(
        default=False,
        validation_alias="FIREX_VERBOSE",
    )

    log_level: str = Field(
        default="WARNING",
        validation_alias="LOG_LEVEL",
        description="Logging level",
    )

    timezone: Optional[str] = Field(
        default=None,
        validation_alias="FIREX_TIMEZONE",
        validate_default=True,
        description="IANA timezone used to render timestamps",
    )

    date_format: Optional[str] = Field(
        default=None,
        validation_alias="FIREX_DATE_FORMAT",
        description="Pattern used to render timestamps",
    )

    raw_output: bool = Field(
        default=False,
        validation_alias="FIREX_RAW_OUTPUT",
        description="Skip timestamp conversion entirely",
    )

    @field_validator("default_list_limit", mode="before")
    @classmethod
    def validate_default_limit(cls, v: object) -> int:
        """Fall back to 100 for unparsable or non-positive limits."""
        try:
            limit = int(v)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            print(f"⚠️ Invalid FIREX_DEFAULT_LIMIT '{v}', using 100", file=sys.stderr)
            return 100
        return limit if limit > 0 else 100

    @field_validator("watch_show_initial", "verbose", mode="before")
    @classmethod
    def validate_true_flag(cls, v: object) -> bool:
        """Only the literal 'true' enables these flags."""
        if isinstance(v, bool):
            return v
        return str(v).strip().lower() == "true"

    @field_validator("raw_output", mode="before")
    @classmethod
    def validate_raw_output(cls, v: object) -> bool:
        if isinstance(v, bool):
            return v
        return str(v).strip().lower() in ("true", "1")

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: Optional[str]) -> Optional[str]:
        """FIREX_TIMEZONE takes precedence over TZ."""
        if not v:
            v = os.getenv("TZ") or None
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        if not v:
            return "WARNING"
        if v.upper() not in VALID_LOG_LEVELS:
            print(f"⚠️ Invalid LOG_LEVEL '{v}', using INFO", file=sys.stderr)
            return "INFO"
        return v.upper()

    def describe(self) -> Dict[str, Any]:
        """Settings as shown by ``firex config``; unset values read "(not set)"."""
        not_set = "(not set)"
        return {
            "projectId": self.project_id or not_set,
            "credentialPath": self.credential_path or not_set,
            "emulatorHost": self.emulator_host or not_set,
            "defaultListLimit": self.default_list_limit,
            "watchShowInitial": self.watch_show_initial,
            "verbose": self.verbose,
            "logLevel": self.log_level,
            "timezone": self.timezone or not_set,
            "dateFormat": self.date_format or not_set,
            "rawOutput": self.raw_output,
        }
