"""Configuration schema models using Pydantic."""

import re
from enum import Enum
from typing import Dict, List
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, field_validator, model_validator

from ..recipients.static_directory import DEFAULT_STATIC_DIRECTORY

DEFAULT_ADDRESS = "ouvidoria@duquedecaxias.rj.gov.br"
DEFAULT_SENDER_NAME = "Ouvidoria Geral de Duque de Caxias"
DEFAULT_OVERSIGHT_ADDRESSES = [
    "ouvgeral.gestao@gmail.com",
    "ouvidoria020@gmail.com",
    "dfreitas001.adm@gmail.com",
]
DEFAULT_INFORMATION_REQUEST_TERMS = [
    "sic",
    "pedido de informação",
    "pedido de informacao",
    "informação",
    "informacao",
]

_RUN_AT_PATTERN = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")


def split_addresses(value: str) -> List[str]:
    """Split a comma/semicolon separated address string, dropping blanks."""
    return [part.strip() for part in re.split(r"[;,]", value) if part.strip()]


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    """Log output formats."""

    JSON = "json"
    KEY_VALUE = "key-value"


class ScheduleConfig(BaseModel):
    """When the daily run fires."""

    run_at: str = Field("08:00", description="Local time of the daily run (HH:MM)")
    timezone: str = Field("America/Sao_Paulo", description="IANA timezone name")

    @field_validator("run_at")
    @classmethod
    def validate_run_at(cls, v: str) -> str:
        """Require a 24h ``HH:MM`` time."""
        stripped = v.strip()
        if not _RUN_AT_PATTERN.match(stripped):
            raise ValueError(f"run_at must be HH:MM (24h), got '{v}'")
        return stripped

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """Reject timezone names the tz database does not know."""
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: '{v}'") from e
        return v

    @property
    def hour(self) -> int:
        return int(self.run_at.split(":")[0])

    @property
    def minute(self) -> int:
        return int(self.run_at.split(":")[1])


class DeadlineConfig(BaseModel):
    """Service-level deadlines and bucket offsets, in calendar days."""

    information_request_days: int = Field(20, ge=1, le=365)
    default_days: int = Field(30, ge=1, le=365)
    information_request_terms: List[str] = Field(
        default_factory=lambda: list(DEFAULT_INFORMATION_REQUEST_TERMS),
        description="Case-insensitive substrings marking an information request",
    )
    early_warning_days: int = Field(15, ge=1, le=365)
    overdue_days: int = Field(60, ge=1, le=3650)

    @field_validator("information_request_terms")
    @classmethod
    def normalize_terms(cls, v: List[str]) -> List[str]:
        """Lowercase and strip terms, removing empty strings."""
        normalized = []
        for term in v:
            stripped = term.strip().lower()
            if stripped:
                normalized.append(stripped)
        if not normalized:
            raise ValueError("information_request_terms cannot be empty")
        return normalized


class RecipientConfig(BaseModel):
    """Where notifications go when the directory has nothing better."""

    default_address: str = Field(DEFAULT_ADDRESS, min_length=3)
    oversight_addresses: List[str] = Field(
        default_factory=lambda: list(DEFAULT_OVERSIGHT_ADDRESSES),
        description="Recipients of the daily due-today digest",
    )
    static_directory: Dict[str, str] = Field(
        default_factory=lambda: dict(DEFAULT_STATIC_DIRECTORY),
        description="Department name to address fallback table",
    )

    @field_validator("default_address")
    @classmethod
    def strip_default(cls, v: str) -> str:
        """Strip whitespace from the default address."""
        stripped = v.strip()
        if "@" not in stripped:
            raise ValueError(f"default_address is not an email address: '{v}'")
        return stripped

    @field_validator("oversight_addresses", mode="before")
    @classmethod
    def split_oversight(cls, v):
        """Accept either a list or a comma-separated string."""
        if isinstance(v, str):
            return split_addresses(v)
        return v


class DeliveryConfig(BaseModel):
    """Provider delivery and retry settings."""

    max_attempts: int = Field(4, ge=1, le=10, description="Total send attempts")
    base_delay_seconds: float = Field(1.0, ge=0.0, le=60.0)
    max_delay_seconds: float = Field(30.0, ge=0.0, le=600.0)
    refresh_margin_seconds: int = Field(
        60, ge=0, le=3600, description="Refresh tokens expiring within this window"
    )
    request_timeout: int = Field(30, ge=5, le=300)
    sender_address: str = Field(DEFAULT_ADDRESS, min_length=3)
    sender_name: str = Field(DEFAULT_SENDER_NAME, min_length=1)

    @model_validator(mode="after")
    def validate_delays(self):
        """The cap must not be below the base delay."""
        if self.max_delay_seconds < self.base_delay_seconds:
            raise ValueError(
                "max_delay_seconds must be greater than or equal to base_delay_seconds"
            )
        return self


class DispatchConfig(BaseModel):
    """Department-level concurrency."""

    max_workers: int = Field(5, ge=1, le=20, description="Concurrent department batches")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: LogLevel = Field(LogLevel.INFO, description="Log level")
    format: LogFormat = Field(
        LogFormat.KEY_VALUE, description="Log output format (json or key-value)"
    )

    model_config = {"use_enum_values": True}


class AppConfig(BaseModel):
    """Root configuration object for the deadline notifier."""

    schedule: ScheduleConfig = Field(default_factory=ScheduleConfig)
    deadlines: DeadlineConfig = Field(default_factory=DeadlineConfig)
    recipients: RecipientConfig = Field(default_factory=RecipientConfig)
    delivery: DeliveryConfig = Field(default_factory=DeliveryConfig)
    dispatch: DispatchConfig = Field(default_factory=DispatchConfig)
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description="Logging configuration"
    )

