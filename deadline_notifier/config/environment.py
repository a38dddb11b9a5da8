"""Environment variable loading and validation."""

import os
from pathlib import Path
from typing import List, Optional

from email_validator import EmailNotValidError, validate_email

from .exceptions import ConfigurationError
from .models import split_addresses

DEFAULT_DATABASE_URL = "sqlite:///./data/notifications.db"
DEFAULT_CREDENTIALS_PATH = "./data/credentials.json"
DEFAULT_TOKEN_PATH = "./data/token.json"


class EnvironmentConfig:
    """Environment variable configuration holder."""

    def __init__(
        self,
        database_url: Optional[str] = None,
        cases_database_url: Optional[str] = None,
        credentials_path: Optional[str] = None,
        token_path: Optional[str] = None,
        sender_address: Optional[str] = None,
        sender_name: Optional[str] = None,
        oversight_addresses: Optional[List[str]] = None,
        default_address: Optional[str] = None,
        log_level: Optional[str] = None,
    ):
        """Initialize environment configuration."""
        self.database_url = database_url or DEFAULT_DATABASE_URL
        self.cases_database_url = cases_database_url or self.database_url
        self.credentials_path = Path(credentials_path or DEFAULT_CREDENTIALS_PATH)
        self.token_path = Path(token_path or DEFAULT_TOKEN_PATH)
        self.sender_address = sender_address
        self.sender_name = sender_name
        self.oversight_addresses = oversight_addresses or []
        self.default_address = default_address
        self.log_level = log_level


def load_environment_config() -> EnvironmentConfig:
    """
    Load and validate environment variables.

    All variables are optional:
    - DATABASE_URL: Notification ledger database (default: sqlite:///./data/notifications.db)
    - CASES_DATABASE_URL: Read-only case and directory store (default: DATABASE_URL)
    - GMAIL_CREDENTIALS_PATH: OAuth client credentials JSON
    - GMAIL_TOKEN_PATH: Persisted OAuth token JSON
    - EMAIL_REMETENTE / NOME_REMETENTE: Sender address and display name
    - EMAIL_OUVIDORIA_GERAL: Comma-separated oversight digest recipients
    - EMAIL_PADRAO_SECRETARIAS: Fallback address for unknown departments
    - LOG_LEVEL: Override log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)

    Returns:
        EnvironmentConfig object with validated values

    Raises:
        ConfigurationError: If any variable is present but invalid
    """
    errors = []

    sender_address = _clean(os.getenv("EMAIL_REMETENTE"))
    sender_name = _clean(os.getenv("NOME_REMETENTE"))
    default_address = _clean(os.getenv("EMAIL_PADRAO_SECRETARIAS"))
    oversight_raw = _clean(os.getenv("EMAIL_OUVIDORIA_GERAL"))
    log_level = _clean(os.getenv("LOG_LEVEL"))

    oversight_addresses = split_addresses(oversight_raw) if oversight_raw else []

    for name, value in (
        ("EMAIL_REMETENTE", sender_address),
        ("EMAIL_PADRAO_SECRETARIAS", default_address),
    ):
        if value and not is_valid_email(value):
            errors.append(f"Invalid email address format in {name}: '{value}'")

    for address in oversight_addresses:
        if not is_valid_email(address):
            errors.append(
                f"Invalid email address format in EMAIL_OUVIDORIA_GERAL: '{address}'"
            )

    if log_level:
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if log_level.upper() not in valid_levels:
            errors.append(
                f"Invalid LOG_LEVEL: '{log_level}'. Must be one of: {', '.join(valid_levels)}"
            )

    if errors:
        raise ConfigurationError(
            "Environment variable validation failed",
            errors=errors,
            suggestions=[
                "Copy .env.example to .env and review the values",
                "Separate multiple addresses in EMAIL_OUVIDORIA_GERAL with commas",
            ],
            source="environment",
        )

    return EnvironmentConfig(
        database_url=_clean(os.getenv("DATABASE_URL")),
        cases_database_url=_clean(os.getenv("CASES_DATABASE_URL")),
        credentials_path=_clean(os.getenv("GMAIL_CREDENTIALS_PATH")),
        token_path=_clean(os.getenv("GMAIL_TOKEN_PATH")),
        sender_address=sender_address,
        sender_name=sender_name,
        oversight_addresses=oversight_addresses,
        default_address=default_address,
        log_level=log_level.upper() if log_level else None,
    )


def is_valid_email(email: str) -> bool:
    """
    Validate email address syntax (no DNS lookups).

    Args:
        email: Email address to validate

    Returns:
        True if valid, False otherwise
    """
    try:
        validate_email(email, check_deliverability=False)
    except EmailNotValidError:
        return False
    return True


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None
