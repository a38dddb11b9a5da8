"""Non-fatal configuration checks, reported as warnings."""

import warnings
from typing import Any, Dict, List


def check_for_warnings(config_dict: Dict[str, Any]) -> List[str]:
    """
    Check configuration for potential issues and return warnings.

    Args:
        config_dict: Raw configuration dictionary

    Returns:
        List of warning messages
    """
    warning_messages = []

    recipients = config_dict.get("recipients") or {}
    if isinstance(recipients, dict):
        oversight = recipients.get("oversight_addresses")
        if oversight is not None and not oversight:
            warning_messages.append(
                "oversight_addresses is empty; the due-today digest will not be sent"
            )

        default_address = recipients.get("default_address")
        if isinstance(oversight, str):
            oversight = [part.strip() for part in oversight.replace(";", ",").split(",")]
        if default_address and isinstance(oversight, list) and default_address in oversight:
            warning_messages.append(
                f"default_address ({default_address}) also receives the oversight digest"
            )

    dispatch = config_dict.get("dispatch") or {}
    if isinstance(dispatch, dict):
        max_workers = dispatch.get("max_workers", 5)
        if isinstance(max_workers, int) and max_workers > 10:
            warning_messages.append(
                f"Large dispatch.max_workers ({max_workers}) may trigger provider rate limits"
            )

    delivery = config_dict.get("delivery") or {}
    if isinstance(delivery, dict):
        max_attempts = delivery.get("max_attempts", 4)
        if isinstance(max_attempts, int) and max_attempts == 1:
            warning_messages.append(
                "delivery.max_attempts is 1; transient provider errors will not be retried"
            )

    return warning_messages


def emit_warnings(warning_messages: List[str]) -> None:
    """
    Emit warning messages using Python's warnings module.

    Args:
        warning_messages: List of warning messages to emit
    """
    for message in warning_messages:
        warnings.warn(message, UserWarning, stacklevel=2)
