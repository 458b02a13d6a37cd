"""Utility functions for SSH tunnel wrapper."""

from typing import Any

# Port range constants
MIN_PORT = 1
MAX_PORT = 65535

# Fields whose values must never be rendered in logs. Matched against the
# lower-cased field name, either exactly or as a ``_``-separated suffix.
SENSITIVE_FIELDS = frozenset(
    {
        "passphrase",
        "password",
        "secret",
        "token",
        "bookmark",
        "private_key",
        "key_data",
        "key_bytes",
    }
)


def validate_port(port: int, port_name: str = "Port") -> None:
    """Validate port number range.

    Args:
        port: Port number to validate
        port_name: Name of the port for error messages

    Raises:
        ValueError: If port is not in valid range (1-65535)
    """
    if (
        not isinstance(port, int)
        or isinstance(port, bool)
        or not (MIN_PORT <= port <= MAX_PORT)
    ):
        raise ValueError(f"{port_name} must be between {MIN_PORT} and {MAX_PORT}")


def validate_non_empty_string(value: str, field_name: str) -> str:
    """Validate that a string is not empty or only whitespace.

    Args:
        value: String value to validate
        field_name: Name of the field for error messages

    Returns:
        Stripped string value

    Raises:
        ValueError: If string is empty or only whitespace
    """
    if not value or not value.strip():
        raise ValueError(f"{field_name} cannot be empty")
    return value.strip()


def is_sensitive_field(name: str) -> bool:
    """Return True if a log field name refers to secret material."""
    lowered = name.lower()
    return any(
        lowered == field or lowered.endswith(f"_{field}") for field in SENSITIVE_FIELDS
    )


def mask_sensitive_data(
    value: str | None, mask_char: str = "*", show_chars: int = 4
) -> str:
    """Mask sensitive data for logging while preserving some characters for debugging.

    Args:
        value: Sensitive string to mask (e.g., passphrase, bookmark token)
        mask_char: Character to use for masking
        show_chars: Number of characters to show at the end

    Returns:
        Masked string safe for logging
    """
    if not value:
        return "<None>"

    if len(value) <= show_chars:
        return mask_char * len(value)

    masked_length = len(value) - show_chars
    return mask_char * masked_length + value[-show_chars:]


def sanitize_log_data(data: dict[str, Any]) -> dict[str, Any]:
    """Sanitize dictionary data for safe logging by masking sensitive fields.

    Args:
        data: Dictionary potentially containing sensitive data

    Returns:
        Sanitized dictionary safe for logging
    """
    sanitized = {}
    for key, value in data.items():
        if is_sensitive_field(key):
            sanitized[key] = mask_sensitive_data(str(value) if value else None)
        else:
            sanitized[key] = value

    return sanitized


def format_destination(user: str, host: str) -> str:
    """Build the ``user@host`` destination understood by ssh."""
    return f"{user}@{host}"
