"""Field validators for TimingConfig."""

from pathlib import Path

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
LOG_FORMATS = ("json", "console")


def validate_log_level(value: str) -> str:
    """Normalise a log level name.

    Raises:
        ValueError: If the level is not a standard logging level.
    """
    level = value.upper()
    if level not in LOG_LEVELS:
        raise ValueError(f"log_level must be one of {LOG_LEVELS}, got {value!r}")
    return level


def validate_log_format(value: str) -> str:
    """Normalise a console log format ("json" or "console").

    Raises:
        ValueError: For any other format.
    """
    fmt = value.lower()
    if fmt not in LOG_FORMATS:
        raise ValueError(f"log_format must be one of {LOG_FORMATS}, got {value!r}")
    return fmt


def validate_status_code(value: int) -> int:
    """Check that a status code lies in the HTTP range 100-599.

    Args:
        value: Status code.

    Returns:
        The same status code.

    Raises:
        ValueError: If the code is outside 100-599.
    """
    if not 100 <= value <= 599:
        raise ValueError(f"status code must be between 100 and 599, got {value}")
    return value


def resolve_path(value: Path | str) -> Path:
    """Make a path absolute; relative paths are taken from the working directory."""
    return Path(value).expanduser().resolve()
