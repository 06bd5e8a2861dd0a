from datetime import datetime, UTC
from typing import Union

ISO_INSTANT_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def parse_datetime(dt_str: Union[str, int, float, datetime]) -> datetime:
    """Parse a datetime string or epoch seconds into a datetime object.

    Args:
        dt_str: Datetime string, epoch seconds or datetime object

    Returns:
        Parsed datetime object with UTC timezone

    Raises:
        ValueError: If the datetime string cannot be parsed
    """
    if isinstance(dt_str, datetime):
        if dt_str.tzinfo is None:
            return dt_str.replace(tzinfo=UTC)
        return dt_str.astimezone(UTC)

    if isinstance(dt_str, bool):
        raise ValueError(f"Could not parse datetime value: {dt_str}")

    if isinstance(dt_str, (int, float)):
        return datetime.fromtimestamp(dt_str, UTC)

    value = dt_str.strip()
    if value.isdigit():
        # Epoch seconds written back by a previous incremental run
        return datetime.fromtimestamp(int(value), UTC)

    try:
        # Try ISO format first
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        if parsed.tzinfo is None:
            return parsed.replace(tzinfo=UTC)
        return parsed.astimezone(UTC)
    except ValueError:
        formats = [
            ISO_INSTANT_FORMAT,
            "%Y-%m-%d %H:%M:%S",
            "%Y-%m-%d",
            "%Y/%m/%d %H:%M:%S",
            "%Y/%m/%d"
        ]
        for fmt in formats:
            try:
                return datetime.strptime(value, fmt).replace(tzinfo=UTC)
            except ValueError:
                continue

        raise ValueError(f"Could not parse datetime string: {dt_str}")


def to_epoch_seconds(value: Union[str, int, float, datetime]) -> int:
    """Convert any supported timestamp representation to epoch seconds."""
    return int(parse_datetime(value).timestamp())


def format_iso_instant(value: Union[str, int, float, datetime]) -> str:
    """Format a timestamp as the API's query parameter format (2019-03-06T02:34:22Z)."""
    return parse_datetime(value).strftime(ISO_INSTANT_FORMAT)
