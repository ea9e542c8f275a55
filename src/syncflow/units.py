"""
SyncFlow - Unit Conversion
Parsing and formatting of the human-readable sizes and speeds rsync prints.
"""

import re

BYTE_UNITS = ['B', 'KB', 'MB', 'GB', 'TB']

_MULTIPLIERS = {
    '': 1,
    'K': 1024,
    'M': 1024 ** 2,
    'G': 1024 ** 3,
    'T': 1024 ** 4,
}

_SPEED_PATTERN = re.compile(r'^\s*(\d+(?:\.\d+)?)\s*([KMGT]?)B/s\s*$', re.IGNORECASE)
_SIZE_PATTERN = re.compile(r'^\s*(\d+(?:,\d{3})*(?:\.\d+)?)\s*([KMGT]?)B?\s*$', re.IGNORECASE)


def parse_speed(speed_str: str) -> float:
    """Parse a speed string (e.g. '42.84MB/s' or '123.45kB/s') into bytes per second.

    Returns 0.0 for anything that does not look like a speed.
    """
    if not speed_str:
        return 0.0

    match = _SPEED_PATTERN.match(speed_str)
    if not match:
        return 0.0

    value, unit = match.groups()
    return float(value) * _MULTIPLIERS[unit.upper()]


def parse_size(size_str: str) -> int:
    """Parse a byte count as rsync prints it ('2,506,567', '2.51M', '1.2G')."""
    if not size_str:
        return 0

    match = _SIZE_PATTERN.match(size_str)
    if not match:
        return 0

    value, unit = match.groups()
    try:
        return int(float(value.replace(',', '')) * _MULTIPLIERS[unit.upper()])
    except ValueError:
        return 0


def format_bytes(bytes_count: float) -> str:
    """Format a byte count for display, e.g. 2506567 -> '2.39MB'"""
    value = float(max(bytes_count or 0, 0))
    unit_index = 0
    while value >= 1024 and unit_index < len(BYTE_UNITS) - 1:
        value /= 1024.0
        unit_index += 1
    return f"{value:.2f}{BYTE_UNITS[unit_index]}"


def format_speed(bytes_per_second: float) -> str:
    """Format a speed for display, e.g. 44920340 -> '42.84MB/s'"""
    return f"{format_bytes(bytes_per_second)}/s"


def format_duration(seconds: float) -> str:
    """Format seconds as a short human-readable duration."""
    seconds = int(round(max(seconds or 0, 0)))
    hours, remainder = divmod(seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours:
        return f"{hours}h {minutes}m"
    if minutes:
        return f"{minutes}m {secs}s"
    return f"{secs}s"
