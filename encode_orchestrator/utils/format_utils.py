"""
This module contains helper functions for formatting data into human-readable strings.
They are used when logging blob copies and uploads, so that elapsed times and
transferred sizes read the same way everywhere.
"""

from datetime import timedelta


def format_timedelta(td_object: timedelta) -> str:
    """
    Formats a timedelta object into a "HH:MM:SS.mmm" string.

    Args:
        td_object: The timedelta object to format.

    Returns:
        A string such as "00:02:05.250" for two minutes, five and a quarter seconds.
        Returns "00:00:00.000" if the input is not a timedelta.
    """
    if not isinstance(td_object, timedelta):
        return "00:00:00.000"

    total_milliseconds = max(0, int(td_object.total_seconds() * 1000))
    total_seconds, milliseconds = divmod(total_milliseconds, 1000)
    hours, remainder = divmod(total_seconds, 3600)
    minutes, seconds = divmod(remainder, 60)
    return f"{hours:02}:{minutes:02}:{seconds:02}.{milliseconds:03}"


_SIZE_UNITS = ("B", "KB", "MB", "GB", "TB", "PB")


def formatted_size(size_bytes: float) -> str:
    """
    Formats a byte count with a binary unit: 1536 is "1.50 KB", 2097152 is "2 MB".

    Negative counts are shown as "0 B".
    """
    size_bytes = max(0, size_bytes)
    # Each unit is 2**10 times the previous one.
    exponent = min(max(int(size_bytes).bit_length() - 1, 0) // 10, len(_SIZE_UNITS) - 1)
    if exponent == 0:
        return f"{int(size_bytes)} B"

    text = f"{size_bytes / (1 << (10 * exponent)):.2f}"
    if text.endswith(".00"):
        text = text[:-3]
    return f"{text} {_SIZE_UNITS[exponent]}"


def format_transfer(size_bytes: int, elapsed: timedelta) -> str:
    """
    Summarizes an upload or copy for the log, e.g. "2 MB in 00:00:02.000 (1 MB/s)".

    The rate is left out when no time elapsed.
    """
    summary = f"{formatted_size(size_bytes)} in {format_timedelta(elapsed)}"
    seconds = elapsed.total_seconds()
    if seconds <= 0:
        return summary
    return f"{summary} ({formatted_size(size_bytes / seconds)}/s)"
