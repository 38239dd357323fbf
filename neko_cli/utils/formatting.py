"""
Helper functions for formatting data into human-readable strings.
"""


def format_duration(seconds: float) -> str:
    """
    Formats a duration in seconds into a human-readable string (e.g., '2h 34m 12s').
    """
    s = int(seconds)
    hours, remainder = divmod(s, 3600)
    minutes, secs = divmod(remainder, 60)
    parts = []
    if hours > 0:
        parts.append(f"{hours}h")
    if minutes > 0:
        parts.append(f"{minutes}m")
    if secs > 0 or not parts:
        parts.append(f"{secs}s")
    return " ".join(parts)


def format_timestamp(millis: int) -> str:
    """Formats a lyric timestamp as 'mm:ss.xx'."""
    millis = max(0, int(millis))
    minutes, rest = divmod(millis, 60000)
    seconds, ms = divmod(rest, 1000)
    return f"{minutes:02}:{seconds:02}.{ms // 10:02}"
