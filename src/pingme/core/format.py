"""Formatting helpers shared by the daemon and the CLI."""


def humanize_age(ms: float) -> str:
    """Convert a millisecond duration to a short age string.

    Examples: "42s", "5m", "2h 30m", "3h", "4d".
    """
    seconds = int(max(ms, 0) // 1000)
    if seconds < 60:
        return f"{seconds}s"
    minutes = seconds // 60
    if minutes < 60:
        return f"{minutes}m"
    hours, remaining = divmod(minutes, 60)
    if hours < 24:
        return f"{hours}h {remaining}m" if remaining else f"{hours}h"
    return f"{hours // 24}d"
