"""Human readable byte sizes."""

import math

_UNITS = ("B", "KiB", "MiB", "GiB", "TiB", "PiB", "EiB")


def format_filesize(size: float) -> str:
    """
    Format a byte count using binary units, e.g. ``1.5 MiB``.

    Values that would round up to 1024.0 of a unit are promoted to the
    next unit.
    """
    if size <= 0:
        return "0.0 B"

    exp = int(math.log(size) / math.log(1024))
    if size / 1024**exp >= 1024 - 0.05:
        exp += 1
    exp = min(exp, len(_UNITS) - 1)
    return f"{size / 1024**exp:.1f} {_UNITS[exp]}"
