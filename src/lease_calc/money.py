from __future__ import annotations

import math


def round_half_up(value: float, places: int = 2) -> float:
    # Halves round towards +inf, matching how dealer worksheets round cents.
    factor = 10.0**places
    return math.floor(value * factor + 0.5) / factor


def round_percent(value: float) -> int:
    return int(math.floor(value + 0.5))
