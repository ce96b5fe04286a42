from __future__ import annotations

import math
import numbers
from typing import Sequence

from lease_calc.errors import InvalidInputError


def _is_present(value: float | None) -> bool:
    # Text such as "40000" is not a number here; callers parse before validating.
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        return False
    v = float(value)
    return math.isfinite(v) and v != 0.0


def require_fields(fields: Sequence[tuple[str, float | None]]) -> None:
    """
    Check required numeric fields in order and raise for the first one that is
    missing, non-numeric, zero or non-finite.

    fields: (human readable name, value) pairs, e.g. ("MSRP", 45_000.0)
    """
    for name, value in fields:
        if not _is_present(value):
            raise InvalidInputError(name)
