"""Scalar extraction from the free-text fields of a plan."""

from __future__ import annotations

import re
from typing import Iterable, Pattern

from ..memory.schema import TimelinePhase

_LEADING_INTEGER: Pattern[str] = re.compile(r"(\d+)")


def leading_months(duration: str | None) -> int:
    """Return the first integer in ``duration``; units are not interpreted.

    ``"6 months"``, ``"6 weeks"`` and ``"6 years"`` all count as 6. Text
    without digits counts as 0.
    """
    if not duration:
        return 0
    match = _LEADING_INTEGER.search(duration)
    return int(match.group(1)) if match else 0


def total_months(phases: Iterable[TimelinePhase]) -> int:
    """Sum ``leading_months`` over every phase."""
    return sum(leading_months(phase.duration) for phase in phases)


__all__ = ["leading_months", "total_months"]
