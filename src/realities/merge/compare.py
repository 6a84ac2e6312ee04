"""Read-only side-by-side comparison of two realities."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Generic, List, Sequence, TypeVar

from ..memory.schema import Glitch, SavedArtifact
from .durations import total_months

T = TypeVar("T")


@dataclass(slots=True)
class SetDiff(Generic[T]):
    common: List[T] = field(default_factory=list)
    unique_a: List[T] = field(default_factory=list)
    unique_b: List[T] = field(default_factory=list)


@dataclass(slots=True)
class Comparison:
    """Set differences and duration totals that drive comparison views."""

    sdgs: SetDiff[str]
    glitches: SetDiff[Glitch]
    total_duration_a: int
    total_duration_b: int


def diff(items_a: Sequence[T], items_b: Sequence[T]) -> SetDiff[T]:
    """Split two sequences by value membership, keeping each side's order."""
    return SetDiff(
        common=[item for item in items_a if item in items_b],
        unique_a=[item for item in items_a if item not in items_b],
        unique_b=[item for item in items_b if item not in items_a],
    )


def compare_realities(reality_a: SavedArtifact, reality_b: SavedArtifact) -> Comparison:
    data_a, data_b = reality_a.data, reality_b.data
    return Comparison(
        sdgs=diff(data_a.sdg_alignment, data_b.sdg_alignment),
        glitches=diff(data_a.glitches, data_b.glitches),
        total_duration_a=total_months(data_a.timeline_phases),
        total_duration_b=total_months(data_b.timeline_phases),
    )


__all__ = ["Comparison", "SetDiff", "compare_realities", "diff"]
