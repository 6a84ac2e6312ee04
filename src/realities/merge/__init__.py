"""Conflict detection, merging and comparison of career realities."""

from .compare import Comparison, SetDiff, compare_realities
from .conflicts import (
    Conflict,
    ConflictResolution,
    ConflictSubject,
    ConflictType,
    detect_conflicts,
    unresolved_conflicts,
)
from .durations import leading_months, total_months
from .reconcile import MergeResult, merge_documents, merge_realities, merge_skills, merge_timelines

__all__ = [
    "Comparison",
    "Conflict",
    "ConflictResolution",
    "ConflictSubject",
    "ConflictType",
    "MergeResult",
    "SetDiff",
    "compare_realities",
    "detect_conflicts",
    "leading_months",
    "merge_documents",
    "merge_realities",
    "merge_skills",
    "merge_timelines",
    "total_months",
    "unresolved_conflicts",
]
