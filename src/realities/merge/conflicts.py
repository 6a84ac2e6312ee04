"""Conflict detection between two realities and resolution binding.

Conflicts are transient: every call to :func:`detect_conflicts` builds a fresh
list, and positional resolutions only make sense against the list returned by
the same call. Each conflict also carries a content-derived ``conflict_id``
so callers can bind resolutions without relying on list position.
"""

from __future__ import annotations

import hashlib
import logging
from enum import Enum
from typing import Annotated, List, Literal, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator

from ..memory.schema import PlanDocument, RealityStatus
from .durations import total_months

LOGGER = logging.getLogger(__name__)

MAX_COMBINED_MONTHS = 36
MAX_PHASE_COUNT_GAP = 1
COMBINE_RISKS = "Combine all risks"


class ConflictType(str, Enum):
    TIME = "time"
    SKILL = "skill"
    GOAL = "goal"
    PHASE = "phase"


class ConflictSubject(str, Enum):
    """Merged field a conflict is about."""

    TIMELINE = "timeline"
    STATUS = "status"
    PHASE_COUNT = "phase_count"
    GLITCHES = "glitches"


class TextValue(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["text"] = "text"
    value: str

    def render(self) -> str:
        return self.value


class NumberValue(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["number"] = "number"
    value: Union[int, float]

    def render(self) -> str:
        return str(self.value)


class ListValue(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["list"] = "list"
    value: List[str] = Field(default_factory=list)

    def render(self) -> str:
        return ", ".join(self.value)


OptionValue = Annotated[Union[TextValue, NumberValue, ListValue], Field(discriminator="kind")]

ResolutionChoice = Literal["A", "B", "suggested"]


class Conflict(BaseModel):
    """A merge-time disagreement between two realities."""

    model_config = ConfigDict(populate_by_name=True)

    type: ConflictType
    subject: ConflictSubject
    description: str
    option_a: OptionValue = Field(alias="optionA")
    option_b: OptionValue = Field(alias="optionB")
    auto_resolvable: bool = Field(alias="autoResolvable")
    suggested: Optional[OptionValue] = None
    resolved: bool = False
    choice: Optional[ResolutionChoice] = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def conflict_id(self) -> str:
        digest = hashlib.sha1(f"{self.type.value}:{self.description}".encode("utf-8"))
        return digest.hexdigest()[:12]


class ConflictResolution(BaseModel):
    """User decision for one conflict, referenced by id and/or position."""

    model_config = ConfigDict(populate_by_name=True)

    conflict_index: Optional[int] = Field(default=None, alias="conflictIndex")
    conflict_id: Optional[str] = Field(default=None, alias="conflictId")
    selected_option: ResolutionChoice = Field(alias="selectedOption")

    @model_validator(mode="after")
    def _require_reference(self) -> "ConflictResolution":
        if self.conflict_index is None and not self.conflict_id:
            raise ValueError("A resolution must reference a conflict by index or id.")
        return self


def detect_conflicts(reality_a: PlanDocument, reality_b: PlanDocument) -> List[Conflict]:
    """Compare two realities and return conflicts in a fixed rule order.

    Rule order is part of the contract: time, status, phase count, risks.
    """
    conflicts: List[Conflict] = []

    months_a = total_months(reality_a.timeline_phases)
    months_b = total_months(reality_b.timeline_phases)
    combined = months_a + months_b
    if combined > MAX_COMBINED_MONTHS:
        conflicts.append(
            Conflict(
                type=ConflictType.TIME,
                subject=ConflictSubject.TIMELINE,
                description=(
                    f"Combined timeline is {combined} months "
                    "(too long for practical career planning)"
                ),
                option_a=TextValue(value=f"{months_a} months ({reality_a.name})"),
                option_b=TextValue(value=f"{months_b} months ({reality_b.name})"),
                auto_resolvable=False,
                suggested=NumberValue(value=min(months_a, months_b)),
            )
        )

    if reality_a.status != reality_b.status:
        conflicts.append(
            Conflict(
                type=ConflictType.GOAL,
                subject=ConflictSubject.STATUS,
                description="Realities have different stability statuses",
                option_a=TextValue(value=reality_a.status.value),
                option_b=TextValue(value=reality_b.status.value),
                auto_resolvable=True,
                suggested=TextValue(value=RealityStatus.STABLE.value),
            )
        )

    phases_a = len(reality_a.timeline_phases)
    phases_b = len(reality_b.timeline_phases)
    if abs(phases_a - phases_b) > MAX_PHASE_COUNT_GAP:
        conflicts.append(
            Conflict(
                type=ConflictType.PHASE,
                subject=ConflictSubject.PHASE_COUNT,
                description="Different number of career phases",
                option_a=TextValue(value=f"{phases_a} phases"),
                option_b=TextValue(value=f"{phases_b} phases"),
                auto_resolvable=True,
                suggested=NumberValue(value=max(phases_a, phases_b)),
            )
        )

    unique_a = [glitch for glitch in reality_a.glitches if glitch not in reality_b.glitches]
    unique_b = [glitch for glitch in reality_b.glitches if glitch not in reality_a.glitches]
    if unique_a and unique_b:
        conflicts.append(
            Conflict(
                type=ConflictType.GOAL,
                subject=ConflictSubject.GLITCHES,
                description="Different risk factors identified",
                option_a=TextValue(value=f"{len(unique_a)} unique risks from {reality_a.name}"),
                option_b=TextValue(value=f"{len(unique_b)} unique risks from {reality_b.name}"),
                auto_resolvable=True,
                suggested=TextValue(value=COMBINE_RISKS),
            )
        )

    LOGGER.debug(
        "Detected %d conflict(s) between '%s' and '%s'",
        len(conflicts),
        reality_a.name,
        reality_b.name,
    )
    return conflicts


def find_conflict(conflicts: Sequence[Conflict], resolution: ConflictResolution) -> Optional[int]:
    """Return the index ``resolution`` binds to, or ``None`` when it matches nothing.

    A ``conflict_id`` wins over ``conflict_index``; the index is only consulted
    when no id was supplied.
    """
    if resolution.conflict_id:
        for index, conflict in enumerate(conflicts):
            if conflict.conflict_id == resolution.conflict_id:
                return index
        return None
    index = resolution.conflict_index
    if index is None or index < 0 or index >= len(conflicts):
        return None
    return index


def bind_resolutions(
    conflicts: Sequence[Conflict],
    resolutions: Sequence[ConflictResolution],
) -> dict[int, ResolutionChoice]:
    """Map conflict positions to the chosen option. The first binding per conflict wins."""
    bound: dict[int, ResolutionChoice] = {}
    for resolution in resolutions:
        index = find_conflict(conflicts, resolution)
        if index is None:
            LOGGER.debug("Ignoring resolution that matches no conflict: %s", resolution)
            continue
        bound.setdefault(index, resolution.selected_option)
    return bound


def unresolved_conflicts(
    conflicts: Sequence[Conflict],
    resolutions: Sequence[ConflictResolution],
) -> List[Conflict]:
    """Conflicts that still need a human decision before merging."""
    bound = bind_resolutions(conflicts, resolutions)
    return [
        conflict
        for index, conflict in enumerate(conflicts)
        if not conflict.auto_resolvable and index not in bound
    ]


__all__ = [
    "COMBINE_RISKS",
    "Conflict",
    "ConflictResolution",
    "ConflictSubject",
    "ConflictType",
    "ListValue",
    "MAX_COMBINED_MONTHS",
    "NumberValue",
    "OptionValue",
    "ResolutionChoice",
    "TextValue",
    "bind_resolutions",
    "detect_conflicts",
    "find_conflict",
    "unresolved_conflicts",
]
