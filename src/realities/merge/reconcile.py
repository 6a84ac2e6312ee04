"""Merge engine that folds two saved realities into one document."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, TypeVar

from ..memory.schema import (
    AssessmentPrep,
    BehavioralPrep,
    ExpectedCTC,
    Glitch,
    InterviewPrep,
    PlacementOutcomes,
    PlanDocument,
    RealityStatus,
    RequiredSkills,
    SavedArtifact,
    TechnicalPrep,
    TimelinePhase,
)
from .conflicts import (
    Conflict,
    ConflictResolution,
    ConflictSubject,
    ConflictType,
    ResolutionChoice,
    bind_resolutions,
    detect_conflicts,
)
from .durations import leading_months, total_months

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(slots=True)
class MergeResult:
    """Merged document plus the annotated conflicts of the detection pass."""

    merged: PlanDocument
    conflicts: List[Conflict] = field(default_factory=list)
    auto_resolved: int = 0

    @property
    def pending(self) -> List[Conflict]:
        """Conflicts that still need a user decision."""
        return [c for c in self.conflicts if not c.auto_resolvable and not c.resolved]


def union(first: Iterable[T], second: Iterable[T]) -> List[T]:
    """Ordered union using value equality (works for unhashable models too)."""
    merged: List[T] = []
    for item in (*first, *second):
        if item not in merged:
            merged.append(item)
    return merged


def merge_skills(skills_a: Sequence[str], skills_b: Sequence[str]) -> tuple[List[str], List[str]]:
    """Union two plain skill lists. Skills never conflict; the second list is always empty."""
    return union(skills_a, skills_b), []


def select_shorter_duration(duration_a: str, duration_b: str) -> str:
    """Pick the duration with fewer leading months; ties keep ``duration_a``."""
    return duration_a if leading_months(duration_a) <= leading_months(duration_b) else duration_b


def merge_timelines(
    phases_a: Sequence[TimelinePhase],
    phases_b: Sequence[TimelinePhase],
) -> List[TimelinePhase]:
    """Merge phases position by position against the longer list."""
    longer = phases_a if len(phases_a) >= len(phases_b) else phases_b
    merged: List[TimelinePhase] = []
    for index, base in enumerate(longer):
        if index >= len(phases_a) or index >= len(phases_b):
            merged.append(base.model_copy(deep=True))
            continue
        phase_a = phases_a[index]
        phase_b = phases_b[index]
        merged.append(
            TimelinePhase(
                phase=phase_a.phase,
                action=f"{phase_a.action} + {phase_b.action}",
                duration=select_shorter_duration(phase_a.duration, phase_b.duration),
                weekly_hours=max(phase_a.weekly_hours, phase_b.weekly_hours),
                milestones=union(phase_a.milestones, phase_b.milestones),
                dependencies=union(phase_a.dependencies, phase_b.dependencies),
            )
        )
    return merged


def _merge_interview_prep(prep_a: InterviewPrep, prep_b: InterviewPrep) -> InterviewPrep:
    tech_a, tech_b = prep_a.technical, prep_b.technical
    beh_a, beh_b = prep_a.behavioral, prep_b.behavioral
    asm_a, asm_b = prep_a.assessments, prep_b.assessments
    return InterviewPrep(
        technical=TechnicalPrep(
            topics=union(tech_a.topics, tech_b.topics),
            practice_problems=tech_a.practice_problems + tech_b.practice_problems,
            mock_interviews=tech_a.mock_interviews + tech_b.mock_interviews,
            target_score=max(tech_a.target_score, tech_b.target_score),
        ),
        behavioral=BehavioralPrep(
            scenarios=union(beh_a.scenarios, beh_b.scenarios),
            star_stories=beh_a.star_stories + beh_b.star_stories,
            practice_hours=beh_a.practice_hours + beh_b.practice_hours,
        ),
        assessments=AssessmentPrep(
            platforms=union(asm_a.platforms, asm_b.platforms),
            target_score=max(asm_a.target_score, asm_b.target_score),
            completed=asm_a.completed + asm_b.completed,
        ),
    )


def _merge_placement(out_a: PlacementOutcomes, out_b: PlacementOutcomes) -> PlacementOutcomes:
    # No currency conversion: the first reality's currency labels both bounds.
    return PlacementOutcomes(
        target_companies=union(out_a.target_companies, out_b.target_companies),
        expected_ctc=ExpectedCTC(
            min=min(out_a.expected_ctc.min, out_b.expected_ctc.min),
            max=max(out_a.expected_ctc.max, out_b.expected_ctc.max),
            currency=out_a.expected_ctc.currency,
        ),
        role_type=out_a.role_type,
        success_probability=(out_a.success_probability + out_b.success_probability) / 2,
        alternative_paths=union(out_a.alternative_paths, out_b.alternative_paths),
    )


def _merged_status(
    reality_a: PlanDocument,
    reality_b: PlanDocument,
    conflicts: Sequence[Conflict],
    bound: dict[int, ResolutionChoice],
    *,
    apply_choices: bool,
) -> RealityStatus:
    status = RealityStatus.STABLE
    status_choice: Optional[ResolutionChoice] = None
    goal_resolved = False
    for index, choice in bound.items():
        conflict = conflicts[index]
        if conflict.type == ConflictType.GOAL:
            goal_resolved = True
        if conflict.subject == ConflictSubject.STATUS:
            status_choice = choice

    if apply_choices and status_choice is not None:
        status = {
            "A": reality_a.status,
            "B": reality_b.status,
            "suggested": RealityStatus.STABLE,
        }[status_choice]
    elif RealityStatus.BREACH_DETECTED in (reality_a.status, reality_b.status) and not goal_resolved:
        status = RealityStatus.BREACH_DETECTED

    for index, conflict in enumerate(conflicts):
        if conflict.type == ConflictType.TIME and index not in bound:
            status = RealityStatus.BREACH_DETECTED
            break
    return status


def _choice_for(
    subject: ConflictSubject,
    conflicts: Sequence[Conflict],
    bound: dict[int, ResolutionChoice],
) -> Optional[ResolutionChoice]:
    for index, choice in bound.items():
        if conflicts[index].subject == subject:
            return choice
    return None


def merge_documents(
    reality_a: PlanDocument,
    reality_b: PlanDocument,
    resolutions: Sequence[ConflictResolution] = (),
    *,
    apply_choices: bool = False,
) -> MergeResult:
    """Combine two plan documents. Never raises for well-formed documents.

    By default resolutions only gate the merged status and annotate the
    returned conflicts; field values always follow the combination policy.
    With ``apply_choices`` the chosen option also selects field values for
    timeline, status, phase count and glitches conflicts.
    """
    conflicts = detect_conflicts(reality_a, reality_b)
    bound = bind_resolutions(conflicts, resolutions)
    annotated = [
        conflict.model_copy(update={"resolved": True, "choice": bound[index]})
        if index in bound
        else conflict
        for index, conflict in enumerate(conflicts)
    ]

    timeline = merge_timelines(reality_a.timeline_phases, reality_b.timeline_phases)
    glitches: List[Glitch] = union(reality_a.glitches, reality_b.glitches)

    if apply_choices:
        timeline_choice = _choice_for(ConflictSubject.TIMELINE, conflicts, bound)
        if timeline_choice is not None:
            if timeline_choice == "suggested":
                shorter_is_a = total_months(reality_a.timeline_phases) <= total_months(
                    reality_b.timeline_phases
                )
                timeline_choice = "A" if shorter_is_a else "B"
            source = reality_a if timeline_choice == "A" else reality_b
            timeline = [phase.model_copy(deep=True) for phase in source.timeline_phases]

        count_choice = _choice_for(ConflictSubject.PHASE_COUNT, conflicts, bound)
        if count_choice in ("A", "B"):
            source = reality_a if count_choice == "A" else reality_b
            timeline = timeline[: len(source.timeline_phases)]

        glitch_choice = _choice_for(ConflictSubject.GLITCHES, conflicts, bound)
        if glitch_choice in ("A", "B"):
            source = reality_a if glitch_choice == "A" else reality_b
            glitches = [glitch.model_copy(deep=True) for glitch in source.glitches]

    skills_a, skills_b = reality_a.required_skills, reality_b.required_skills
    merged = PlanDocument(
        name=f"{reality_a.name} + {reality_b.name}",
        sdg_alignment=union(reality_a.sdg_alignment, reality_b.sdg_alignment),
        timeline_phases=timeline,
        glitches=glitches,
        status=_merged_status(
            reality_a, reality_b, conflicts, bound, apply_choices=apply_choices
        ),
        required_skills=RequiredSkills(
            technical=[*skills_a.technical, *skills_b.technical],
            soft=[*skills_a.soft, *skills_b.soft],
            certifications=[*skills_a.certifications, *skills_b.certifications],
        ),
        learning_resources=[*reality_a.learning_resources, *reality_b.learning_resources],
        interview_prep=_merge_interview_prep(reality_a.interview_prep, reality_b.interview_prep),
        placement_outcomes=_merge_placement(
            reality_a.placement_outcomes, reality_b.placement_outcomes
        ),
    )

    auto_resolved = sum(1 for conflict in conflicts if conflict.auto_resolvable)
    LOGGER.debug(
        "Merged '%s' with %d conflict(s), %d auto-resolvable, %d resolution(s) bound",
        merged.name,
        len(conflicts),
        auto_resolved,
        len(bound),
    )
    return MergeResult(merged=merged, conflicts=annotated, auto_resolved=auto_resolved)


def merge_realities(
    reality_a: SavedArtifact,
    reality_b: SavedArtifact,
    resolutions: Sequence[ConflictResolution] = (),
    *,
    apply_choices: bool = False,
) -> MergeResult:
    """Merge two saved realities; see :func:`merge_documents`."""
    return merge_documents(
        reality_a.data,
        reality_b.data,
        resolutions,
        apply_choices=apply_choices,
    )


__all__ = [
    "MergeResult",
    "merge_documents",
    "merge_realities",
    "merge_skills",
    "merge_timelines",
    "select_shorter_duration",
    "union",
]
