"""Merge field policy, merged status and choice-driven merging."""

from __future__ import annotations

from realities.memory.schema import RealityStatus, TimelinePhase
from realities.merge import merge_documents, merge_skills, merge_timelines
from realities.merge.conflicts import ConflictResolution, ConflictType, NumberValue
from realities.merge.durations import total_months
from realities.merge.reconcile import select_shorter_duration, union


def test_scenario_short_stable_realities_merge_cleanly(make_document) -> None:
    a = make_document("A", ("10 months", "5 months", "5 months"))
    b = make_document("B", ("4 months", "3 months", "3 months"))

    result = merge_documents(a, b)

    assert result.conflicts == []
    assert result.auto_resolved == 0
    assert result.merged.status == RealityStatus.STABLE
    assert result.merged.name == "A + B"


def test_scenario_long_timeline_breaches_until_resolved(make_document) -> None:
    a = make_document("A", ("10 months", "10 months", "5 months"))
    b = make_document("B", ("5 months", "5 months", "5 months"))

    result = merge_documents(a, b)
    (conflict,) = result.conflicts
    assert conflict.type == ConflictType.TIME
    assert conflict.auto_resolvable is False
    assert conflict.suggested == NumberValue(value=15)
    assert result.merged.status == RealityStatus.BREACH_DETECTED
    assert result.pending == [conflict]

    resolved = merge_documents(a, b, [ConflictResolution(conflict_index=0, selected_option="suggested")])
    assert resolved.merged.status == RealityStatus.STABLE
    assert resolved.conflicts[0].resolved
    assert resolved.conflicts[0].choice == "suggested"
    assert resolved.pending == []


def test_scenario_source_breach_propagates_without_goal_resolution(make_document) -> None:
    a = make_document("A")
    b = make_document("B", status="BREACH_DETECTED")

    result = merge_documents(a, b)
    (conflict,) = result.conflicts
    assert conflict.type == ConflictType.GOAL
    assert conflict.auto_resolvable
    assert result.auto_resolved == 1
    assert result.merged.status == RealityStatus.BREACH_DETECTED

    resolved = merge_documents(a, b, [ConflictResolution(conflict_index=0, selected_option="B")])
    assert resolved.merged.status == RealityStatus.STABLE
    # Default mode ignores the chosen option for field values.
    assert resolved.auto_resolved == 1


def test_auto_resolved_counts_regardless_of_resolutions(make_document) -> None:
    a = make_document("A", ("1 month",) * 3, glitches=["alpha"])
    b = make_document("B", ("1 month",) * 5, status="BREACH_DETECTED", glitches=["beta"])
    bare = merge_documents(a, b)
    resolved = merge_documents(
        a,
        b,
        [ConflictResolution(conflict_index=i, selected_option="A") for i in range(3)],
    )
    assert bare.auto_resolved == resolved.auto_resolved == 3


def test_timeline_merge_folds_shorter_list_by_position() -> None:
    phases_a = [
        TimelinePhase(phase="Learn", action="Study", duration="6 months", weekly_hours=10, milestones=["m1"]),
        TimelinePhase(phase="Build", action="Projects", duration="4 months", weekly_hours=8),
    ]
    phases_b = [
        TimelinePhase(phase="Basics", action="Read", duration="3 months", weekly_hours=12, milestones=["m1", "m2"]),
        TimelinePhase(phase="Apply", action="Intern", duration="4 months", weekly_hours=5),
        TimelinePhase(phase="Land", action="Interview", duration="2 months", weekly_hours=15),
    ]

    merged = merge_timelines(phases_a, phases_b)

    assert len(merged) == 3
    assert merged[0].phase == "Learn"
    assert merged[0].action == "Study + Read"
    assert merged[0].duration == "3 months"
    assert merged[0].weekly_hours == 12
    assert merged[0].milestones == ["m1", "m2"]
    assert merged[1].duration == "4 months"
    assert merged[2] == phases_b[2]
    assert merged[2] is not phases_b[2]


def test_select_shorter_duration_keeps_first_on_tie() -> None:
    assert select_shorter_duration("4 months", "4 mo") == "4 months"
    assert select_shorter_duration("ongoing", "2 months") == "ongoing"
    assert select_shorter_duration("9 months", "2 months") == "2 months"


def test_field_policy_unions_sums_and_concatenates(make_document) -> None:
    shared_skill = {"skill": "Python", "priority": "Critical", "targetLevel": 80}
    a = make_document(
        "A",
        sdgs=["SDG 4", "SDG 8"],
        glitches=["Burnout"],
        requiredSkills={"technical": [shared_skill]},
        learningResources=[{"title": "Course A"}],
        interviewPrep={
            "technical": {"topics": ["DSA"], "practiceProblems": 100, "mockInterviews": 2, "targetScore": 70},
            "behavioral": {"scenarios": ["Conflict"], "starStories": 3, "practiceHours": 5},
            "assessments": {"platforms": ["HackerRank"], "targetScore": 60, "completed": 1},
        },
        placementOutcomes={
            "targetCompanies": ["Acme"],
            "expectedCTC": {"min": 6, "max": 10, "currency": "INR"},
            "roleType": "Startup",
            "successProbability": 70,
            "alternativePaths": ["MS"],
        },
    )
    b = make_document(
        "B",
        sdgs=["SDG 8", "SDG 9"],
        glitches=["Burnout"],
        requiredSkills={"technical": [shared_skill]},
        learningResources=[{"title": "Course A"}],
        interviewPrep={
            "technical": {"topics": ["DSA", "SQL"], "practiceProblems": 50, "mockInterviews": 1, "targetScore": 85},
            "behavioral": {"scenarios": ["Failure"], "starStories": 2, "practiceHours": 2.5},
            "assessments": {"platforms": ["HackerRank"], "targetScore": 65, "completed": 0},
        },
        placementOutcomes={
            "targetCompanies": ["Acme", "Globex"],
            "expectedCTC": {"min": 4, "max": 12, "currency": "USD"},
            "roleType": "Research",
            "successProbability": 55,
            "alternativePaths": ["MS", "MBA"],
        },
    )

    merged = merge_documents(a, b).merged

    assert merged.sdg_alignment == ["SDG 4", "SDG 8", "SDG 9"]
    assert [glitch.description for glitch in merged.glitches] == ["Burnout"]
    assert len(merged.required_skills.technical) == 2
    assert len(merged.learning_resources) == 2

    prep = merged.interview_prep
    assert prep.technical.topics == ["DSA", "SQL"]
    assert prep.technical.practice_problems == 150
    assert prep.technical.mock_interviews == 3
    assert prep.technical.target_score == 85
    assert prep.behavioral.scenarios == ["Conflict", "Failure"]
    assert prep.behavioral.star_stories == 5
    assert prep.behavioral.practice_hours == 7.5
    assert prep.assessments.platforms == ["HackerRank"]
    assert prep.assessments.target_score == 65
    assert prep.assessments.completed == 1

    outcomes = merged.placement_outcomes
    assert outcomes.target_companies == ["Acme", "Globex"]
    assert outcomes.expected_ctc.min == 4
    assert outcomes.expected_ctc.max == 12
    assert outcomes.expected_ctc.currency == "INR"
    assert outcomes.role_type == "Startup"
    assert outcomes.success_probability == 62.5
    assert outcomes.alternative_paths == ["MS", "MBA"]


def test_merge_leaves_inputs_untouched(make_document) -> None:
    a = make_document("A", glitches=["alpha"])
    b = make_document("B", glitches=["beta"])
    before_a = a.model_dump()
    before_b = b.model_dump()

    merge_documents(a, b)

    assert a.model_dump() == before_a
    assert b.model_dump() == before_b


def test_merge_skills_never_reports_conflicts() -> None:
    merged, conflicts = merge_skills(["Python", "SQL"], ["SQL", "Docker"])
    assert merged == ["Python", "SQL", "Docker"]
    assert conflicts == []
    assert union([1, 2], [2, 3]) == [1, 2, 3]


def test_apply_choices_selects_timeline_and_glitches(make_document) -> None:
    a = make_document("A", ("20 months", "10 months", "1 month"), glitches=["alpha"])
    b = make_document("B", ("5 months", "5 months", "5 months"), glitches=["beta"])
    conflicts = merge_documents(a, b).conflicts
    timeline_id = conflicts[0].conflict_id

    result = merge_documents(
        a,
        b,
        [
            ConflictResolution(conflict_id=timeline_id, selected_option="suggested"),
            ConflictResolution(conflict_index=1, selected_option="A"),
        ],
        apply_choices=True,
    )

    assert total_months(result.merged.timeline_phases) == 15
    assert result.merged.timeline_phases == b.timeline_phases
    assert [glitch.description for glitch in result.merged.glitches] == ["alpha"]
    assert result.merged.status == RealityStatus.STABLE


def test_apply_choices_truncates_to_chosen_phase_count(make_document) -> None:
    a = make_document("A", ("1 month",) * 2)
    b = make_document("B", ("1 month",) * 4)

    result = merge_documents(
        a,
        b,
        [ConflictResolution(conflict_index=0, selected_option="A")],
        apply_choices=True,
    )
    assert len(result.merged.timeline_phases) == 2

    default = merge_documents(a, b, [ConflictResolution(conflict_index=0, selected_option="A")])
    assert len(default.merged.timeline_phases) == 4


def test_apply_choices_status_option_overrides_breach(make_document) -> None:
    a = make_document("A")
    b = make_document("B", status="BREACH_DETECTED")

    chose_b = merge_documents(
        a, b, [ConflictResolution(conflict_index=0, selected_option="B")], apply_choices=True
    )
    assert chose_b.merged.status == RealityStatus.BREACH_DETECTED

    chose_suggested = merge_documents(
        a, b, [ConflictResolution(conflict_index=0, selected_option="suggested")], apply_choices=True
    )
    assert chose_suggested.merged.status == RealityStatus.STABLE
