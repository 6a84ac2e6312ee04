"""Typed records tracked by the career reality store."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


def utc_now() -> datetime:
    """Return a timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


def generate_reality_id() -> str:
    """Return an opaque identifier in the ``reality_<ms>_<suffix>`` shape."""
    millis = int(utc_now().timestamp() * 1000)
    return f"reality_{millis}_{uuid.uuid4().hex[:9]}"


class RecordModel(BaseModel):
    """Base model for plan content; tolerates unknown keys emitted by generators."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class RealityStatus(str, Enum):
    """Document-level stability flag."""

    STABLE = "STABLE"
    BREACH_DETECTED = "BREACH_DETECTED"


_STATUS_ALIASES = {
    "stable": RealityStatus.STABLE,
    "breach_detected": RealityStatus.BREACH_DETECTED,
    "breach detected": RealityStatus.BREACH_DETECTED,
    "critical": RealityStatus.BREACH_DETECTED,
}


class RequiredSkill(RecordModel):
    skill: str
    priority: Literal["Critical", "Important", "Nice-to-have"] = "Important"
    current_level: int = Field(default=0, ge=0, le=100, alias="currentLevel")
    target_level: int = Field(default=0, ge=0, le=100, alias="targetLevel")
    learning_path: List[str] = Field(default_factory=list, alias="learningPath")


class RequiredSoftSkill(RecordModel):
    skill: str
    importance: Literal["High", "Medium", "Low"] = "Medium"
    development_activities: List[str] = Field(default_factory=list, alias="developmentActivities")


class RequiredCertification(RecordModel):
    name: str
    deadline: str = ""
    cost: float = 0
    priority: Literal["Must-have", "Recommended", "Optional"] = "Recommended"


class RequiredSkills(RecordModel):
    technical: List[RequiredSkill] = Field(default_factory=list)
    soft: List[RequiredSoftSkill] = Field(default_factory=list)
    certifications: List[RequiredCertification] = Field(default_factory=list)


class LearningResource(RecordModel):
    """Course, book or practice item recommended by a plan."""

    title: str
    type: Literal["Course", "Book", "Tutorial", "Project", "Practice"] = "Course"
    platform: str = ""
    duration: str = ""
    cost: float = 0
    prerequisite: List[str] = Field(default_factory=list)
    status: Literal["Not Started", "In Progress", "Completed"] = "Not Started"
    url: Optional[str] = None


class TechnicalPrep(RecordModel):
    topics: List[str] = Field(default_factory=list)
    practice_problems: int = Field(default=0, alias="practiceProblems")
    mock_interviews: int = Field(default=0, alias="mockInterviews")
    target_score: float = Field(default=0, alias="targetScore")


class BehavioralPrep(RecordModel):
    scenarios: List[str] = Field(default_factory=list)
    star_stories: int = Field(default=0, alias="starStories")
    practice_hours: float = Field(default=0, alias="practiceHours")


class AssessmentPrep(RecordModel):
    platforms: List[str] = Field(default_factory=list)
    target_score: float = Field(default=0, alias="targetScore")
    completed: int = 0


class InterviewPrep(RecordModel):
    technical: TechnicalPrep = Field(default_factory=TechnicalPrep)
    behavioral: BehavioralPrep = Field(default_factory=BehavioralPrep)
    assessments: AssessmentPrep = Field(default_factory=AssessmentPrep)


class TimelinePhase(RecordModel):
    """One step of the plan; ``duration`` is free text such as ``"6 months"``."""

    phase: str
    action: str
    duration: str = ""
    weekly_hours: int = Field(default=0, alias="weeklyHours")
    milestones: List[str] = Field(default_factory=list)
    dependencies: List[str] = Field(default_factory=list)


class ExpectedCTC(RecordModel):
    min: float = 0
    max: float = 0
    currency: str = "INR"


class PlacementOutcomes(RecordModel):
    target_companies: List[str] = Field(default_factory=list, alias="targetCompanies")
    expected_ctc: ExpectedCTC = Field(default_factory=ExpectedCTC, alias="expectedCTC")
    role_type: Literal["Service-based", "Product-based", "Startup", "Research"] = Field(
        default="Product-based", alias="roleType"
    )
    success_probability: float = Field(default=0, ge=0, le=100, alias="successProbability")
    alternative_paths: List[str] = Field(default_factory=list, alias="alternativePaths")


class Glitch(RecordModel):
    """Risk recorded inside a single plan."""

    type: Literal["Time", "Prerequisite", "Goal", "Resource", "Skill"] = "Goal"
    description: str
    severity: Literal["Low", "Medium", "High", "Critical"] = "Medium"
    resolution: Optional[str] = None


class PlanDocument(RecordModel):
    """A generated career reality."""

    name: str = Field(validation_alias=AliasChoices("reality_name", "name"), serialization_alias="reality_name")
    required_skills: RequiredSkills = Field(default_factory=RequiredSkills, alias="requiredSkills")
    learning_resources: List[LearningResource] = Field(default_factory=list, alias="learningResources")
    interview_prep: InterviewPrep = Field(default_factory=InterviewPrep, alias="interviewPrep")
    timeline_phases: List[TimelinePhase] = Field(
        min_length=1,
        validation_alias=AliasChoices("timeline_phases", "timelinePhases"),
        serialization_alias="timeline_phases",
    )
    placement_outcomes: PlacementOutcomes = Field(
        default_factory=PlacementOutcomes, alias="placementOutcomes"
    )
    glitches: List[Glitch] = Field(default_factory=list)
    status: RealityStatus = RealityStatus.STABLE
    sdg_alignment: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("sdg_alignment", "sdgAlignment"),
        serialization_alias="sdg_alignment",
    )

    @field_validator("glitches", mode="before")
    @classmethod
    def _coerce_plain_glitches(cls, value: Any) -> Any:
        # Simpler generators emit risks as bare strings.
        if not isinstance(value, list):
            return value
        return [{"description": item} if isinstance(item, str) else item for item in value]

    @field_validator("status", mode="before")
    @classmethod
    def _coerce_status(cls, value: Any) -> Any:
        if isinstance(value, str):
            return _STATUS_ALIASES.get(value.strip().lower(), value)
        return value

    def to_payload(self) -> dict[str, Any]:
        """Serialise using the persisted key names."""
        return self.model_dump(mode="json", by_alias=True)


class Coursework(RecordModel):
    course: str
    grade: str = ""
    credits: float = 0
    semester: str = ""


class Education(RecordModel):
    degree: str = ""
    major: str = ""
    university: str = "Christ University"
    cgpa: float = 0
    current_year: str = Field(default="", alias="currentYear")
    expected_graduation: str = Field(default="", alias="expectedGraduation")
    coursework: List[Coursework] = Field(default_factory=list)


class TechnicalSkill(RecordModel):
    name: str
    proficiency: Literal["Beginner", "Intermediate", "Advanced", "Expert"] = "Beginner"
    years_of_experience: float = Field(default=0, alias="yearsOfExperience")
    projects: List[str] = Field(default_factory=list)


class SoftSkill(RecordModel):
    name: str
    level: Literal["Developing", "Competent", "Proficient"] = "Developing"


class Certification(RecordModel):
    name: str
    issuer: str = ""
    date_obtained: str = Field(default="", alias="dateObtained")
    expiry_date: Optional[str] = Field(default=None, alias="expiryDate")
    credential_url: Optional[str] = Field(default=None, alias="credentialUrl")


class Skills(RecordModel):
    technical: List[TechnicalSkill] = Field(default_factory=list)
    soft: List[SoftSkill] = Field(default_factory=list)
    certifications: List[Certification] = Field(default_factory=list)


class Project(RecordModel):
    title: str
    description: str = ""
    technologies: List[str] = Field(default_factory=list)
    github_url: Optional[str] = Field(default=None, alias="githubUrl")
    live_url: Optional[str] = Field(default=None, alias="liveUrl")
    start_date: str = Field(default="", alias="startDate")
    end_date: Optional[str] = Field(default=None, alias="endDate")
    achievements: List[str] = Field(default_factory=list)


class Internship(RecordModel):
    company: str
    role: str = ""
    duration: str = ""
    start_date: str = Field(default="", alias="startDate")
    end_date: Optional[str] = Field(default=None, alias="endDate")
    responsibilities: List[str] = Field(default_factory=list)
    achievements: List[str] = Field(default_factory=list)
    technologies: List[str] = Field(default_factory=list)


class Achievement(RecordModel):
    title: str
    description: str = ""
    date: str = ""
    category: Literal["Academic", "Technical", "Leadership", "Other"] = "Other"


class TargetRole(RecordModel):
    role: str
    priority: Literal["High", "Medium", "Low"] = "Medium"
    target_companies: List[str] = Field(default_factory=list, alias="targetCompanies")
    required_skills: List[str] = Field(default_factory=list, alias="requiredSkills")
    current_readiness: float = Field(default=0, ge=0, le=100, alias="currentReadiness")


class Profile(RecordModel):
    """The single active user profile used as generation context."""

    name: str = ""
    email: str = ""
    phone: Optional[str] = ""
    linkedin: Optional[str] = ""
    github: Optional[str] = ""
    education: Education = Field(default_factory=Education)
    skills: Skills = Field(default_factory=Skills)
    projects: List[Project] = Field(default_factory=list)
    internships: List[Internship] = Field(default_factory=list)
    achievements: List[Achievement] = Field(default_factory=list)
    target_roles: List[TargetRole] = Field(default_factory=list, alias="targetRoles")


class SavedArtifact(BaseModel):
    """Persisted reality plus its lineage and creation context. Never mutated."""

    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)

    id: str = Field(default_factory=generate_reality_id)
    name: str
    parent_id: Optional[str] = Field(default=None, alias="parentId")
    created_at: datetime = Field(default_factory=utc_now, alias="createdAt")
    data: PlanDocument
    profile: Profile = Field(default_factory=Profile)
    prompt: str = ""
