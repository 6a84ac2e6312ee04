"""Prompt templates used when asking the model for a career reality."""

from __future__ import annotations

from typing import Sequence

from .memory.schema import Profile

JSON_RESPONSE_INSTRUCTION = (
    "Respond ONLY with one JSON object. No markdown fences, no explanations, no trailing text. "
    "Use double-quoted keys and strings."
)

PLANNER_SYSTEM_PROMPT = (
    "You are the Career Reality Architect. You turn a student's request into a structured, "
    "realistic career plan (a 'reality') and flag the risks ('glitches') that could break it."
)

REALITY_SCHEMA_HINT = """\
{
  "reality_name": "Brief descriptive name of the career path",
  "sdg_alignment": ["SDG 4", "SDG 8"],
  "requiredSkills": {
    "technical": [{"skill": "...", "priority": "Critical|Important|Nice-to-have", "currentLevel": 0, "targetLevel": 80, "learningPath": ["..."]}],
    "soft": [{"skill": "...", "importance": "High|Medium|Low", "developmentActivities": ["..."]}],
    "certifications": [{"name": "...", "deadline": "...", "cost": 0, "priority": "Must-have|Recommended|Optional"}]
  },
  "learningResources": [{"title": "...", "type": "Course|Book|Tutorial|Project|Practice", "platform": "...", "duration": "...", "cost": 0, "prerequisite": [], "status": "Not Started"}],
  "interviewPrep": {
    "technical": {"topics": ["..."], "practiceProblems": 0, "mockInterviews": 0, "targetScore": 0},
    "behavioral": {"scenarios": ["..."], "starStories": 0, "practiceHours": 0},
    "assessments": {"platforms": ["..."], "targetScore": 0, "completed": 0}
  },
  "timeline_phases": [
    {"phase": "Foundation", "action": "...", "duration": "N months", "weeklyHours": 10, "milestones": ["..."], "dependencies": []}
  ],
  "placementOutcomes": {
    "targetCompanies": ["..."],
    "expectedCTC": {"min": 0, "max": 0, "currency": "INR"},
    "roleType": "Service-based|Product-based|Startup|Research",
    "successProbability": 0,
    "alternativePaths": ["..."]
  },
  "glitches": [{"type": "Time|Prerequisite|Goal|Resource|Skill", "description": "...", "severity": "Low|Medium|High|Critical", "resolution": "..."}],
  "status": "STABLE|BREACH_DETECTED"
}"""

PLANNER_RULES: tuple[str, ...] = (
    "Always include at least 3 timeline phases; every duration starts with a number of months.",
    "If the request compares two or more paths, list at least 2 glitches and set status to BREACH_DETECTED.",
    "If the request forks a single path, glitches may be empty or list potential risks; status is STABLE.",
    "Ground skills, resources and companies in the student's profile when one is given.",
)


def render_rules(rules: Sequence[str]) -> str:
    """Format planner rules as a bullet list block."""
    body = "\n".join(f"- {rule.strip()}" for rule in rules if rule.strip())
    return f"RULES:\n{body}" if body else ""


def profile_context(profile: Profile | None) -> str:
    """Summarise the profile as a compact text block for the prompt."""
    if profile is None:
        return ""
    lines: list[str] = []
    if profile.name:
        lines.append(f"Name: {profile.name}")
    education = profile.education
    degree = " ".join(part for part in (education.degree, education.major) if part)
    if degree or education.university:
        school = f" at {education.university}" if education.university else ""
        year = f", {education.current_year}" if education.current_year else ""
        lines.append(f"Education: {degree or 'Student'}{school}{year} (CGPA {education.cgpa:g})")
    if profile.skills.technical:
        skills = ", ".join(f"{skill.name} ({skill.proficiency})" for skill in profile.skills.technical)
        lines.append(f"Technical skills: {skills}")
    if profile.skills.soft:
        lines.append("Soft skills: " + ", ".join(skill.name for skill in profile.skills.soft))
    if profile.skills.certifications:
        lines.append(
            "Certifications: " + ", ".join(cert.name for cert in profile.skills.certifications)
        )
    if profile.projects:
        lines.append("Projects: " + "; ".join(project.title for project in profile.projects))
    if profile.internships:
        lines.append(
            "Internships: "
            + "; ".join(f"{item.role} at {item.company}".strip() for item in profile.internships)
        )
    if profile.achievements:
        lines.append("Achievements: " + "; ".join(item.title for item in profile.achievements))
    if profile.target_roles:
        roles = ", ".join(
            f"{role.role} ({role.priority}, readiness {role.current_readiness:g}%)"
            for role in profile.target_roles
        )
        lines.append(f"Target roles: {roles}")
    return "\n".join(lines)


def render_planner_prompt(prompt: str, context: str = "") -> str:
    """Build the user prompt for one generation request."""
    sections = [
        "TASK: Detect whether the user forks a new path or compares/merges paths, then build the plan.",
        render_rules(PLANNER_RULES),
        f"OUTPUT FORMAT:\n{REALITY_SCHEMA_HINT}",
    ]
    if context.strip():
        sections.append(f"STUDENT PROFILE:\n{context.strip()}")
    sections.append(f"USER REQUEST: {prompt.strip()}")
    sections.append(JSON_RESPONSE_INSTRUCTION)
    return "\n\n".join(sections)


__all__ = [
    "JSON_RESPONSE_INSTRUCTION",
    "PLANNER_SYSTEM_PROMPT",
    "profile_context",
    "render_planner_prompt",
    "render_rules",
]
