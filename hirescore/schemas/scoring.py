from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

from hirescore.config import GROQ_MODEL


class Recommendation(StrEnum):
    """Hiring decision suggested for a candidate."""

    INTERVIEW = "interview"
    MAYBE = "maybe"
    PASS = "pass"

    @classmethod
    def _missing_(cls, value):
        """Allow case-insensitive string lookup for LLM output parsing."""
        if isinstance(value, str):
            value_lower = value.strip().lower()
            for member in cls:
                if member.value == value_lower:
                    return member
        return None

    @classmethod
    def from_score(cls, score: int) -> "Recommendation":
        if score >= 70:
            return cls.INTERVIEW
        if score >= 50:
            return cls.MAYBE
        return cls.PASS


class ScoreBreakdown(BaseModel):
    """Weighted sub-scores as reported by the provider, before any gating."""

    model_config = ConfigDict(frozen=True)

    technical_skills: int = Field(default=0, description="Technical skills (0-35)")
    experience: int = Field(default=0, description="Experience (0-25)")
    education: int = Field(default=0, description="Education (0-15)")
    career_progression: int = Field(default=0, description="Career progression (0-15)")
    communication: int = Field(default=0, description="Communication (0-10)")

    @property
    def total(self) -> int:
        return (
            self.technical_skills
            + self.experience
            + self.education
            + self.career_progression
            + self.communication
        )


class ScoringRequest(BaseModel):
    """One job description / candidate text pair sent to the provider."""

    model_config = ConfigDict(frozen=True)

    job_description: str
    candidate_text: str
    model: str = GROQ_MODEL


class ScoringResult(BaseModel):
    """Structured, decision-ready evaluation of one candidate."""

    model_config = ConfigDict(frozen=True)

    score: int = Field(ge=0, le=100, description="Final score after gating")
    recommendation: Recommendation
    summary: str = ""
    matched_skills: list[str] = Field(default_factory=list)
    missing_skills: list[str] = Field(
        default_factory=list,
        description="Required skills the candidate lacks"
    )
    partial_matches: list[str] = Field(
        default_factory=list,
        description="Required skills covered by a related skill"
    )
    strengths: list[str] = Field(default_factory=list)
    concerns: list[str] = Field(default_factory=list)
    interview_questions: list[str] = Field(default_factory=list)
    experience_years: int = 0
    relevant_experience_years: int | None = None
    confidence: float | None = Field(default=None, ge=0.0, le=1.0)
    confidence_reason: str | None = None
    breakdown: ScoreBreakdown | None = Field(
        default=None,
        description="Raw sub-scores; not reduced by the gating cap"
    )
    skill_match_percent: float | None = None
    raw_score: int | None = Field(
        default=None,
        description="Score reported by the provider before gating"
    )
    gating_applied: bool = False
    degraded: bool = Field(
        default=False,
        description="Built from a provider reply that could not be decoded"
    )
    validation_warning: str | None = None
