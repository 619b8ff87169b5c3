"""Prompt templates for CV screening.

Templates are rendered by langchain's ChatPromptTemplate, so literal braces
in the JSON examples are doubled.
"""

SYSTEM_PROMPT = "You are an expert HR recruiter. Always respond with valid JSON only."

RUBRIC = """\
SKILL EQUIVALENCES (exact matches): React = React.js = ReactJS | Node.js = NodeJS = Express.js |
Go = Golang | Kubernetes = K8s | PostgreSQL = Postgres | TypeScript = TS | AWS = EC2/S3/Lambda
PARTIAL MATCHES (70% weight): React <-> Vue <-> Angular | AWS <-> GCP <-> Azure |
PostgreSQL <-> MySQL | Java <-> C# <-> Kotlin | Python <-> Ruby <-> PHP

SCORING: Technical(35) + Experience(25) + Education(15) + Progression(15) + Communication(10)
- List every REQUIRED skill from the job description that the CV does not show in missingSkills.
- Report scoreBreakdown honestly; do not lower it for missing skills.
- GATING: 1 required skill missing -> max 75 | 2 missing -> max 55 | 3+ missing -> max 40

CONFIDENCE (0.0-1.0): high when skills and timeline are explicit and verifiable,
low when most claims are inferred or the CV is sparse.

INTERVIEW QUESTIONS: 5 questions specific to this CV and job, prefixed with
[PHONE], [TECH], [BEHAVIORAL] or [FINAL]."""

RESULT_FIELDS = """\
  "score": 0-100,
  "confidence": 0.0-1.0,
  "confidenceReason": "one sentence",
  "recommendation": "interview|maybe|pass",
  "summary": "2-3 sentences",
  "scoreBreakdown": {{"technicalSkills": 0-35, "experience": 0-25, "education": 0-15, "careerProgression": 0-15, "communication": 0-10}},
  "matchedSkills": ["skill"],
  "partialMatches": [{{"skill": "required skill", "candidateHas": "related skill"}}],
  "missingSkills": ["required skill not in CV"],
  "strengths": ["top strength"],
  "concerns": ["concern if any"],
  "interviewQuestions": ["[TECH] question"],
  "experienceYears": 0,
  "relevantExperienceYears": 0,
  "skillMatchPercent": 0"""

SCREENING_PROMPT = (
    "Analyze the CV against the job description.\n\n"
    + RUBRIC
    + """

JOB DESCRIPTION:
{job_description}

CANDIDATE CV:
{cv_text}

Return ONLY one JSON object with this structure. No markdown, no explanation.
{{
"""
    + RESULT_FIELDS
    + "\n}}"
)

BATCH_SCREENING_PROMPT = (
    "Analyze each candidate CV independently against the same job description.\n\n"
    + RUBRIC
    + """

JOB DESCRIPTION:
{job_description}

CANDIDATES:
{candidates}

Return ONLY one JSON object with a "results" array holding exactly one entry per
candidate, each carrying its candidateId. No markdown, no explanation.
{{
"results": [
 {{
  "candidateId": "id from the CANDIDATES list",
"""
    + RESULT_FIELDS
    + "\n }}\n]\n}}"
)

CANDIDATE_BLOCK = """\
--- CANDIDATE {candidate_id} ---
{cv_text}
--- END CANDIDATE {candidate_id} ---"""


def format_candidates(candidates: list[tuple[str, str]]) -> str:
    """Render (candidate_id, cv_text) pairs for the batch prompt.

    The result is passed as a template variable, so its braces are not
    interpreted.
    """
    return "\n\n".join(
        CANDIDATE_BLOCK.format(candidate_id=candidate_id, cv_text=cv_text)
        for candidate_id, cv_text in candidates
    )
