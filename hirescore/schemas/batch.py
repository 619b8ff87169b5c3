from enum import StrEnum

from pydantic import BaseModel, Field, model_validator

from hirescore.schemas.document import CandidateDocument, ExtractionMethod
from hirescore.schemas.scoring import ScoringResult


class CandidateStatus(StrEnum):
    PENDING = "pending"
    PROCESSING = "processing"
    SUCCESS = "success"
    FAILED = "failed"


class BatchState(StrEnum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class BatchCandidate(BaseModel):
    """A candidate submitted for batch screening.

    Either an uploaded document or already-extracted text must be given.
    """

    candidate_id: str = Field(description="Unique identifier within the batch")
    name: str = Field(description="Display name (usually the filename)")
    document: CandidateDocument | None = None
    text: str | None = Field(
        default=None,
        description="Pre-extracted CV text; skips document extraction"
    )

    @model_validator(mode="after")
    def _require_content(self) -> "BatchCandidate":
        if self.document is None and self.text is None:
            raise ValueError("BatchCandidate needs a document or text")
        return self


class CandidateOutcome(BaseModel):
    """Per-candidate batch entry; failures are data, never exceptions."""

    candidate_id: str
    name: str
    status: CandidateStatus
    result: ScoringResult
    error: str | None = None
    attempts: int = 0
    latency_ms: int = 0
    extraction_method: ExtractionMethod | None = None

    @property
    def success(self) -> bool:
        return self.status == CandidateStatus.SUCCESS


class BatchJob(BaseModel):
    """Bookkeeping for a running batch."""

    candidates: list[BatchCandidate]
    chunk_size: int
    max_concurrent_chunks: int
    statuses: dict[str, CandidateStatus] = Field(default_factory=dict)
    completed: int = 0

    @property
    def total(self) -> int:
        return len(self.candidates)

    def chunks(self) -> list[list[BatchCandidate]]:
        return [
            self.candidates[i:i + self.chunk_size]
            for i in range(0, len(self.candidates), self.chunk_size)
        ]

    def mark(self, candidates: list[BatchCandidate], status: CandidateStatus) -> None:
        for candidate in candidates:
            self.statuses[candidate.candidate_id] = status


class BatchSummary(BaseModel):
    total: int
    processed: int = Field(description="Candidates scored successfully")
    failed: int
    elapsed_ms: int
    avg_ms_per_candidate: int


class BatchResult(BaseModel):
    """Ordered outcomes for every submitted candidate plus summary counters."""

    results: list[CandidateOutcome]
    summary: BatchSummary
