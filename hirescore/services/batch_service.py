"""Batch screening of many candidates against one job description.

Pipeline per batch:
1. Partition candidates into fixed-size chunks
2. Dispatch chunks in input order, at most ``max_concurrent_chunks`` at a time
3. Per chunk: extract + validate, then one aggregated scoring request,
   falling back to individual requests (with retry) when it fails
4. Merge each finished chunk in the driving task and report progress

Per-candidate failures become failed outcomes; only setup errors raise.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable

from pydantic import BaseModel, Field

from hirescore.config import (
    BATCH_CHUNK_SIZE,
    BATCH_MAX_CONCURRENT_CHUNKS,
    GROQ_MODEL,
    INTER_GROUP_DELAY,
    RETRY_BASE_DELAY,
    RETRY_JITTER,
    SCORING_MAX_ATTEMPTS,
)
from hirescore.cv.extractor import DocumentExtractor
from hirescore.schemas.batch import (
    BatchCandidate,
    BatchJob,
    BatchResult,
    BatchState,
    BatchSummary,
    CandidateOutcome,
    CandidateStatus,
)
from hirescore.scoring.client import ScoringClient, ScoringError
from hirescore.services.screening_service import (
    PreparedCandidate,
    failed_outcome,
    prepare_candidate,
    score_prepared,
    success_outcome,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int, str | None], None]


class BatchSetupError(ValueError):
    """Raised before dispatch when a batch cannot start."""

    pass


class BatchSettings(BaseModel):
    """Tunables for batch processing."""

    chunk_size: int = Field(default=BATCH_CHUNK_SIZE, ge=1)
    max_concurrent_chunks: int = Field(default=BATCH_MAX_CONCURRENT_CHUNKS, ge=1)
    max_attempts: int = Field(default=SCORING_MAX_ATTEMPTS, ge=1)
    base_delay: float = Field(default=RETRY_BASE_DELAY, ge=0)
    jitter: float = Field(default=RETRY_JITTER, ge=0)
    inter_group_delay: float = Field(default=INTER_GROUP_DELAY, ge=0)
    aggregate_chunks: bool = True
    model: str = GROQ_MODEL


class BatchOrchestrator:
    """Runs the screening pipeline over a whole upload set.

    Args:
        client: Scoring client shared by all candidates.
        extractor: Document extractor; built from config when omitted.
        settings: Batch tunables.
        sleep: Awaitable sleep used for backoff and inter-group delays.
    """

    def __init__(
        self,
        client: ScoringClient,
        extractor: DocumentExtractor | None = None,
        settings: BatchSettings | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.client = client
        self.extractor = extractor or DocumentExtractor.from_config()
        self.settings = settings or BatchSettings()
        self.sleep = sleep
        self.state = BatchState.IDLE
        self.job: BatchJob | None = None

    async def run(
        self,
        job_description: str,
        candidates: list[BatchCandidate],
        on_progress: ProgressCallback | None = None,
        should_cancel: Callable[[], bool] | None = None,
    ) -> BatchResult:
        """Screen every candidate and return one outcome per candidate.

        Args:
            job_description: Job description text.
            candidates: Candidates in submission order.
            on_progress: Called with (completed, total, status) after each chunk.
            should_cancel: Checked before each chunk starts; when it returns
                True the chunk's candidates are recorded as cancelled.

        Returns:
            BatchResult with outcomes in input order and summary counters.

        Raises:
            BatchSetupError: If the job description is missing, the candidate
                list is empty or candidate ids are not unique.
        """
        self._check_setup(job_description, candidates)

        settings = self.settings
        job = BatchJob(
            candidates=candidates,
            chunk_size=settings.chunk_size,
            max_concurrent_chunks=settings.max_concurrent_chunks,
        )
        job.mark(candidates, CandidateStatus.PENDING)
        self.job = job
        self.state = BatchState.RUNNING

        chunks = job.chunks()
        total = job.total
        started = time.perf_counter()
        logger.info(
            f"Screening {total} candidates in {len(chunks)} chunks "
            f"(chunk size {settings.chunk_size}, window {settings.max_concurrent_chunks}, "
            f"model {settings.model})"
        )

        window = asyncio.Semaphore(settings.max_concurrent_chunks)

        async def run_chunk(index: int, chunk: list[BatchCandidate]) -> list[CandidateOutcome]:
            async with window:
                if should_cancel is not None and should_cancel():
                    return self._fail_chunk(chunk, "Batch cancelled before this candidate was processed")
                try:
                    outcomes = await self._process_chunk(job_description, chunk)
                except Exception as e:
                    logger.exception(f"Unexpected error in chunk {index + 1}")
                    outcomes = self._fail_chunk(chunk, f"Unexpected error: {e}")
                if index < len(chunks) - 1 and settings.inter_group_delay:
                    await self.sleep(settings.inter_group_delay)
                return outcomes

        tasks = [
            asyncio.create_task(run_chunk(index, chunk))
            for index, chunk in enumerate(chunks)
        ]

        by_id: dict[str, CandidateOutcome] = {}
        chunks_done = 0
        for finished in asyncio.as_completed(tasks):
            outcomes = await finished
            chunks_done += 1
            for outcome in outcomes:
                by_id[outcome.candidate_id] = outcome
                job.statuses[outcome.candidate_id] = outcome.status
            job.completed += len(outcomes)
            succeeded = sum(1 for o in outcomes if o.success)
            self._report(
                on_progress,
                job.completed,
                total,
                f"Chunk {chunks_done}/{len(chunks)} done ({succeeded}/{len(outcomes)} scored)",
            )

        results = [by_id[candidate.candidate_id] for candidate in candidates]
        elapsed_ms = int((time.perf_counter() - started) * 1000)
        processed = sum(1 for r in results if r.success)
        summary = BatchSummary(
            total=total,
            processed=processed,
            failed=total - processed,
            elapsed_ms=elapsed_ms,
            avg_ms_per_candidate=round(elapsed_ms / total),
        )

        self.state = BatchState.COMPLETED
        logger.info(
            f"Batch complete: {processed}/{total} in {elapsed_ms}ms "
            f"(avg {summary.avg_ms_per_candidate}ms/CV)"
        )
        return BatchResult(results=results, summary=summary)

    def _check_setup(self, job_description: str, candidates: list[BatchCandidate]) -> None:
        error = None
        if not job_description or not job_description.strip():
            error = "A job description is required"
        elif not candidates:
            error = "No candidates to screen"
        else:
            ids = [c.candidate_id for c in candidates]
            if len(set(ids)) != len(ids):
                error = "Candidate ids must be unique within a batch"

        if error is not None:
            self.state = BatchState.FAILED
            logger.error(f"Batch setup failed: {error}")
            raise BatchSetupError(error)

    def _report(
        self,
        on_progress: ProgressCallback | None,
        completed: int,
        total: int,
        status: str,
    ) -> None:
        logger.info(f"Progress {completed}/{total}: {status}")
        if on_progress is None:
            return
        try:
            on_progress(completed, total, status)
        except Exception:
            logger.exception("Progress callback raised; continuing batch")

    def _fail_chunk(self, chunk: list[BatchCandidate], message: str) -> list[CandidateOutcome]:
        started = time.perf_counter()
        return [
            failed_outcome(candidate, message, started)
            for candidate in chunk
        ]

    async def _prepare(self, candidate: BatchCandidate) -> PreparedCandidate | CandidateOutcome:
        started = time.perf_counter()
        try:
            return await prepare_candidate(candidate, self.extractor)
        except Exception as e:
            logger.exception(f"Unexpected error preparing {candidate.name}")
            return failed_outcome(candidate, f"Unexpected error: {e}", started)

    async def _process_chunk(
        self,
        job_description: str,
        chunk: list[BatchCandidate],
    ) -> list[CandidateOutcome]:
        """Process one chunk; the returned list covers every candidate in it."""
        self.job.mark(chunk, CandidateStatus.PROCESSING)
        settings = self.settings

        prepared_or_done = await asyncio.gather(*(self._prepare(c) for c in chunk))
        outcomes = [p for p in prepared_or_done if isinstance(p, CandidateOutcome)]
        pending = [p for p in prepared_or_done if isinstance(p, PreparedCandidate)]

        if settings.aggregate_chunks and len(pending) > 1:
            scored = await self._score_aggregated(job_description, pending)
            for prepared in pending:
                result = scored.get(prepared.candidate.candidate_id)
                if result is not None:
                    outcomes.append(success_outcome(prepared, result, attempts=1))
            pending = [p for p in pending if p.candidate.candidate_id not in scored]
            if pending:
                logger.info(f"Scoring {len(pending)} candidates individually")

        if pending:
            outcomes.extend(await asyncio.gather(*(
                score_prepared(
                    prepared,
                    job_description,
                    self.client,
                    model=settings.model,
                    max_attempts=settings.max_attempts,
                    base_delay=settings.base_delay,
                    jitter=settings.jitter,
                    sleep=self.sleep,
                )
                for prepared in pending
            )))

        return outcomes

    async def _score_aggregated(
        self,
        job_description: str,
        pending: list[PreparedCandidate],
    ) -> dict:
        pairs = [(p.candidate.candidate_id, p.extraction.text) for p in pending]
        try:
            return await self.client.score_many(job_description, pairs, model=self.settings.model)
        except ScoringError as e:
            logger.warning(f"Aggregated request failed, falling back to individual calls: {e}")
            return {}
        except Exception:
            logger.exception("Unexpected error in aggregated request, falling back to individual calls")
            return {}
