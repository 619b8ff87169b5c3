"""Tests for batch screening orchestration."""

import pytest
from langchain_core.language_models.fake_chat_models import FakeListChatModel

from hirescore.cv.extractor import DocumentExtractor
from hirescore.schemas.batch import BatchCandidate, BatchState, CandidateStatus
from hirescore.schemas.document import CandidateDocument, ExtractionMethod
from hirescore.schemas.scoring import Recommendation
from hirescore.scoring.client import ScoringClient, ScoringPayloadError
from hirescore.services import BatchOrchestrator, BatchSettings, BatchSetupError
from tests.test_utils import (
    SAMPLE_JD,
    FakeScoringClient,
    RecordingSleep,
    make_candidate,
    make_cv_text,
    make_pdf,
    no_sleep,
)


def make_orchestrator(client, sleep=no_sleep, **settings) -> BatchOrchestrator:
    settings.setdefault("inter_group_delay", 0)
    return BatchOrchestrator(
        client,
        extractor=DocumentExtractor(),
        settings=BatchSettings(**settings),
        sleep=sleep,
    )


class TestBatchResults:
    @pytest.mark.asyncio
    async def test_one_outcome_per_candidate_in_input_order(self):
        candidates = [make_candidate(str(i)) for i in range(1, 13)]
        client = FakeScoringClient(delay=0.001)
        orchestrator = make_orchestrator(client, chunk_size=5, max_concurrent_chunks=2)

        result = await orchestrator.run(SAMPLE_JD, candidates)

        assert [o.candidate_id for o in result.results] == [c.candidate_id for c in candidates]
        assert all(o.success for o in result.results)
        assert result.summary.total == 12
        assert result.summary.processed == 12
        assert result.summary.failed == 0
        assert orchestrator.state == BatchState.COMPLETED

    @pytest.mark.asyncio
    async def test_chunks_are_scored_with_one_aggregated_request(self):
        candidates = [make_candidate(str(i)) for i in range(1, 13)]
        client = FakeScoringClient()

        await make_orchestrator(client, chunk_size=5).run(SAMPLE_JD, candidates)

        assert sorted(len(call) for call in client.many_calls) == [2, 5, 5]
        assert client.scored_texts == []

    @pytest.mark.asyncio
    async def test_model_is_passed_through(self):
        client = FakeScoringClient()
        candidates = [make_candidate("1"), make_candidate("2")]

        await make_orchestrator(client, model="llama-3.1-8b-instant").run(SAMPLE_JD, candidates)

        assert client.models == ["llama-3.1-8b-instant"]

    @pytest.mark.asyncio
    async def test_statuses_are_terminal(self):
        candidates = [make_candidate("1"), make_candidate("2", text="too short")]
        orchestrator = make_orchestrator(FakeScoringClient())

        await orchestrator.run(SAMPLE_JD, candidates)

        assert orchestrator.job.statuses == {
            "1": CandidateStatus.SUCCESS,
            "2": CandidateStatus.FAILED,
        }
        assert orchestrator.job.completed == 2


class TestValidationGate:
    @pytest.mark.asyncio
    async def test_short_document_is_never_sent_for_scoring(self):
        candidates = [
            make_candidate("1"),
            make_candidate("2", text="Jane Doe. Python.", name="Short One"),
        ]
        client = FakeScoringClient()

        result = await make_orchestrator(client, aggregate_chunks=False).run(SAMPLE_JD, candidates)

        short = result.results[1]
        assert not short.success
        assert short.result.score == 0
        assert short.result.recommendation == Recommendation.PASS
        assert "Insufficient content" in short.error
        assert short.attempts == 0
        assert all("Short One" not in text for text in client.scored_texts)
        assert len(client.scored_texts) == 1

    @pytest.mark.asyncio
    async def test_scanned_pdf_without_ocr_scores_zero(self, scanned_pdf):
        document = CandidateDocument(content=scanned_pdf, filename="scan.pdf", media_type="application/pdf")
        candidates = [
            BatchCandidate(candidate_id="1", name="scan.pdf", document=document),
            make_candidate("2"),
        ]
        client = FakeScoringClient()

        result = await make_orchestrator(client).run(SAMPLE_JD, candidates)

        scanned = result.results[0]
        assert scanned.status == CandidateStatus.FAILED
        assert scanned.result.score == 0
        assert scanned.result.recommendation == Recommendation.PASS
        assert "manually" in scanned.result.summary
        assert scanned.extraction_method == ExtractionMethod.FALLBACK
        assert result.results[1].success
        assert client.many_calls == []

    @pytest.mark.asyncio
    async def test_pdf_document_is_extracted_and_scored(self):
        document = CandidateDocument(content=make_pdf(make_cv_text()), filename="cv.pdf")
        candidates = [BatchCandidate(candidate_id="1", name="cv.pdf", document=document)]

        result = await make_orchestrator(FakeScoringClient()).run(SAMPLE_JD, candidates)

        assert result.results[0].success
        assert result.results[0].extraction_method == ExtractionMethod.DIRECT

    @pytest.mark.asyncio
    async def test_weak_cv_is_scored_with_warning(self):
        text = "Lorem ipsum dolor sit amet, consectetur adipiscing elit. " * 5
        candidates = [make_candidate("1", text=text, name="essay.txt")]

        result = await make_orchestrator(FakeScoringClient()).run(SAMPLE_JD, candidates)

        outcome = result.results[0]
        assert outcome.success
        assert "may not be a complete CV" in outcome.result.validation_warning

    @pytest.mark.asyncio
    async def test_unsupported_document_fails_alone(self):
        document = CandidateDocument(content=b"MZ", filename="virus.exe")
        candidates = [
            BatchCandidate(candidate_id="1", name="virus.exe", document=document),
            make_candidate("2"),
        ]

        result = await make_orchestrator(FakeScoringClient()).run(SAMPLE_JD, candidates)

        assert not result.results[0].success
        assert "Unsupported file type" in result.results[0].error
        assert result.results[1].success


class TestFallbackAndRetry:
    @pytest.mark.asyncio
    async def test_aggregated_failure_falls_back_to_individual_requests(self):
        candidates = [make_candidate(str(i)) for i in range(1, 6)]
        client = FakeScoringClient(many_error=ScoringPayloadError("unparseable"))

        result = await make_orchestrator(client).run(SAMPLE_JD, candidates)

        assert len(client.many_calls) == 1
        assert len(client.scored_texts) == 5
        assert all(o.success for o in result.results)
        assert all(o.attempts == 1 for o in result.results)

    @pytest.mark.asyncio
    async def test_unexpected_aggregated_error_falls_back_to_individual_requests(self):
        candidates = [make_candidate(str(i)) for i in range(1, 4)]
        client = FakeScoringClient(many_error=ValueError("cannot convert float NaN to integer"))

        result = await make_orchestrator(client).run(SAMPLE_JD, candidates)

        assert len(result.results) == 3
        assert all(o.success for o in result.results)
        assert len(client.scored_texts) == 3

    @pytest.mark.asyncio
    async def test_non_finite_score_in_aggregated_reply(self):
        reply = '{"results": [{"candidateId": "1", "score": NaN}, {"candidateId": "2", "score": 80}]}'
        client = ScoringClient(llm_factory=lambda model: FakeListChatModel(responses=[reply]))
        candidates = [make_candidate("1"), make_candidate("2")]

        result = await make_orchestrator(client).run(SAMPLE_JD, candidates)

        assert [o.success for o in result.results] == [True, True]
        assert result.results[0].result.score == 0
        assert result.results[1].result.score == 80

    @pytest.mark.asyncio
    async def test_unexpected_chunk_error_fails_only_that_chunk(self):
        candidates = [make_candidate(str(i)) for i in range(1, 5)]
        orchestrator = make_orchestrator(FakeScoringClient(), chunk_size=2)
        process_chunk = orchestrator._process_chunk

        async def flaky_chunk(job_description, chunk):
            if chunk[0].candidate_id == "1":
                raise RuntimeError("boom")
            return await process_chunk(job_description, chunk)

        orchestrator._process_chunk = flaky_chunk
        result = await orchestrator.run(SAMPLE_JD, candidates)

        assert [o.success for o in result.results] == [False, False, True, True]
        assert "Unexpected error: boom" in result.results[0].error
        assert orchestrator.state == BatchState.COMPLETED

    @pytest.mark.asyncio
    async def test_candidates_missing_from_aggregated_reply_are_scored_individually(self):
        candidates = [make_candidate(str(i)) for i in range(1, 4)]
        client = FakeScoringClient(many_skip={"2"})

        result = await make_orchestrator(client).run(SAMPLE_JD, candidates)

        assert all(o.success for o in result.results)
        assert len(client.scored_texts) == 1
        assert "Candidate 2" in client.scored_texts[0]
        assert result.results[0].result.summary == "Aggregated 1"

    @pytest.mark.asyncio
    async def test_one_failing_candidate_does_not_affect_others(self):
        candidates = [make_candidate(str(i)) for i in range(1, 6)]
        client = FakeScoringClient(failing={"Candidate 3"})
        sleep = RecordingSleep()

        result = await make_orchestrator(
            client, sleep=sleep, aggregate_chunks=False, max_attempts=3, base_delay=0.5
        ).run(SAMPLE_JD, candidates)

        failed = result.results[2]
        assert failed.status == CandidateStatus.FAILED
        assert failed.attempts == 3
        assert failed.result.score == 0
        assert failed.result.recommendation == Recommendation.PASS
        assert "Service unavailable" in failed.error
        assert [o.success for o in result.results] == [True, True, False, True, True]
        assert sleep.delays == [0.5, 1.0]
        assert result.summary.processed == 4
        assert result.summary.failed == 1

    @pytest.mark.asyncio
    async def test_transient_failure_recovers(self):
        candidates = [make_candidate("1")]
        client = FakeScoringClient(flaky={"Candidate 1": 2})
        sleep = RecordingSleep()

        result = await make_orchestrator(client, sleep=sleep, base_delay=0.5).run(SAMPLE_JD, candidates)

        assert result.results[0].success
        assert result.results[0].attempts == 3
        assert sleep.delays == [0.5, 1.0]


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_window_bounds_chunks_in_flight(self):
        candidates = [make_candidate(str(i)) for i in range(1, 31)]
        client = FakeScoringClient(delay=0.01)

        await make_orchestrator(client, chunk_size=5, max_concurrent_chunks=2).run(SAMPLE_JD, candidates)

        assert len(client.many_calls) == 6
        assert client.max_in_flight == 2

    @pytest.mark.asyncio
    async def test_sequential_with_window_of_one(self):
        candidates = [make_candidate(str(i)) for i in range(1, 11)]
        client = FakeScoringClient(delay=0.005)

        await make_orchestrator(client, chunk_size=2, max_concurrent_chunks=1).run(SAMPLE_JD, candidates)

        assert client.max_in_flight == 1

    @pytest.mark.asyncio
    async def test_inter_group_delay_between_chunks(self):
        candidates = [make_candidate(str(i)) for i in range(1, 7)]
        sleep = RecordingSleep()

        await make_orchestrator(
            FakeScoringClient(), sleep=sleep, chunk_size=2, inter_group_delay=0.5
        ).run(SAMPLE_JD, candidates)

        assert sleep.delays == [0.5, 0.5]


class TestProgress:
    @pytest.mark.asyncio
    async def test_reports_after_each_chunk(self):
        candidates = [make_candidate(str(i)) for i in range(1, 13)]
        calls = []

        await make_orchestrator(FakeScoringClient(), chunk_size=5).run(
            SAMPLE_JD, candidates, on_progress=lambda done, total, status: calls.append((done, total))
        )

        assert len(calls) == 3
        assert [done for done, _ in calls] == sorted(done for done, _ in calls)
        assert calls[-1] == (12, 12)
        assert all(total == 12 for _, total in calls)

    @pytest.mark.asyncio
    async def test_callback_errors_do_not_stop_the_batch(self):
        candidates = [make_candidate(str(i)) for i in range(1, 4)]

        def broken(done, total, status):
            raise RuntimeError("UI went away")

        result = await make_orchestrator(FakeScoringClient(), chunk_size=1).run(
            SAMPLE_JD, candidates, on_progress=broken
        )

        assert result.summary.processed == 3


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancel_before_start_skips_all_work(self):
        candidates = [make_candidate(str(i)) for i in range(1, 4)]
        client = FakeScoringClient()

        result = await make_orchestrator(client).run(
            SAMPLE_JD, candidates, should_cancel=lambda: True
        )

        assert client.many_calls == []
        assert client.scored_texts == []
        assert all("cancelled" in o.error for o in result.results)
        assert result.summary.failed == 3

    @pytest.mark.asyncio
    async def test_cancel_after_first_chunk(self):
        candidates = [make_candidate(str(i)) for i in range(1, 5)]
        client = FakeScoringClient()
        checks = []

        def should_cancel():
            checks.append(True)
            return len(checks) > 1

        result = await make_orchestrator(client, chunk_size=2, max_concurrent_chunks=1).run(
            SAMPLE_JD, candidates, should_cancel=should_cancel
        )

        assert [o.success for o in result.results] == [True, True, False, False]
        assert len(client.many_calls) == 1


class TestSetupErrors:
    @pytest.mark.asyncio
    async def test_empty_candidate_list(self):
        orchestrator = make_orchestrator(FakeScoringClient())

        with pytest.raises(BatchSetupError, match="No candidates"):
            await orchestrator.run(SAMPLE_JD, [])
        assert orchestrator.state == BatchState.FAILED

    @pytest.mark.asyncio
    async def test_missing_job_description(self):
        with pytest.raises(BatchSetupError, match="job description"):
            await make_orchestrator(FakeScoringClient()).run("   ", [make_candidate("1")])

    @pytest.mark.asyncio
    async def test_duplicate_ids(self):
        client = FakeScoringClient()
        candidates = [make_candidate("1"), make_candidate("1", name="Other")]

        with pytest.raises(BatchSetupError, match="unique"):
            await make_orchestrator(client).run(SAMPLE_JD, candidates)
        assert client.many_calls == []
