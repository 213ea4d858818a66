"""End-to-end tests for the generation pipeline."""

from __future__ import annotations

import asyncio
import random

import pytest

from conftest import FakeSynthesizer
from dreamboat.models import GeneratedResult, GenerationJob, GenerationStatus, PaymentCredit, ValidationStatus
from dreamboat.services.payments import NoCreditError, PaymentGate, PaymentLedger
from dreamboat.services.profile import ProfileSelector
from dreamboat.services.gemini_image import SynthesisResponse
from dreamboat.services.scenarios import SCENARIO_PROMPTS, build_prompt
from dreamboat.workers.base import NonRetryableError, RetryExecutor, TaskError
from dreamboat.workers.generator import (
    GenerationPipeline,
    GenerationRequestError,
    generate_sample,
    has_sample,
)
from dreamboat.workers.scheduler import BatchScheduler, EmptyFanoutError

SCENARIOS = ["photoshoot", "beach", "gym"]


@pytest.fixture
def make_pipeline(db, fake_sleep):
    def _make(synthesizer, batch_size=30):
        return GenerationPipeline(
            db,
            synthesizer=synthesizer,
            gate=PaymentGate(PaymentLedger(db)),
            selector=ProfileSelector(db, rng=random.Random(1)),
            scheduler=BatchScheduler(batch_size=batch_size),
            retry=RetryExecutor(max_attempts=3, base_delay=1.0, sleep=fake_sleep),
        )
    return _make


def run(pipeline, photos, scenarios=SCENARIOS, **kwargs):
    return asyncio.run(pipeline.run("user_1", [p.id for p in photos], scenarios, **kwargs))


class TestGenerationPipeline:
    """Reserve, fan out, settle, close, auto-select."""

    def test_all_tasks_succeed(self, db, make_photo, make_credit, make_pipeline):
        photos = [make_photo(), make_photo()]
        credit = make_credit()
        synthesizer = FakeSynthesizer()

        summary = run(make_pipeline(synthesizer), photos)

        assert summary.status == GenerationStatus.COMPLETED
        assert summary.completed_tasks == summary.total_tasks == 6
        assert summary.partial_failure is False
        assert summary.payment_credit_id == credit.id
        assert len(synthesizer.calls) == 6
        assert db.query(GeneratedResult).filter(GeneratedResult.generation_job_id == summary.job_id).count() == 6

    def test_one_task_failing_every_attempt_fails_the_job(self, db, make_photo, make_credit, make_pipeline, fake_sleep):
        """2 photos x 3 scenarios; task #4 fails all 3 attempts."""
        photos = [make_photo(), make_photo()]
        credit = make_credit()
        # Task #4 is the second photo in the first scenario
        doomed_key = photos[1].storage_key
        synthesizer = FakeSynthesizer(
            fail_when=lambda key, prompt: key == doomed_key and SCENARIO_PROMPTS["photoshoot"] in prompt
        )

        summary = run(make_pipeline(synthesizer), photos)

        assert summary.status == GenerationStatus.FAILED
        assert summary.completed_tasks == 5
        assert summary.partial_failure is True
        assert [o.success for o in summary.outcomes] == [True, True, True, False, True, True]
        assert isinstance(summary.outcomes[3].error, TaskError)
        assert fake_sleep.delays == [1.0, 2.0]
        assert len(synthesizer.calls) == 8

        job = db.query(GenerationJob).filter(GenerationJob.id == summary.job_id).one()
        assert job.status == GenerationStatus.FAILED
        assert job.completed_tasks == 5
        assert len(job.results) == 5
        assert db.query(PaymentCredit).filter(PaymentCredit.id == credit.id).one().redeemed is True

    def test_outcomes_follow_task_order_across_batches(self, make_photo, make_credit, make_pipeline):
        photos = [make_photo() for _ in range(3)]
        make_credit()

        summary = run(make_pipeline(FakeSynthesizer(), batch_size=4), photos)

        assert [(o.task.photo.id, o.task.scenario) for o in summary.outcomes] == [
            (p.id, s) for p in photos for s in SCENARIOS
        ]

    def test_custom_prompt_replaces_scenario_prompt(self, db, make_photo, make_credit, make_pipeline):
        photo = make_photo()
        make_credit()

        summary = run(make_pipeline(FakeSynthesizer()), [photo], ["beach", "gym"], custom_prompts={"gym": "Boxing ring"})

        prompts = {r.scenario: r.prompt for r in db.query(GeneratedResult).filter(
            GeneratedResult.generation_job_id == summary.job_id)}
        assert prompts == {"beach": build_prompt("beach"), "gym": "Boxing ring"}

    def test_auto_selects_when_owner_has_no_selection(self, make_photo, make_credit, make_pipeline, db):
        make_credit()
        summary = run(make_pipeline(FakeSynthesizer()), [make_photo(), make_photo()])

        assert len(summary.auto_selected) == 6
        assert sorted(r.profile_order for r in ProfileSelector(db).selected("user_1")) == [1, 2, 3, 4, 5, 6]

    def test_existing_selection_is_left_alone(self, db, make_photo, make_credit, make_result, make_pipeline):
        chosen = make_result()
        ProfileSelector(db).set_selections("user_1", [(chosen.id, 1)])
        make_credit()

        summary = run(make_pipeline(FakeSynthesizer()), [make_photo()])

        assert summary.auto_selected == []
        assert [r.id for r in ProfileSelector(db).selected("user_1")] == [chosen.id]

    def test_nothing_selected_when_every_task_fails(self, db, make_photo, make_credit, make_pipeline):
        make_credit()
        summary = run(make_pipeline(FakeSynthesizer(fail_when=lambda k, p: True)), [make_photo()])

        assert summary.status == GenerationStatus.FAILED
        assert summary.completed_tasks == 0
        assert summary.auto_selected == []

    def test_earlier_results_selected_even_when_every_task_fails(self, make_photo, make_credit, make_result, make_pipeline):
        earlier = make_result()
        make_credit()

        summary = run(make_pipeline(FakeSynthesizer(fail_when=lambda k, p: True)), [make_photo()])

        assert summary.completed_tasks == 0
        assert summary.auto_selected == [earlier.id]

    def test_non_retryable_synthesis_error_fails_task_once(self, make_photo, make_credit, make_pipeline):
        make_credit()

        class Refusing(FakeSynthesizer):
            async def generate(self, source_key, prompt):
                self.calls.append((source_key, prompt))
                raise NonRetryableError("prompt blocked")

        synthesizer = Refusing()
        summary = run(make_pipeline(synthesizer), [make_photo()], ["beach"])

        assert len(synthesizer.calls) == 1
        assert "prompt blocked" in str(summary.outcomes[0].error)


class TestPipelineGuards:
    """Requests rejected before any credit is spent."""

    def test_no_credit(self, db, make_photo, make_pipeline):
        synthesizer = FakeSynthesizer()
        with pytest.raises(NoCreditError):
            run(make_pipeline(synthesizer), [make_photo()])

        assert synthesizer.calls == []
        assert db.query(GenerationJob).count() == 0

    def test_empty_scenarios_keep_credit(self, db, make_photo, make_credit, make_pipeline):
        credit = make_credit()
        with pytest.raises(EmptyFanoutError):
            run(make_pipeline(FakeSynthesizer()), [make_photo()], [])

        assert db.query(PaymentCredit).filter(PaymentCredit.id == credit.id).one().redeemed is False

    def test_unvalidated_photo_keeps_credit(self, db, make_photo, make_credit, make_pipeline):
        credit = make_credit()
        pending = make_photo(status=ValidationStatus.PENDING)

        with pytest.raises(GenerationRequestError):
            run(make_pipeline(FakeSynthesizer()), [make_photo(), pending])

        assert db.query(PaymentCredit).filter(PaymentCredit.id == credit.id).one().redeemed is False

    def test_foreign_photo_rejected(self, make_photo, make_credit, make_pipeline):
        make_credit()
        with pytest.raises(GenerationRequestError):
            run(make_pipeline(FakeSynthesizer()), [make_photo(owner_id="user_2")])

    def test_bypassed_photos_are_allowed(self, make_photo, make_credit, make_pipeline):
        make_credit()
        summary = run(make_pipeline(FakeSynthesizer()), [make_photo(status=ValidationStatus.BYPASSED)], ["beach"])
        assert summary.status == GenerationStatus.COMPLETED


class TestSampleGeneration:
    """Free preview image outside any job."""

    def test_generate_sample(self, db, make_photo, fake_sleep):
        photo = make_photo()
        synthesizer = FakeSynthesizer()

        result = asyncio.run(generate_sample(
            db, synthesizer, "user_1", photo, scenario="photoshoot",
            retry=RetryExecutor(sleep=fake_sleep),
        ))

        assert result.is_sample is True
        assert result.generation_job_id is None
        assert result.scenario == "photoshoot"
        assert has_sample(db, "user_1")
        assert not has_sample(db, "user_2")

    def test_sample_failure_raises_task_error(self, db, make_photo, fake_sleep):
        with pytest.raises(TaskError):
            asyncio.run(generate_sample(
                db, FakeSynthesizer(fail_when=lambda k, p: True), "user_1", make_photo(),
                retry=RetryExecutor(sleep=fake_sleep),
            ))
        assert not has_sample(db, "user_1")


class TestScenarioPrompts:
    def test_known_scenario(self):
        assert build_prompt("beach").startswith(SCENARIO_PROMPTS["beach"])
        assert build_prompt("beach").endswith("professional composition.")

    def test_unknown_scenario_falls_back_to_casual(self):
        assert build_prompt("volcano") == build_prompt("casual")

    def test_blank_custom_prompt_is_ignored(self):
        assert build_prompt("gym", "   ") == build_prompt("gym")


class TestStorageFailures:
    """A task whose result row cannot be written fails alone."""

    def test_failed_insert_leaves_siblings_and_job_intact(self, db, make_photo, make_credit, make_pipeline, fake_sleep):
        make_credit()

        class FirstResultUnstorable(FakeSynthesizer):
            async def generate(self, source_key, prompt):
                response = await super().generate(source_key, prompt)
                if len(self.calls) == 1:
                    # storage_key is NOT NULL, so this insert fails
                    return SynthesisResponse(result_key=None, request_id=response.request_id)
                return response

        synthesizer = FirstResultUnstorable()
        summary = run(make_pipeline(synthesizer), [make_photo()])

        assert [o.success for o in summary.outcomes] == [False, True, True]
        assert "Could not store result" in str(summary.outcomes[0].error)
        assert summary.status == GenerationStatus.FAILED
        assert summary.completed_tasks == 2
        assert len(synthesizer.calls) == 3
        assert fake_sleep.delays == []

        job = db.query(GenerationJob).filter(GenerationJob.id == summary.job_id).one()
        assert job.status == GenerationStatus.FAILED
        assert job.completed_tasks == 2
        assert len(job.results) == 2

    def test_interrupted_run_still_closes_job(self, db, make_photo, make_credit, make_pipeline):
        make_credit()

        def crash(done, total):
            raise RuntimeError("progress sink down")

        with pytest.raises(RuntimeError):
            run(make_pipeline(FakeSynthesizer()), [make_photo()], on_progress=crash)

        job = db.query(GenerationJob).one()
        assert job.status == GenerationStatus.COMPLETED
        assert job.completed_tasks == 3
