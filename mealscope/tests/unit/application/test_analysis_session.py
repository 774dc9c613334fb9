"""
Tests for the analysis session.

Uses the deterministic FakeEstimator from conftest; no network.
"""

import asyncio
from typing import Any

import pytest
import pytest_asyncio

from mealscope.application.analysis_session import AnalysisSession, SessionStatus
from mealscope.domain.estimation.models import AnalysisResult
from mealscope.domain.reconciliation.plate_size import ReconciliationPhase
from mealscope.domain.shared.errors import (
    ContractError,
    ContractErrorKind,
    EstimationError,
    EstimationErrorKind,
    InvalidTransitionError,
    SubmissionInProgressError,
    ValidationError,
)
from mealscope.domain.shared.value_objects import (
    ImagePayload,
    LanguageTag,
    PlateSize,
    SessionContext,
)


# ═══════════════════════════════════════════════════════════
# SUBMISSION
# ═══════════════════════════════════════════════════════════


class TestSubmit:
    """Estimator call and outcome handling."""

    @pytest.mark.asyncio
    async def test_success(
        self,
        fake_estimator_factory: Any,
        sample_result: AnalysisResult,
        sample_image: ImagePayload,
    ) -> None:
        """Test a successful estimate becomes the current snapshot."""
        estimator = fake_estimator_factory([sample_result])
        session = AnalysisSession(estimator=estimator)

        result = await session.submit(sample_image)

        assert result == sample_result
        assert session.result == sample_result
        assert session.status is SessionStatus.READY
        assert session.error is None
        assert session.correction_notice is None
        assert session.reconciliation.phase is ReconciliationPhase.CONFIRMED

    @pytest.mark.asyncio
    async def test_passes_explicit_context(
        self,
        fake_estimator_factory: Any,
        sample_result: AnalysisResult,
        sample_image: ImagePayload,
    ) -> None:
        """Test language and plate hint come from the session context."""
        estimator = fake_estimator_factory([sample_result])
        session = AnalysisSession(
            estimator=estimator,
            context=SessionContext(language=LanguageTag.IT),
        )
        session.declare_plate_size(PlateSize.BOWL)

        await session.submit(sample_image)

        assert estimator.calls == [(sample_image, LanguageTag.IT, PlateSize.BOWL)]

    @pytest.mark.asyncio
    async def test_set_language(
        self,
        fake_estimator_factory: Any,
        sample_result: AnalysisResult,
        sample_image: ImagePayload,
    ) -> None:
        """Test language changes apply to the next estimate."""
        estimator = fake_estimator_factory([sample_result])
        session = AnalysisSession(estimator=estimator)

        session.set_language(LanguageTag.IT)
        await session.submit(sample_image)

        assert estimator.calls[0][1] is LanguageTag.IT

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [
            EstimationError(EstimationErrorKind.NETWORK_FAILURE, "boom"),
            EstimationError(EstimationErrorKind.EMPTY_RESPONSE, "empty"),
            EstimationError(EstimationErrorKind.MALFORMED_PAYLOAD, "not json"),
            ContractError(ContractErrorKind.OUT_OF_RANGE, "score", field="reliabilityScore"),
        ],
    )
    async def test_failure_returns_to_declared(
        self,
        fake_estimator_factory: Any,
        sample_image: ImagePayload,
        error: Exception,
    ) -> None:
        """Test estimator and contract failures leave no partial result."""
        estimator = fake_estimator_factory([error])
        session = AnalysisSession(estimator=estimator)

        result = await session.submit(sample_image)

        assert result is None
        assert session.result is None
        assert session.status is SessionStatus.FAILED
        assert session.error is error
        assert session.reconciliation.phase is ReconciliationPhase.DECLARED
        assert session.reconciliation.size is PlateSize.MEDIUM

    @pytest.mark.asyncio
    async def test_retry_after_failure(
        self,
        fake_estimator_factory: Any,
        sample_result: AnalysisResult,
        sample_image: ImagePayload,
    ) -> None:
        """Test the user can resubmit after a failure without resetting."""
        estimator = fake_estimator_factory(
            [EstimationError(EstimationErrorKind.NETWORK_FAILURE, "offline"), sample_result]
        )
        session = AnalysisSession(estimator=estimator)

        await session.submit(sample_image)
        result = await session.submit(sample_image)

        assert result == sample_result
        assert session.error is None
        assert len(estimator.calls) == 2

    @pytest.mark.asyncio
    async def test_unexpected_error_propagates(
        self,
        fake_estimator_factory: Any,
        sample_image: ImagePayload,
    ) -> None:
        """Test bugs are not swallowed but the session stays usable."""
        estimator = fake_estimator_factory([KeyError("bug")])
        session = AnalysisSession(estimator=estimator)

        with pytest.raises(KeyError):
            await session.submit(sample_image)

        assert session.status is SessionStatus.FAILED
        assert session.reconciliation.phase is ReconciliationPhase.DECLARED

    @pytest.mark.asyncio
    async def test_submit_upload_validates_image(self, fake_estimator_factory: Any) -> None:
        """Test non-image uploads never reach the estimator."""
        estimator = fake_estimator_factory([])
        session = AnalysisSession(estimator=estimator)

        with pytest.raises(ValidationError):
            await session.submit_upload(b"%PDF-1.4", "application/pdf")

        assert estimator.calls == []
        assert session.status is SessionStatus.IDLE

    @pytest.mark.asyncio
    async def test_second_image_needs_reset(
        self,
        fake_estimator_factory: Any,
        sample_result: AnalysisResult,
        sample_image: ImagePayload,
    ) -> None:
        """Test a shown result must be reset (or re-declared) before resubmitting."""
        estimator = fake_estimator_factory([sample_result, sample_result])
        session = AnalysisSession(estimator=estimator)
        await session.submit(sample_image)

        with pytest.raises(InvalidTransitionError):
            await session.submit(sample_image)

        session.reset()
        assert await session.submit(sample_image) == sample_result


# ═══════════════════════════════════════════════════════════
# CONCURRENCY / EPOCH GUARD
# ═══════════════════════════════════════════════════════════


class TestInFlight:
    """One call in flight; stale completions discarded."""

    @pytest.mark.asyncio
    async def test_rejects_concurrent_submission(
        self,
        fake_estimator_factory: Any,
        sample_result: AnalysisResult,
        sample_image: ImagePayload,
    ) -> None:
        """Test a second submit while awaiting is rejected."""
        pending = asyncio.get_running_loop().create_future()
        estimator = fake_estimator_factory([pending])
        session = AnalysisSession(estimator=estimator)

        task = asyncio.create_task(session.submit(sample_image))
        await asyncio.sleep(0)
        assert session.status is SessionStatus.ANALYZING

        with pytest.raises(SubmissionInProgressError):
            await session.submit(sample_image)
        with pytest.raises(InvalidTransitionError):
            session.declare_plate_size(PlateSize.SMALL)

        pending.set_result(sample_result)
        assert await task == sample_result
        assert len(estimator.calls) == 1

    @pytest.mark.asyncio
    async def test_stale_result_discarded_after_reset(
        self,
        fake_estimator_factory: Any,
        sample_result: AnalysisResult,
        single_item_result: AnalysisResult,
        sample_image: ImagePayload,
    ) -> None:
        """Test a response from before a reset never overwrites newer state."""
        pending = asyncio.get_running_loop().create_future()
        estimator = fake_estimator_factory([pending, single_item_result])
        session = AnalysisSession(estimator=estimator)

        stale_task = asyncio.create_task(session.submit(sample_image))
        await asyncio.sleep(0)
        session.reset()
        assert session.status is SessionStatus.IDLE

        pending.set_result(
            sample_result.model_copy(update={"detected_plate_size": PlateSize.LARGE})
        )
        stale = await stale_task

        assert stale is None
        assert session.result is None
        assert session.status is SessionStatus.IDLE
        assert session.correction_notice is None
        assert session.context.plate_size_hint is PlateSize.MEDIUM

        fresh = await session.submit(sample_image)

        assert fresh == single_item_result
        assert session.result == single_item_result
        assert session.status is SessionStatus.READY

    @pytest.mark.asyncio
    async def test_reset_does_not_allow_second_call(
        self,
        fake_estimator_factory: Any,
        sample_result: AnalysisResult,
        single_item_result: AnalysisResult,
        sample_image: ImagePayload,
    ) -> None:
        """Test only one estimator call is outstanding even across a reset."""
        pending = asyncio.get_running_loop().create_future()
        estimator = fake_estimator_factory([pending, single_item_result])
        session = AnalysisSession(estimator=estimator)

        stale_task = asyncio.create_task(session.submit(sample_image))
        await asyncio.sleep(0)
        session.reset()

        assert session.in_flight
        with pytest.raises(SubmissionInProgressError):
            await session.submit(sample_image)
        assert len(estimator.calls) == 1

        pending.set_result(sample_result)
        assert await stale_task is None
        assert not session.in_flight

        assert await session.submit(sample_image) == single_item_result
        assert len(estimator.calls) == 2

    @pytest.mark.asyncio
    async def test_in_flight_cleared_after_unexpected_error(
        self,
        fake_estimator_factory: Any,
        sample_result: AnalysisResult,
        sample_image: ImagePayload,
    ) -> None:
        """Test a crashing estimator does not block later submissions."""
        estimator = fake_estimator_factory([RuntimeError("bug"), sample_result])
        session = AnalysisSession(estimator=estimator)

        with pytest.raises(RuntimeError):
            await session.submit(sample_image)

        assert not session.in_flight
        assert await session.submit(sample_image) == sample_result

    @pytest.mark.asyncio
    async def test_stale_failure_discarded_after_reset(
        self,
        fake_estimator_factory: Any,
        sample_image: ImagePayload,
    ) -> None:
        """Test a failure from before a reset does not mark the session failed."""
        pending = asyncio.get_running_loop().create_future()
        estimator = fake_estimator_factory([pending])
        session = AnalysisSession(estimator=estimator)

        task = asyncio.create_task(session.submit(sample_image))
        await asyncio.sleep(0)
        session.reset()
        pending.set_exception(EstimationError(EstimationErrorKind.NETWORK_FAILURE, "late"))

        assert await task is None
        assert session.status is SessionStatus.IDLE
        assert session.error is None
        assert session.reconciliation.phase is ReconciliationPhase.DECLARED

    @pytest.mark.asyncio
    async def test_reset_bumps_epoch(self, fake_estimator_factory: Any) -> None:
        """Test each reset starts a new epoch."""
        session = AnalysisSession(estimator=fake_estimator_factory([]))

        session.reset()
        session.reset()

        assert session.epoch == 2


# ═══════════════════════════════════════════════════════════
# PLATE-SIZE RECONCILIATION
# ═══════════════════════════════════════════════════════════


class TestPlateSize:
    """Declared vs detected plate size."""

    @pytest.mark.asyncio
    async def test_same_size_no_notice(
        self,
        fake_estimator_factory: Any,
        sample_result: AnalysisResult,
        sample_image: ImagePayload,
    ) -> None:
        """Test matching detection keeps the hint and raises nothing."""
        detected = sample_result.model_copy(update={"detected_plate_size": PlateSize.MEDIUM})
        session = AnalysisSession(estimator=fake_estimator_factory([detected]))

        await session.submit(sample_image)

        assert session.correction_notice is None
        assert session.context.plate_size_hint is PlateSize.MEDIUM

    @pytest.mark.asyncio
    async def test_different_size_corrects(
        self,
        fake_estimator_factory: Any,
        sample_result: AnalysisResult,
        sample_image: ImagePayload,
    ) -> None:
        """Test a different detection overrides the hint with one notice."""
        detected = sample_result.model_copy(update={"detected_plate_size": PlateSize.LARGE})
        session = AnalysisSession(estimator=fake_estimator_factory([detected]))

        await session.submit(sample_image)

        notice = session.correction_notice
        assert notice is not None
        assert notice.declared is PlateSize.MEDIUM
        assert notice.detected is PlateSize.LARGE
        assert session.context.plate_size_hint is PlateSize.LARGE
        assert session.reconciliation.phase is ReconciliationPhase.CORRECTED

    @pytest.mark.asyncio
    async def test_notice_cleared_by_declare(
        self,
        fake_estimator_factory: Any,
        sample_result: AnalysisResult,
        sample_image: ImagePayload,
    ) -> None:
        """Test declaring a size clears the notice."""
        detected = sample_result.model_copy(update={"detected_plate_size": PlateSize.BOWL})
        session = AnalysisSession(estimator=fake_estimator_factory([detected]))
        await session.submit(sample_image)

        session.declare_plate_size(PlateSize.SMALL)

        assert session.correction_notice is None
        assert session.context.plate_size_hint is PlateSize.SMALL

    @pytest.mark.asyncio
    async def test_notice_cleared_by_reset(
        self,
        fake_estimator_factory: Any,
        sample_result: AnalysisResult,
        sample_image: ImagePayload,
    ) -> None:
        """Test reset clears the notice but keeps the corrected size."""
        detected = sample_result.model_copy(update={"detected_plate_size": PlateSize.BOWL})
        estimator = fake_estimator_factory([detected, sample_result])
        session = AnalysisSession(estimator=estimator)
        await session.submit(sample_image)

        session.reset()
        await session.submit(sample_image)

        assert session.correction_notice is None
        assert estimator.calls[1][2] is PlateSize.BOWL


# ═══════════════════════════════════════════════════════════
# EDITING
# ═══════════════════════════════════════════════════════════


class TestEditing:
    """Portion edits through the session."""

    @pytest_asyncio.fixture
    async def ready_session(
        self,
        fake_estimator_factory: Any,
        single_item_result: AnalysisResult,
        sample_image: ImagePayload,
    ) -> AnalysisSession:
        session = AnalysisSession(estimator=fake_estimator_factory([single_item_result]))
        await session.submit(sample_image)
        return session

    @pytest.mark.asyncio
    async def test_adjust_replaces_snapshot(
        self, ready_session: AnalysisSession, single_item_result: AnalysisResult
    ) -> None:
        """Test an edit swaps in a new snapshot without calling the estimator."""
        updated = ready_session.adjust_portion(0, "150")

        assert updated is ready_session.result
        assert updated is not None
        assert updated.total_calories == 300
        assert single_item_result.total_calories == 200
        assert len(ready_session.estimator.calls) == 1  # type: ignore[attr-defined]

    @pytest.mark.asyncio
    async def test_invalid_edit_ignored(self, ready_session: AnalysisSession) -> None:
        """Test invalid edits keep the snapshot and add no history."""
        before = ready_session.result

        ready_session.adjust_portion(0, "-5")
        ready_session.adjust_portion(3, 100)

        assert ready_session.result is before
        assert not ready_session.can_undo

    @pytest.mark.asyncio
    async def test_undo(self, ready_session: AnalysisSession) -> None:
        """Test undo walks back through accepted edits."""
        original = ready_session.result
        ready_session.adjust_portion(0, 150)
        after_first = ready_session.result
        ready_session.adjust_portion(0, 50)

        assert ready_session.undo()
        assert ready_session.result is after_first
        assert ready_session.undo()
        assert ready_session.result is original
        assert not ready_session.undo()

    @pytest.mark.asyncio
    async def test_reset_discards_everything(self, ready_session: AnalysisSession) -> None:
        """Test reset drops the snapshot and edit history."""
        ready_session.adjust_portion(0, 150)

        ready_session.reset()

        assert ready_session.result is None
        assert not ready_session.can_undo
        assert ready_session.status is SessionStatus.IDLE

    def test_adjust_without_result(self, fake_estimator_factory: Any) -> None:
        """Test edits before any estimate do nothing."""
        session = AnalysisSession(estimator=fake_estimator_factory([]))

        assert session.adjust_portion(0, 100) is None
