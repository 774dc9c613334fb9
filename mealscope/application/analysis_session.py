"""
Meal Analysis Session.

Thin state holder for one user's analysis flow: submit a photo once,
reconcile the plate size, then edit portions locally.

Design Pattern: Service Layer + Dependency Injection
"""

from __future__ import annotations

from enum import Enum
from typing import List, Optional

import structlog

from mealscope.domain.estimation.models import AnalysisResult
from mealscope.domain.estimation.ports import IFoodEstimator
from mealscope.domain.estimation.recalculation import adjust_portion
from mealscope.domain.reconciliation.plate_size import (
    CorrectionNotice,
    PlateSizeReconciler,
    ReconciliationState,
)
from mealscope.domain.shared.errors import (
    ContractError,
    DomainError,
    EstimationError,
    SubmissionInProgressError,
)
from mealscope.domain.shared.value_objects import (
    ImagePayload,
    LanguageTag,
    PlateSize,
    SessionContext,
)

logger = structlog.get_logger(__name__)


class SessionStatus(str, Enum):
    """What the session is currently showing."""

    IDLE = "IDLE"  # Nothing submitted since the last reset
    ANALYZING = "ANALYZING"  # Estimator call in flight
    READY = "READY"  # Snapshot available for editing
    FAILED = "FAILED"  # Last submission failed, can resubmit


class AnalysisSession:
    """
    Owns the current snapshot and plate-size reconciliation of one session.

    Responsibilities:
    - Call the estimator once per submission, never concurrently
    - Discard completions that belong to a superseded epoch (reset
      while a call was in flight)
    - Replace the snapshot wholesale on every accepted portion edit
    - Keep the explicit SessionContext (language, plate-size hint)

    No state is shared between sessions.

    Example:
        >>> session = AnalysisSession(estimator=OpenAIFoodEstimator(client))
        >>> session.declare_plate_size(PlateSize.BOWL)
        >>> result = await session.submit(image)
        >>> if session.correction_notice:
        ...     print("Plate size adjusted to", session.context.plate_size_hint)
        >>> session.adjust_portion(0, "150")
    """

    def __init__(
        self,
        estimator: IFoodEstimator,
        context: Optional[SessionContext] = None,
    ):
        """
        Initialize session.

        Args:
            estimator: External estimator (port)
            context: Initial language and plate-size hint
        """
        self.estimator = estimator
        self._context = context or SessionContext()
        self._reconciler = PlateSizeReconciler()
        self._reconciler.declare(self._context.plate_size_hint)

        self._epoch = 0
        self._in_flight = False
        self._status = SessionStatus.IDLE
        self._result: Optional[AnalysisResult] = None
        self._error: Optional[DomainError] = None
        self._history: List[AnalysisResult] = []

    # ───────────────────────────────────────────────────────
    # State
    # ───────────────────────────────────────────────────────

    @property
    def context(self) -> SessionContext:
        return self._context

    @property
    def status(self) -> SessionStatus:
        return self._status

    @property
    def result(self) -> Optional[AnalysisResult]:
        """Current snapshot, if any."""
        return self._result

    @property
    def error(self) -> Optional[DomainError]:
        """Failure of the last submission (shown as a generic error)."""
        return self._error

    @property
    def epoch(self) -> int:
        return self._epoch

    @property
    def reconciliation(self) -> ReconciliationState:
        return self._reconciler.state

    @property
    def correction_notice(self) -> Optional[CorrectionNotice]:
        return self._reconciler.correction_notice

    @property
    def can_undo(self) -> bool:
        return bool(self._history)

    @property
    def in_flight(self) -> bool:
        """True while an estimator call (current or stale) is outstanding."""
        return self._in_flight

    # ───────────────────────────────────────────────────────
    # Context
    # ───────────────────────────────────────────────────────

    def set_language(self, language: LanguageTag) -> None:
        """Language used by the next estimate."""
        self._context = self._context.with_language(language)

    def declare_plate_size(self, size: PlateSize) -> None:
        """
        Declare the container size for the next estimate.

        Clears any pending correction notice.

        Raises:
            InvalidTransitionError: While an estimate is in flight
        """
        self._reconciler.declare(size)
        self._context = self._context.with_plate_size(size)

    # ───────────────────────────────────────────────────────
    # Estimation
    # ───────────────────────────────────────────────────────

    async def submit_upload(self, data: bytes, mime_type: str) -> Optional[AnalysisResult]:
        """
        Submit raw uploaded bytes.

        Raises:
            ValidationError: If the bytes are empty or not an image type
        """
        return await self.submit(ImagePayload.from_upload(data, mime_type))

    async def submit(self, image: ImagePayload) -> Optional[AnalysisResult]:
        """
        Estimate a meal photo.

        Workflow:
        1. Lock the declared plate size (DECLARED → AWAITING_ESTIMATE)
        2. Call the estimator once
        3. On success, reconcile plate size and store the snapshot
        4. On failure, record the error and go back to DECLARED

        Args:
            image: Photo to analyse

        Returns:
            The new snapshot, or None if the call failed or was superseded
            by a reset

        Raises:
            SubmissionInProgressError: If an estimate is already in flight
            InvalidTransitionError: If no plate size is declared (e.g. a
                result is shown; reset or declare first)
        """
        if self._in_flight:
            raise SubmissionInProgressError("Session is awaiting an estimate")

        plate_size_hint = self._reconciler.begin_estimate()
        epoch = self._epoch
        language = self._context.language

        self._status = SessionStatus.ANALYZING
        self._result = None
        self._error = None
        self._history.clear()

        logger.info(
            "Submitting image for estimate",
            epoch=epoch,
            mime_type=image.mime_type,
            size_bytes=len(image.data),
            language=language.value,
            plate_size_hint=plate_size_hint.value,
        )

        self._in_flight = True
        try:
            result = await self.estimator.estimate(image, language, plate_size_hint)
        except (EstimationError, ContractError) as e:
            if epoch != self._epoch:
                logger.info("Discarding stale estimate failure", epoch=epoch, current=self._epoch)
                return None
            self._reconciler.fail()
            self._status = SessionStatus.FAILED
            self._error = e
            logger.warning("Estimate failed", epoch=epoch, error=str(e))
            return None
        except Exception:
            if epoch == self._epoch:
                self._reconciler.fail()
                self._status = SessionStatus.FAILED
            raise
        finally:
            # Cleared even for stale calls: reset() does not cancel them
            self._in_flight = False

        if epoch != self._epoch:
            logger.info("Discarding stale estimate", epoch=epoch, current=self._epoch)
            return None

        notice = self._reconciler.resolve(result.detected_plate_size)
        if notice is not None:
            self._context = self._context.with_plate_size(notice.detected)
            logger.info(
                "Plate size corrected by estimator",
                declared=notice.declared.value,
                detected=notice.detected.value,
            )

        self._result = result
        self._status = SessionStatus.READY
        return result

    # ───────────────────────────────────────────────────────
    # Editing
    # ───────────────────────────────────────────────────────

    def adjust_portion(self, item_index: int, new_grams: object) -> Optional[AnalysisResult]:
        """
        Change one item's portion weight and recompute all figures.

        Purely local; invalid input leaves the snapshot as it is.

        Returns:
            The current snapshot after the edit (None if there is none)
        """
        if self._result is None:
            return None

        updated = adjust_portion(self._result, item_index, new_grams)
        if updated is not self._result:
            self._history.append(self._result)
            self._result = updated
        return self._result

    def undo(self) -> bool:
        """
        Restore the snapshot before the last accepted edit.

        Returns:
            False if there was nothing to undo
        """
        if not self._history:
            return False
        self._result = self._history.pop()
        return True

    def reset(self) -> None:
        """
        Discard everything and rearm for a new photo.

        Bumps the epoch so an in-flight estimate is ignored on arrival;
        new submissions are still refused until that call settles.
        The declared (or corrected) plate size is kept.
        """
        self._epoch += 1
        self._result = None
        self._error = None
        self._history.clear()
        self._status = SessionStatus.IDLE
        self._reconciler.reset()
        logger.debug("Session reset", epoch=self._epoch)
