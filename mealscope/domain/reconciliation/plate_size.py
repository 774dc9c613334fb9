"""
Plate-size reconciliation.

Compares the container size the user declared with the size the
estimator reports it actually used, and raises a one-shot correction
notice when they differ. Owns no numeric data.

States:
    UNSET ──declare──▶ DECLARED ──begin_estimate──▶ AWAITING_ESTIMATE
    AWAITING_ESTIMATE ──resolve(same/None)──▶ CONFIRMED
    AWAITING_ESTIMATE ──resolve(other)──▶ CORRECTED (+ notice)
    AWAITING_ESTIMATE ──fail──▶ DECLARED
    CONFIRMED / CORRECTED ──declare──▶ DECLARED (notice cleared)
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from mealscope.domain.shared.errors import InvalidTransitionError
from mealscope.domain.shared.value_objects import PlateSize


class ReconciliationPhase(str, Enum):
    """Phase of the plate-size reconciliation."""

    UNSET = "UNSET"
    DECLARED = "DECLARED"
    AWAITING_ESTIMATE = "AWAITING_ESTIMATE"
    CONFIRMED = "CONFIRMED"
    CORRECTED = "CORRECTED"


class ReconciliationState(BaseModel):
    """
    Tagged reconciliation state.

    ``size`` is the declared size (absent only in UNSET);
    ``detected`` is set only in CORRECTED.
    """

    model_config = ConfigDict(frozen=True)

    phase: ReconciliationPhase
    size: Optional[PlateSize] = None
    detected: Optional[PlateSize] = None

    @model_validator(mode="after")
    def check_shape(self) -> ReconciliationState:
        """Size present outside UNSET; detected size only when CORRECTED."""
        unset = self.phase is ReconciliationPhase.UNSET
        if unset and self.size is not None:
            raise ValueError("size must be empty in phase UNSET")
        if not unset and self.size is None:
            raise ValueError(f"size is required in phase {self.phase.value}")
        if (self.detected is not None) != (self.phase is ReconciliationPhase.CORRECTED):
            raise ValueError("detected is set only in phase CORRECTED")
        return self

    @classmethod
    def unset(cls) -> ReconciliationState:
        """No size declared yet."""
        return cls(phase=ReconciliationPhase.UNSET)

    @classmethod
    def declared(cls, size: PlateSize) -> ReconciliationState:
        """User chose ``size``; ready for an image."""
        return cls(phase=ReconciliationPhase.DECLARED, size=size)

    @classmethod
    def awaiting(cls, size: PlateSize) -> ReconciliationState:
        """Estimate requested with ``size`` as the hint."""
        return cls(phase=ReconciliationPhase.AWAITING_ESTIMATE, size=size)

    @classmethod
    def confirmed(cls, size: PlateSize) -> ReconciliationState:
        """Estimator used the declared size (or did not report one)."""
        return cls(phase=ReconciliationPhase.CONFIRMED, size=size)

    @classmethod
    def corrected(cls, declared: PlateSize, detected: PlateSize) -> ReconciliationState:
        """Estimator used ``detected`` instead of ``declared``."""
        return cls(phase=ReconciliationPhase.CORRECTED, size=declared, detected=detected)

    @property
    def active_size(self) -> Optional[PlateSize]:
        """Size currently in force: the detected one after a correction."""
        if self.phase is ReconciliationPhase.CORRECTED:
            return self.detected
        return self.size


class CorrectionNotice(BaseModel):
    """User-visible signal that the estimator overrode the declared size."""

    model_config = ConfigDict(frozen=True)

    declared: PlateSize = Field(..., description="Size the user declared")
    detected: PlateSize = Field(..., description="Size the estimator used")


class PlateSizeReconciler:
    """
    State machine over the session's declared container size.

    Example:
        >>> reconciler = PlateSizeReconciler()
        >>> reconciler.declare(PlateSize.MEDIUM)
        >>> hint = reconciler.begin_estimate()
        >>> notice = reconciler.resolve(PlateSize.LARGE)
        >>> notice.detected, reconciler.active_size
        (<PlateSize.LARGE: 'large'>, <PlateSize.LARGE: 'large'>)
    """

    def __init__(self) -> None:
        self._state = ReconciliationState.unset()
        self._notice: Optional[CorrectionNotice] = None

    @property
    def state(self) -> ReconciliationState:
        """Current tagged state."""
        return self._state

    @property
    def phase(self) -> ReconciliationPhase:
        """Phase of the current state."""
        return self._state.phase

    @property
    def active_size(self) -> Optional[PlateSize]:
        """Size in force for the next estimate, if any."""
        return self._state.active_size

    @property
    def correction_notice(self) -> Optional[CorrectionNotice]:
        """Pending correction notice, if the last estimate overrode the size."""
        return self._notice

    @property
    def is_awaiting(self) -> bool:
        """True between begin_estimate() and resolve()/fail()."""
        return self._state.phase is ReconciliationPhase.AWAITING_ESTIMATE

    def declare(self, size: PlateSize) -> None:
        """
        User declares a container size.

        Clears any correction notice.

        Raises:
            InvalidTransitionError: While an estimate is in flight
        """
        if self.is_awaiting:
            raise InvalidTransitionError(
                "Cannot declare a plate size while awaiting an estimate"
            )
        self._state = ReconciliationState.declared(PlateSize(size))
        self._notice = None

    def begin_estimate(self) -> PlateSize:
        """
        Image submitted: lock the declared size for the estimator call.

        Returns:
            The plate-size hint to send to the estimator

        Raises:
            InvalidTransitionError: Unless in DECLARED
        """
        if self._state.phase is not ReconciliationPhase.DECLARED:
            raise InvalidTransitionError(
                f"Cannot submit an image in phase {self._state.phase.value}"
            )
        size = self._declared_size()
        self._state = ReconciliationState.awaiting(size)
        return size

    def resolve(self, detected: Optional[PlateSize]) -> Optional[CorrectionNotice]:
        """
        Estimate arrived: compare the detected size with the declared one.

        Args:
            detected: ``detected_plate_size`` of the estimate, if reported

        Returns:
            The correction notice when the sizes differ, else None

        Raises:
            InvalidTransitionError: Unless awaiting an estimate
        """
        size = self._require_awaiting("resolve")
        if detected is None or PlateSize(detected) is size:
            self._state = ReconciliationState.confirmed(size)
            return None

        self._state = ReconciliationState.corrected(size, PlateSize(detected))
        self._notice = CorrectionNotice(declared=size, detected=PlateSize(detected))
        return self._notice

    def fail(self) -> None:
        """
        Estimate failed: go back to DECLARED so the user can retry.

        Raises:
            InvalidTransitionError: Unless awaiting an estimate
        """
        size = self._require_awaiting("fail")
        self._state = ReconciliationState.declared(size)

    def reset(self) -> None:
        """
        Session reset: drop the notice and rearm with the active size.

        Goes back to UNSET only if no size was ever declared.
        """
        size = self._state.active_size
        self._state = (
            ReconciliationState.declared(size) if size is not None else ReconciliationState.unset()
        )
        self._notice = None

    def _require_awaiting(self, event: str) -> PlateSize:
        if not self.is_awaiting:
            raise InvalidTransitionError(
                f"Cannot {event} an estimate in phase {self._state.phase.value}"
            )
        return self._declared_size()

    def _declared_size(self) -> PlateSize:
        size = self._state.size
        if size is None:
            raise InvalidTransitionError(
                f"No plate size declared in phase {self._state.phase.value}"
            )
        return size
