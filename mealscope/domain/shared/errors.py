"""
Domain exceptions.

Typed exceptions for explicit error handling.
Every failure that can reach a caller has its own type; portion edits
never raise (invalid edits are absorbed by the recalculation engine).
"""

from __future__ import annotations

from enum import Enum
from typing import Optional


# ═══════════════════════════════════════════════════════════
# BASE EXCEPTION
# ═══════════════════════════════════════════════════════════


class DomainError(Exception):
    """
    Base exception for all domain errors.

    All domain-specific exceptions inherit from this.
    Allows catching all domain errors with single except clause.
    """

    pass


# ═══════════════════════════════════════════════════════════
# ESTIMATION CONTRACT EXCEPTIONS
# ═══════════════════════════════════════════════════════════


class ContractErrorKind(str, Enum):
    """Which invariant of the estimation contract was violated."""

    MISSING_FIELD = "MISSING_FIELD"  # Required field absent
    OUT_OF_RANGE = "OUT_OF_RANGE"  # Numeric range or min/value/max bound
    AGGREGATE_MISMATCH = "AGGREGATE_MISMATCH"  # Totals != sum of items
    UNKNOWN_FIELD = "UNKNOWN_FIELD"  # Field outside the declared set
    INVALID_TYPE = "INVALID_TYPE"  # Wrong JSON type


class ContractError(DomainError):
    """
    Estimator output violates the estimation contract.

    Raised when:
    - A required field is missing
    - reliabilityScore is outside [0, 100] or a bound is inverted
    - Totals differ from the per-item sums by more than 1 unit

    Example:
        >>> raise ContractError(
        ...     ContractErrorKind.MISSING_FIELD,
        ...     "reliabilityScore is required",
        ...     field="reliabilityScore",
        ... )
    """

    def __init__(
        self,
        kind: ContractErrorKind,
        message: str,
        field: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.field = field

    def __str__(self) -> str:
        base = super().__str__()
        if self.field:
            return f"{self.kind.value} at '{self.field}': {base}"
        return f"{self.kind.value}: {base}"


# ═══════════════════════════════════════════════════════════
# VALIDATION / STATE EXCEPTIONS
# ═══════════════════════════════════════════════════════════


class ValidationError(DomainError):
    """
    Input validation failed.

    Raised when:
    - Image payload is empty
    - MIME type is not an image type

    Example:
        >>> raise ValidationError("Unsupported MIME type: text/plain")
    """

    pass


class ConflictError(DomainError):
    """
    State conflict detected.

    Base class for operations rejected because of the current
    session state rather than because of their input.
    """

    pass


class SubmissionInProgressError(ConflictError):
    """
    An estimate is already in flight for this session.

    At most one estimator call may be outstanding per session.

    Example:
        >>> raise SubmissionInProgressError(
        ...     "Session is awaiting an estimate"
        ... )
    """

    pass


class InvalidTransitionError(ConflictError):
    """
    Plate-size reconciliation received an event its state cannot accept.

    Example:
        >>> raise InvalidTransitionError(
        ...     "Cannot declare a plate size while awaiting an estimate"
        ... )
    """

    pass


# ═══════════════════════════════════════════════════════════
# EXTERNAL SERVICE EXCEPTIONS
# ═══════════════════════════════════════════════════════════


class ExternalServiceError(DomainError):
    """
    External service call failed.

    Base class for all external service errors.
    """

    pass


class EstimationErrorKind(str, Enum):
    """Failure modes of the external estimator."""

    NETWORK_FAILURE = "NETWORK_FAILURE"  # Transport or API error
    EMPTY_RESPONSE = "EMPTY_RESPONSE"  # No content returned
    MALFORMED_PAYLOAD = "MALFORMED_PAYLOAD"  # Not a JSON object


class EstimationError(ExternalServiceError):
    """
    External estimator failed before producing a candidate result.

    Raised when:
    - OpenAI API call fails (connection, timeout, status error)
    - The model returns no content
    - The content is not a decodable JSON object

    Example:
        >>> raise EstimationError(
        ...     EstimationErrorKind.EMPTY_RESPONSE,
        ...     "Model returned no content",
        ... )
    """

    def __init__(self, kind: EstimationErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind

    def __str__(self) -> str:
        return f"{self.kind.value}: {super().__str__()}"
