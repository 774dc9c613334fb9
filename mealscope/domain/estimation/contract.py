"""
Estimation contract gate.

The only path from raw estimator output to an AnalysisResult.
Malformed output never reaches the recalculation engine.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional, Sequence, Union

import structlog
from pydantic import ValidationError as PydanticValidationError

from mealscope.domain.estimation.models import AnalysisResult, Macronutrients, round1
from mealscope.domain.estimation.recalculation import recompute_totals
from mealscope.domain.shared.errors import ContractError, ContractErrorKind

logger = structlog.get_logger(__name__)

# Totals may differ from the item sums by this much (integer rounding upstream)
AGGREGATE_TOLERANCE = 1

_RANGE_ERROR_TYPES = frozenset(
    {
        "greater_than",
        "greater_than_equal",
        "less_than",
        "less_than_equal",
        "enum",
        "calorie_bounds",
        "finite_number",
    }
)

# Most specific first: a missing field usually explains the other errors
_KIND_PRIORITY = (
    ContractErrorKind.MISSING_FIELD,
    ContractErrorKind.INVALID_TYPE,
    ContractErrorKind.UNKNOWN_FIELD,
    ContractErrorKind.OUT_OF_RANGE,
)


def validate(candidate: Union[Mapping[str, Any], AnalysisResult]) -> AnalysisResult:
    """
    Validate estimator output against the estimation contract.

    Checks structure (required/unknown fields, JSON types), ranges
    (non-negative figures, reliabilityScore in [0, 100], min <= value
    <= max) and aggregates (totals within ±1 of the item sums).

    Args:
        candidate: Decoded JSON object, or an AnalysisResult to re-check

    Returns:
        AnalysisResult whose totals are the exact item sums

    Raises:
        ContractError: On the first violation found

    Example:
        >>> result = validate(json.loads(payload))
        >>> assert result.is_consistent()
    """
    if isinstance(candidate, AnalysisResult):
        candidate = candidate.to_wire()

    try:
        parsed = AnalysisResult.model_validate(candidate)
    except PydanticValidationError as e:
        error = _to_contract_error(e)
        logger.warning(
            "Estimate rejected by contract",
            kind=error.kind.value,
            field=error.field,
            error_count=e.error_count(),
        )
        raise error from e

    exact = recompute_totals(parsed.items)
    _check_aggregates(parsed, exact)

    logger.debug(
        "Estimate accepted",
        items=len(parsed.items),
        total_calories=exact["total_calories"],
        reliability_score=parsed.reliability_score,
    )
    return parsed.model_copy(update=exact)


def _check_aggregates(parsed: AnalysisResult, exact: dict[str, Any]) -> None:
    """Compare declared totals with the item sums, field by field."""
    pairs = [
        ("totalCalories", parsed.total_calories, exact["total_calories"]),
        ("minTotalCalories", parsed.min_total_calories, exact["min_total_calories"]),
        ("maxTotalCalories", parsed.max_total_calories, exact["max_total_calories"]),
    ]
    declared_macros: Macronutrients = parsed.total_macros
    summed_macros: Macronutrients = exact["total_macros"]
    for name in ("protein", "carbs", "fat"):
        pairs.append(
            (
                f"totalMacros.{name}",
                getattr(declared_macros, name),
                getattr(summed_macros, name),
            )
        )

    for field, declared, summed in pairs:
        if round1(abs(declared - summed)) > AGGREGATE_TOLERANCE:
            logger.warning(
                "Estimate rejected by contract",
                kind=ContractErrorKind.AGGREGATE_MISMATCH.value,
                field=field,
                declared=declared,
                summed=summed,
            )
            raise ContractError(
                ContractErrorKind.AGGREGATE_MISMATCH,
                f"declared {declared} but items sum to {summed}",
                field=field,
            )


def _to_contract_error(error: PydanticValidationError) -> ContractError:
    """Pick the most telling pydantic error and translate it."""
    by_kind: dict[ContractErrorKind, dict[str, Any]] = {}
    for detail in error.errors():
        by_kind.setdefault(_classify(detail["type"]), detail)

    kind = next(k for k in _KIND_PRIORITY if k in by_kind)
    detail = by_kind[kind]
    return ContractError(kind, detail["msg"], field=_dotted(detail["loc"]))


def _classify(error_type: str) -> ContractErrorKind:
    if error_type == "missing":
        return ContractErrorKind.MISSING_FIELD
    if error_type == "extra_forbidden":
        return ContractErrorKind.UNKNOWN_FIELD
    if error_type in _RANGE_ERROR_TYPES:
        return ContractErrorKind.OUT_OF_RANGE
    return ContractErrorKind.INVALID_TYPE


def _dotted(loc: Sequence[Union[int, str]]) -> Optional[str]:
    return ".".join(str(part) for part in loc) or None
