"""
Estimation domain models.

Immutable snapshots of an AI nutritional estimate for one meal photo.
Attribute names are snake_case; the wire format (estimator JSON) uses
the camelCase aliases.
"""

from __future__ import annotations

import math
from decimal import Context, Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Any, Iterable, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel
from pydantic_core import PydanticCustomError

from mealscope.domain.shared.value_objects import PlateSize


# ═══════════════════════════════════════════════════════════
# ROUNDING
# ═══════════════════════════════════════════════════════════


def round_half_up(value: float, places: int = 0) -> float:
    """
    Round half away from zero on the decimal representation.

    Python's round() uses banker's rounding (round(2.5) == 2); portion
    figures must round 2.5 up like a calculator would.

    Example:
        >>> round_half_up(2.5)
        3.0
        >>> round_half_up(7.45, 1)
        7.5
    """
    exact = Decimal(str(value))
    # Enough digits for the integer part plus the requested decimals
    context = Context(prec=max(28, exact.adjusted() + places + 2))
    quantum = Decimal(1).scaleb(-places)
    return float(exact.quantize(quantum, rounding=ROUND_HALF_UP, context=context))


def round_kcal(value: float) -> int:
    """Round an energy value to whole kcal."""
    return int(round_half_up(value, 0))


def round1(value: float) -> float:
    """Round a gram value to one decimal."""
    return round_half_up(value, 1)


_WIRE_CONFIG = ConfigDict(
    frozen=True,
    extra="forbid",
    alias_generator=to_camel,
    allow_inf_nan=False,
    populate_by_name=True,
)


# ═══════════════════════════════════════════════════════════
# MODELS
# ═══════════════════════════════════════════════════════════


class ReliabilityLevel(str, Enum):
    """Coarse banding of the estimator's self-reported confidence."""

    HIGH = "HIGH"  # score >= 80
    MEDIUM = "MEDIUM"  # score >= 50
    LOW = "LOW"


class Macronutrients(BaseModel):
    """
    Macronutrient grams.

    Example:
        >>> macros = Macronutrients(protein=10, carbs=20, fat=5)
        >>> macros.scale(1.5)
        Macronutrients(protein=15.0, carbs=30.0, fat=7.5)
    """

    model_config = _WIRE_CONFIG

    protein: float = Field(..., ge=0, description="Protein in g")
    carbs: float = Field(..., ge=0, description="Carbohydrates in g")
    fat: float = Field(..., ge=0, description="Total fat in g")

    def scale(self, ratio: float) -> Macronutrients:
        """Scale every field by ratio, rounded to one decimal."""
        return Macronutrients(
            protein=round1(self.protein * ratio),
            carbs=round1(self.carbs * ratio),
            fat=round1(self.fat * ratio),
        )

    @classmethod
    def total(cls, parts: Iterable[Macronutrients]) -> Macronutrients:
        """Per-field sum, each rounded to one decimal after summation."""
        protein = carbs = fat = 0.0
        for part in parts:
            protein += part.protein
            carbs += part.carbs
            fat += part.fat
        return cls(protein=round1(protein), carbs=round1(carbs), fat=round1(fat))


class FoodItem(BaseModel):
    """
    One identified ingredient or component of the meal.

    Items carry no identity: edits address them by position in
    AnalysisResult.items.

    Attributes:
        name: Display name in the session language
        category: Nutritional category (e.g. "Protein", "Carboidrati")
        portion_grams: Estimated or user-edited mass
        calories: Most probable energy in kcal
        min_calories: Lower confidence bound
        max_calories: Upper confidence bound
        macros: Macronutrients for this portion
    """

    model_config = _WIRE_CONFIG

    name: str = Field(..., description="Ingredient name")
    category: str = Field(..., description="Nutritional category")
    portion_grams: float = Field(..., ge=0, description="Portion weight in g")
    calories: int = Field(..., ge=0, description="Most probable kcal")
    min_calories: int = Field(..., ge=0, description="Lower kcal bound")
    max_calories: int = Field(..., ge=0, description="Upper kcal bound")
    macros: Macronutrients

    @field_validator("calories", "min_calories", "max_calories", mode="before")
    @classmethod
    def round_fractional_kcal(cls, v: Any) -> Any:
        """Estimators sometimes emit 212.5 kcal; keep whole kcal."""
        if isinstance(v, float) and math.isfinite(v):
            return round_kcal(v)
        return v

    @model_validator(mode="after")
    def check_bounds(self) -> FoodItem:
        """min_calories <= calories <= max_calories."""
        if not self.min_calories <= self.calories <= self.max_calories:
            raise PydanticCustomError(
                "calorie_bounds",
                "calorie bounds violated: {low} <= {value} <= {high} does not hold",
                {"low": self.min_calories, "value": self.calories, "high": self.max_calories},
            )
        return self


class AnalysisResult(BaseModel):
    """
    Full nutritional estimate for one image (a snapshot).

    Never mutated: portion edits produce a new AnalysisResult.
    Totals always equal the exact per-item sums once a snapshot has
    passed the contract gate or the recalculation engine.

    Example:
        >>> result = AnalysisResult(
        ...     items=[item],
        ...     total_calories=200,
        ...     min_total_calories=150,
        ...     max_total_calories=250,
        ...     total_macros=Macronutrients(protein=10, carbs=20, fat=5),
        ...     reliability_score=85,
        ...     reliability_note="Fork visible on the left used as scale",
        ... )
        >>> result.reliability_level
        <ReliabilityLevel.HIGH: 'HIGH'>
    """

    model_config = _WIRE_CONFIG

    items: Tuple[FoodItem, ...] = Field(..., description="Items in display order")
    total_calories: int = Field(..., ge=0, description="Sum of item kcal")
    min_total_calories: int = Field(..., ge=0, description="Sum of item lower bounds")
    max_total_calories: int = Field(..., ge=0, description="Sum of item upper bounds")
    total_macros: Macronutrients
    reliability_score: int = Field(..., ge=0, le=100, description="Estimator confidence")
    reliability_note: str = Field(..., description="Rationale for the estimate")
    detected_plate_size: Optional[PlateSize] = Field(
        None, description="Container size the estimator inferred, if reported"
    )

    @field_validator("total_calories", "min_total_calories", "max_total_calories", mode="before")
    @classmethod
    def round_fractional_kcal(cls, v: Any) -> Any:
        """Same whole-kcal policy as FoodItem."""
        if isinstance(v, float) and math.isfinite(v):
            return round_kcal(v)
        return v

    @field_validator("detected_plate_size", mode="before")
    @classmethod
    def normalize_plate_size(cls, v: Any) -> Any:
        """Accept 'Bowl' / ' medium ' as reported by the model."""
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @model_validator(mode="after")
    def check_total_bounds(self) -> AnalysisResult:
        """min_total_calories <= total_calories <= max_total_calories."""
        if not self.min_total_calories <= self.total_calories <= self.max_total_calories:
            raise PydanticCustomError(
                "calorie_bounds",
                "total calorie bounds violated: {low} <= {value} <= {high} does not hold",
                {
                    "low": self.min_total_calories,
                    "value": self.total_calories,
                    "high": self.max_total_calories,
                },
            )
        return self

    @property
    def reliability_level(self) -> ReliabilityLevel:
        """Band the reliability score for display."""
        if self.reliability_score >= 80:
            return ReliabilityLevel.HIGH
        if self.reliability_score >= 50:
            return ReliabilityLevel.MEDIUM
        return ReliabilityLevel.LOW

    def is_consistent(self) -> bool:
        """Check that every aggregate equals the exact sum of the items."""
        return (
            self.total_calories == sum(item.calories for item in self.items)
            and self.min_total_calories == sum(item.min_calories for item in self.items)
            and self.max_total_calories == sum(item.max_calories for item in self.items)
            and self.total_macros == Macronutrients.total(item.macros for item in self.items)
        )

    def to_wire(self) -> dict[str, Any]:
        """Serialise to the camelCase JSON shape of the estimator contract."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
