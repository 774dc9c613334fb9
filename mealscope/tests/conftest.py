"""
Shared fixtures for mealscope tests.

Deterministic payloads, snapshots and a fake estimator so that no test
touches the network.
"""

from __future__ import annotations

import asyncio
from typing import Any, List, Optional, Tuple

import pytest

from mealscope.domain.estimation.contract import validate
from mealscope.domain.estimation.models import AnalysisResult, FoodItem, Macronutrients
from mealscope.domain.shared.value_objects import ImagePayload, LanguageTag, PlateSize


# ═══════════════════════════════════════════════════════════
# WIRE PAYLOAD FIXTURES
# ═══════════════════════════════════════════════════════════


@pytest.fixture
def pasta_item_payload() -> dict[str, Any]:
    """Pasta, 100 g, as the estimator returns it."""
    return {
        "name": "Spaghetti al pomodoro",
        "category": "Carbs",
        "portionGrams": 100,
        "calories": 200,
        "minCalories": 150,
        "maxCalories": 250,
        "macros": {"protein": 10, "carbs": 20, "fat": 5},
    }


@pytest.fixture
def salad_item_payload() -> dict[str, Any]:
    """Side salad, 80 g."""
    return {
        "name": "Mixed salad",
        "category": "Vegetables",
        "portionGrams": 80,
        "calories": 40,
        "minCalories": 30,
        "maxCalories": 60,
        "macros": {"protein": 1.5, "carbs": 6.2, "fat": 0.3},
    }


@pytest.fixture
def estimate_payload(
    pasta_item_payload: dict[str, Any],
    salad_item_payload: dict[str, Any],
) -> dict[str, Any]:
    """Complete, consistent estimator payload (two items, no detected size)."""
    return {
        "items": [pasta_item_payload, salad_item_payload],
        "totalCalories": 240,
        "minTotalCalories": 180,
        "maxTotalCalories": 310,
        "totalMacros": {"protein": 11.5, "carbs": 26.2, "fat": 5.3},
        "reliabilityScore": 85,
        "reliabilityNote": "Scale taken from the standard fork visible on the left.",
    }


# ═══════════════════════════════════════════════════════════
# DOMAIN MODEL FIXTURES
# ═══════════════════════════════════════════════════════════


@pytest.fixture
def pasta_item() -> FoodItem:
    """Single item used by the recalculation scenarios."""
    return FoodItem(
        name="Spaghetti al pomodoro",
        category="Carbs",
        portion_grams=100,
        calories=200,
        min_calories=150,
        max_calories=250,
        macros=Macronutrients(protein=10, carbs=20, fat=5),
    )


@pytest.fixture
def single_item_result(pasta_item: FoodItem) -> AnalysisResult:
    """Snapshot with only the pasta item."""
    return AnalysisResult(
        items=[pasta_item],
        total_calories=200,
        min_total_calories=150,
        max_total_calories=250,
        total_macros=Macronutrients(protein=10, carbs=20, fat=5),
        reliability_score=80,
        reliability_note="Plate rim used as reference.",
    )


@pytest.fixture
def sample_result(estimate_payload: dict[str, Any]) -> AnalysisResult:
    """Validated two-item snapshot."""
    return validate(estimate_payload)


@pytest.fixture
def sample_image() -> ImagePayload:
    """Tiny fake JPEG."""
    return ImagePayload(data=b"\xff\xd8\xff\xe0fake-jpeg", mime_type="image/jpeg")


# ═══════════════════════════════════════════════════════════
# FAKE ESTIMATOR
# ═══════════════════════════════════════════════════════════


class FakeEstimator:
    """
    Deterministic IFoodEstimator.

    Each call consumes the next outcome: an AnalysisResult is returned,
    an exception is raised, an asyncio.Future is awaited first (lets a
    test hold a call in flight and resolve it later).
    """

    def __init__(self, outcomes: Optional[List[Any]] = None) -> None:
        self.outcomes: List[Any] = list(outcomes or [])
        self.calls: List[Tuple[ImagePayload, LanguageTag, PlateSize]] = []

    async def estimate(
        self,
        image: ImagePayload,
        language: LanguageTag,
        plate_size_hint: PlateSize,
    ) -> AnalysisResult:
        self.calls.append((image, language, plate_size_hint))
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, asyncio.Future):
            outcome = await outcome
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome  # type: ignore[no-any-return]


@pytest.fixture
def fake_estimator_factory() -> Any:
    """Build a FakeEstimator with the given outcomes."""
    return FakeEstimator
