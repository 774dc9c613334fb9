"""
Portion recalculation engine.

Pure functions: an edit to one item's portion weight produces a new
AnalysisResult with that item rescaled and every aggregate recomputed.
No I/O, no logging, no state.
"""

from __future__ import annotations

import math
from typing import Any, Optional, Sequence

from mealscope.domain.estimation.models import (
    AnalysisResult,
    FoodItem,
    Macronutrients,
    round_kcal,
)


def adjust_portion(result: AnalysisResult, item_index: Any, new_grams: Any) -> AnalysisResult:
    """
    Rescale one item to a new portion weight.

    The item's calorie fields and macros are multiplied by
    new_grams / old_grams (calories rounded to whole kcal, macros to
    one decimal), then all totals are recomputed from the items.

    Invalid input is ignored rather than reported: a non-numeric,
    negative or non-finite weight, or an index that does not address
    an item, returns ``result`` itself unchanged.

    Args:
        result: Current snapshot (left untouched)
        item_index: Position of the item in ``result.items``
        new_grams: New weight, as a number or edit-box text

    Returns:
        New snapshot, or ``result`` when the edit is ignored

    Example:
        >>> updated = adjust_portion(result, 0, "150")
        >>> updated.items[0].calories  # was 200 kcal at 100 g
        300
        >>> adjust_portion(result, 0, "abc") is result
        True
    """
    if not _is_valid_index(item_index, len(result.items)):
        return result

    grams = parse_grams(new_grams)
    if grams is None:
        return result

    item = result.items[item_index]
    if grams == item.portion_grams or not _scales_finitely(item, grams):
        return result

    items = list(result.items)
    items[item_index] = rescale_item(item, grams)
    return result.model_copy(update={"items": tuple(items), **recompute_totals(items)})


def rescale_item(item: FoodItem, new_grams: float) -> FoodItem:
    """
    Scale one item to ``new_grams``.

    A zero-gram baseline has no meaningful ratio; its figures are kept
    as they are and only the weight changes.
    """
    if item.portion_grams > 0:
        ratio = new_grams / item.portion_grams
    else:
        ratio = 1.0

    if ratio == 1.0:
        return item.model_copy(update={"portion_grams": new_grams})

    return FoodItem(
        name=item.name,
        category=item.category,
        portion_grams=new_grams,
        calories=round_kcal(item.calories * ratio),
        min_calories=round_kcal(item.min_calories * ratio),
        max_calories=round_kcal(item.max_calories * ratio),
        macros=item.macros.scale(ratio),
    )


def recompute_totals(items: Sequence[FoodItem]) -> dict[str, Any]:
    """
    Aggregate fields for ``items``.

    Calorie totals are exact integer sums; macro totals are summed per
    field and rounded to one decimal afterwards.

    Returns:
        Mapping of AnalysisResult field name to value, ready for
        ``model_copy(update=...)``
    """
    return {
        "total_calories": sum(item.calories for item in items),
        "min_total_calories": sum(item.min_calories for item in items),
        "max_total_calories": sum(item.max_calories for item in items),
        "total_macros": Macronutrients.total(item.macros for item in items),
    }


def parse_grams(value: Any) -> Optional[float]:
    """
    Interpret an edit value as grams.

    Returns:
        Finite, non-negative float, or None if the value is unusable

    Example:
        >>> parse_grams(" 120.5 ")
        120.5
        >>> parse_grams("-3") is None
        True
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        grams = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(grams) or grams < 0:
        return None
    return grams


def _is_valid_index(index: Any, size: int) -> bool:
    # Negative indices would silently address items from the end
    return isinstance(index, int) and not isinstance(index, bool) and 0 <= index < size


def _scales_finitely(item: FoodItem, new_grams: float) -> bool:
    # 1e308 g would overflow the scaled figures to inf
    if item.portion_grams <= 0:
        return True
    largest = max(
        item.max_calories,
        item.macros.protein,
        item.macros.carbs,
        item.macros.fat,
    )
    return math.isfinite(new_grams / item.portion_grams * largest)
