"""
OpenAI prompts for nutritional estimation.

IMPORTANT: System prompts are cacheable by OpenAI.
Keep static instructions in ESTIMATION_SYSTEM_PROMPT and dynamic content
(language, plate size, image) in user messages.
"""

from __future__ import annotations

import json
from typing import Any

from mealscope.domain.shared.value_objects import ImagePayload, LanguageTag, PlateSize


# ═══════════════════════════════════════════════════════════
# OUTPUT SCHEMA (Embedded in the system prompt)
# ═══════════════════════════════════════════════════════════

_MACROS_SCHEMA = {
    "type": "object",
    "properties": {
        "protein": {"type": "number", "description": "Protein (g)"},
        "carbs": {"type": "number", "description": "Carbohydrates (g)"},
        "fat": {"type": "number", "description": "Fat (g)"},
    },
    "required": ["protein", "carbs", "fat"],
    "additionalProperties": False,
}

ESTIMATION_OUTPUT_SCHEMA = {
    "type": "object",
    "properties": {
        "items": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "name": {"type": "string", "description": "Food name"},
                    "category": {
                        "type": "string",
                        "description": "Nutritional category (e.g. Carbs, Protein, Vegetables)",
                    },
                    "portionGrams": {"type": "number", "description": "Estimated grams"},
                    "calories": {"type": "integer", "description": "Most probable kcal"},
                    "minCalories": {"type": "integer", "description": "Lower kcal bound"},
                    "maxCalories": {"type": "integer", "description": "Upper kcal bound"},
                    "macros": _MACROS_SCHEMA,
                },
                "required": [
                    "name",
                    "category",
                    "portionGrams",
                    "calories",
                    "minCalories",
                    "maxCalories",
                    "macros",
                ],
                "additionalProperties": False,
            },
        },
        "totalCalories": {"type": "integer"},
        "minTotalCalories": {"type": "integer"},
        "maxTotalCalories": {"type": "integer"},
        "totalMacros": _MACROS_SCHEMA,
        "reliabilityScore": {
            "type": "integer",
            "minimum": 0,
            "maximum": 100,
            "description": "Confidence score 0-100",
        },
        "reliabilityNote": {
            "type": "string",
            "description": "Visual references used for the estimate",
        },
        "detectedPlateSize": {
            "type": "string",
            "enum": [size.value for size in PlateSize],
            "description": "Container size inferred from the image",
        },
    },
    "required": [
        "items",
        "totalCalories",
        "minTotalCalories",
        "maxTotalCalories",
        "totalMacros",
        "reliabilityScore",
        "reliabilityNote",
    ],
    "additionalProperties": False,
}


# ═══════════════════════════════════════════════════════════
# SYSTEM PROMPT (Cacheable - static instructions)
# ═══════════════════════════════════════════════════════════

ESTIMATION_SYSTEM_PROMPT = f"""You are a senior clinical nutrition analyst. Your goal is a highly accurate nutritional estimate of the meal in the photo.

Analysis phases:
1. Visual scan and references: look for objects of known size (standard cutlery, glasses, plate rims) to set a geometric scale. The user declares the container size; use it as the primary scale. If the container in the photo is clearly a different size class, report the class you actually used in detectedPlateSize and scale portions to it.
2. Decomposition: identify every visible ingredient. For composed dishes (lasagne, sandwiches, mixed salads) estimate each component separately (e.g. 120 g cooked pasta, 40 g ragu, 10 g parmesan).
3. Density and cooking: salad is bulky but light, meat is dense. Account for oil absorbed by fried or sauteed food (shiny surfaces).
4. Calculation: use standard average nutritional data. When dressings are uncertain, be conservative and lean towards the higher calorie figure.

Output rules:
- Return ONE JSON object, no prose, with exactly the fields of the schema below.
- calories is the single most probable value; minCalories <= calories <= maxCalories bound the uncertainty.
- All grams, calories and macros are >= 0. Calories are whole numbers.
- totalCalories, minTotalCalories, maxTotalCalories and totalMacros are the sums over items.
- reliabilityScore is an integer 0-100; reliabilityNote explains which visual references you used to infer weights (e.g. "Estimated from the standard fork visible on the left...").
- detectedPlateSize is one of "small", "medium", "large", "bowl". Include it only when you inferred the container size from the image.

JSON schema of the answer:
{json.dumps(ESTIMATION_OUTPUT_SCHEMA, indent=2)}
"""


# ═══════════════════════════════════════════════════════════
# USER MESSAGE BUILDERS (Dynamic - not cached)
# ═══════════════════════════════════════════════════════════


def build_estimation_user_message(language: LanguageTag, plate_size_hint: PlateSize) -> str:
    """Build user message for the estimate.

    Args:
        language: Output language for names, categories and the note
        plate_size_hint: Container size declared by the user

    Returns:
        User message text
    """
    language = LanguageTag(language)
    plate_size_hint = PlateSize(plate_size_hint)
    return (
        "Estimate the nutritional content of this meal.\n\n"
        f"Declared container: {plate_size_hint.value} ({plate_size_hint.reference}).\n"
        f"Write name, category and reliabilityNote in {language.display_name}.\n"
        "Keep JSON keys and detectedPlateSize values in English."
    )


def build_estimation_messages(
    image: ImagePayload, language: LanguageTag, plate_size_hint: PlateSize
) -> list[dict[str, Any]]:
    """Build complete message array for the vision API.

    Optimized for OpenAI prompt caching:
    - System message is cached (static instructions)
    - User message is dynamic (context + inline image)

    Args:
        image: Photo to analyse, sent inline as a data URL
        language: Output language
        plate_size_hint: Declared container size

    Returns:
        List of message dicts for OpenAI API
    """
    return [
        {"role": "system", "content": ESTIMATION_SYSTEM_PROMPT},
        {
            "role": "user",
            "content": [
                {
                    "type": "text",
                    "text": build_estimation_user_message(language, plate_size_hint),
                },
                {
                    "type": "image_url",
                    "image_url": {"url": image.to_data_url(), "detail": "high"},
                },
            ],
        },
    ]
