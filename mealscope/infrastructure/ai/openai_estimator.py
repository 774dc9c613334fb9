"""
OpenAI-backed food estimator.

Adapter implementing IFoodEstimator with OpenAI Vision.
"""

from __future__ import annotations

import time
from typing import Optional

import structlog

from mealscope.domain.estimation.contract import validate
from mealscope.domain.estimation.models import AnalysisResult
from mealscope.domain.estimation.prompts import build_estimation_messages
from mealscope.domain.shared.value_objects import ImagePayload, LanguageTag, PlateSize
from mealscope.infrastructure.ai.openai_client import OpenAIClient

logger = structlog.get_logger(__name__)


class OpenAIFoodEstimator:
    """
    Nutritional estimation from meal photos using OpenAI Vision.

    One API call per estimate, no retries. The decoded payload goes
    through the estimation contract before it is returned.

    Example:
        >>> async with OpenAIClient() as client:
        ...     estimator = OpenAIFoodEstimator(client)
        ...     result = await estimator.estimate(
        ...         image, LanguageTag.IT, PlateSize.MEDIUM
        ...     )
        >>> print(result.total_calories)
    """

    def __init__(self, openai_client: OpenAIClient, max_tokens: int = 4000):
        """
        Initialize estimator.

        Args:
            openai_client: Client used for the vision call (entered by caller)
            max_tokens: Token budget for the JSON answer
        """
        self.openai_client = openai_client
        self.max_tokens = max_tokens

    async def estimate(
        self,
        image: ImagePayload,
        language: LanguageTag,
        plate_size_hint: PlateSize,
    ) -> AnalysisResult:
        """
        Estimate the nutritional content of a meal photo.

        Raises:
            EstimationError: On transport failure, empty or non-JSON output
            ContractError: If the JSON violates the estimation contract
        """
        start_time = time.time()
        messages = build_estimation_messages(image, language, plate_size_hint)

        payload = await self.openai_client.complete_json(
            messages=messages, max_tokens=self.max_tokens
        )
        result = validate(payload)

        logger.info(
            "Estimate completed",
            items=len(result.items),
            total_calories=result.total_calories,
            reliability_score=result.reliability_score,
            detected_plate_size=_value(result.detected_plate_size),
            processing_time_ms=int((time.time() - start_time) * 1000),
        )
        return result


def _value(size: Optional[PlateSize]) -> Optional[str]:
    return size.value if size is not None else None
