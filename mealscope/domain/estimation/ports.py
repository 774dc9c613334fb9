"""
Ports (Interfaces) for the external estimator.

The session depends on this protocol only, so tests can inject
deterministic fakes and production code can swap vision backends.

Design Pattern: Ports & Adapters (Hexagonal Architecture)
"""

from typing import Protocol, runtime_checkable

from mealscope.domain.estimation.models import AnalysisResult
from mealscope.domain.shared.value_objects import ImagePayload, LanguageTag, PlateSize


@runtime_checkable
class IFoodEstimator(Protocol):
    """
    Port for AI nutritional estimation from a meal photo.

    Implementations perform exactly one backend call per invocation
    and never retry; retrying is the caller's decision.
    """

    async def estimate(
        self,
        image: ImagePayload,
        language: LanguageTag,
        plate_size_hint: PlateSize,
    ) -> AnalysisResult:
        """
        Estimate the nutritional content of a meal photo.

        Args:
            image: Photo bytes and MIME type
            language: Language for names, categories and the note
            plate_size_hint: Container size declared by the user

        Returns:
            AnalysisResult that passed the estimation contract

        Raises:
            EstimationError: NETWORK_FAILURE, EMPTY_RESPONSE or
                MALFORMED_PAYLOAD
            ContractError: If the payload violates the contract
        """
        ...
