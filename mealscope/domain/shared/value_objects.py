"""
Shared value objects.

Immutable, validated domain primitives.
Following DDD value object pattern.
"""

from __future__ import annotations

import base64
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from mealscope.domain.shared.errors import ValidationError


class PlateSize(str, Enum):
    """
    Container size, declared by the user or detected by the estimator.

    Closed set: anything else is rejected at the contract boundary.
    """

    SMALL = "small"  # Dessert plate
    MEDIUM = "medium"  # Standard flat plate
    LARGE = "large"  # Platter
    BOWL = "bowl"

    @property
    def reference(self) -> str:
        """Visual reference used to anchor portion estimates."""
        return _PLATE_REFERENCES[self]


_PLATE_REFERENCES = {
    PlateSize.SMALL: "small dessert plate, 18-20 cm diameter",
    PlateSize.MEDIUM: "standard flat plate, 26-28 cm diameter",
    PlateSize.LARGE: "large platter, 30-32 cm diameter",
    PlateSize.BOWL: "bowl, 15-18 cm diameter",
}


class LanguageTag(str, Enum):
    """Output language for names, categories and the reliability note."""

    IT = "it"
    EN = "en"

    @property
    def display_name(self) -> str:
        """English name of the language, as used in prompts."""
        return "Italian" if self is LanguageTag.IT else "English"


class SessionContext(BaseModel):
    """
    Explicit context for one analysis session.

    Held by the session and passed into every estimator call;
    never stored as process-wide state.

    Example:
        >>> ctx = SessionContext(language=LanguageTag.IT)
        >>> ctx.plate_size_hint
        <PlateSize.MEDIUM: 'medium'>
        >>> ctx = ctx.with_plate_size(PlateSize.BOWL)
    """

    model_config = ConfigDict(frozen=True)

    language: LanguageTag = Field(LanguageTag.EN, description="Output language")
    plate_size_hint: PlateSize = Field(PlateSize.MEDIUM, description="Declared container size")

    def with_language(self, language: LanguageTag) -> SessionContext:
        """Return a copy with a different language."""
        return self.model_copy(update={"language": LanguageTag(language)})

    def with_plate_size(self, size: PlateSize) -> SessionContext:
        """Return a copy with a different plate-size hint."""
        return self.model_copy(update={"plate_size_hint": PlateSize(size)})


class ImagePayload(BaseModel):
    """
    Photographed meal, as handed to the estimator.

    Example:
        >>> image = ImagePayload(data=b"...", mime_type="image/jpeg")
        >>> image.to_data_url()[:23]
        'data:image/jpeg;base64,'
    """

    model_config = ConfigDict(frozen=True)

    data: bytes = Field(..., min_length=1, description="Raw image bytes")
    mime_type: str = Field(..., description="Image MIME type (image/*)")

    @field_validator("mime_type")
    @classmethod
    def must_be_image(cls, v: str) -> str:
        """Only image/* payloads are accepted."""
        v = v.strip().lower()
        if not v.startswith("image/") or v == "image/":
            raise ValueError(f"Unsupported MIME type: {v!r}")
        return v

    @classmethod
    def from_upload(cls, data: bytes, mime_type: str) -> ImagePayload:
        """
        Build from an uploaded file.

        Raises:
            ValidationError: If bytes are empty or the type is not image/*
        """
        try:
            return cls(data=data, mime_type=mime_type)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid image payload: {e.errors()[0]['msg']}") from e

    def to_data_url(self) -> str:
        """Encode as a base64 data URL for vision APIs."""
        encoded = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.mime_type};base64,{encoded}"

    def __repr__(self) -> str:
        """Debug representation without the image bytes."""
        return f"ImagePayload(mime_type='{self.mime_type}', size={len(self.data)})"
