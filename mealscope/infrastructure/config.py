"""Configuration utilities for infrastructure layer."""

import os
from pathlib import Path
from typing import Optional, Union

from dotenv import load_dotenv

from mealscope.domain.shared.value_objects import LanguageTag, PlateSize, SessionContext

DEFAULT_OPENAI_MODEL = "gpt-4o"
DEFAULT_OPENAI_TIMEOUT = 60.0


def load_env(env_path: Optional[Union[str, Path]] = None) -> bool:
    """
    Load a .env file into the process environment.

    Existing environment variables win over values in the file.

    Args:
        env_path: Explicit .env path (defaults to ./.env lookup)

    Returns:
        True if a file was found and loaded
    """
    if env_path is None:
        return load_dotenv()
    return load_dotenv(Path(env_path))


def get_openai_api_key() -> Optional[str]:
    """
    Get OpenAI API key.

    Returns:
        OPENAI_API_KEY, or None if not set
    """
    return os.getenv("OPENAI_API_KEY") or None


def get_openai_model() -> str:
    """
    Get the vision model name.

    Returns:
        MEALSCOPE_OPENAI_MODEL, defaults to "gpt-4o"
    """
    return os.getenv("MEALSCOPE_OPENAI_MODEL", DEFAULT_OPENAI_MODEL)


def get_openai_timeout() -> float:
    """
    Get the estimator request timeout in seconds.

    Returns:
        MEALSCOPE_OPENAI_TIMEOUT, defaults to 60

    Raises:
        ValueError: If the value is not a positive number
    """
    raw = os.getenv("MEALSCOPE_OPENAI_TIMEOUT")
    if raw is None:
        return DEFAULT_OPENAI_TIMEOUT
    try:
        timeout = float(raw)
    except ValueError:
        raise ValueError(f"MEALSCOPE_OPENAI_TIMEOUT must be a number, got {raw!r}") from None
    if timeout <= 0:
        raise ValueError(f"MEALSCOPE_OPENAI_TIMEOUT must be positive, got {raw!r}")
    return timeout


def get_default_context() -> SessionContext:
    """
    Build the initial session context from the environment.

    Reads MEALSCOPE_DEFAULT_LANGUAGE (it/en, default en) and
    MEALSCOPE_DEFAULT_PLATE_SIZE (small/medium/large/bowl, default medium).

    Raises:
        ValueError: If either variable holds an unknown value
    """
    language = os.getenv("MEALSCOPE_DEFAULT_LANGUAGE", LanguageTag.EN.value).strip().lower()
    plate = os.getenv("MEALSCOPE_DEFAULT_PLATE_SIZE", PlateSize.MEDIUM.value).strip().lower()

    try:
        language_tag = LanguageTag(language)
    except ValueError:
        raise ValueError(f"MEALSCOPE_DEFAULT_LANGUAGE must be one of it/en, got {language!r}") from None
    try:
        plate_size = PlateSize(plate)
    except ValueError:
        raise ValueError(
            "MEALSCOPE_DEFAULT_PLATE_SIZE must be one of small/medium/large/bowl, "
            f"got {plate!r}"
        ) from None

    return SessionContext(language=language_tag, plate_size_hint=plate_size)
