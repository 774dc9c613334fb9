"""
OpenAI API client for nutritional estimation.

Async client with structured JSON output and typed failure modes.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional, TYPE_CHECKING

import openai
import structlog
from openai import AsyncOpenAI

from mealscope.domain.shared.errors import EstimationError, EstimationErrorKind
from mealscope.infrastructure.config import (
    DEFAULT_OPENAI_MODEL,
    DEFAULT_OPENAI_TIMEOUT,
    get_openai_api_key,
    get_openai_model,
    get_openai_timeout,
)

if TYPE_CHECKING:
    from openai.types.chat import ChatCompletion

logger = structlog.get_logger(__name__)


class OpenAIClient:
    """
    Async OpenAI client for vision completion.

    Manages API calls with structured JSON output. Performs a single
    attempt per call: the underlying SDK retries are disabled by
    default, so a failure is reported to the caller immediately.

    Features:
    - Structured JSON output mode
    - Typed EstimationError for every failure mode
    - Context manager for resource cleanup

    Example:
        >>> async with OpenAIClient() as client:
        ...     messages = [
        ...         {"role": "system", "content": "Return JSON"},
        ...         {"role": "user", "content": "Hello"},
        ...     ]
        ...     data = await client.complete_json(messages=messages)
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = DEFAULT_OPENAI_MODEL,
        max_retries: int = 0,
        timeout: float = DEFAULT_OPENAI_TIMEOUT,
        client: Optional[AsyncOpenAI] = None,
    ):
        """
        Initialize OpenAI client.

        Args:
            api_key: OpenAI API key (reads OPENAI_API_KEY if None)
            model: Model to use (must support vision)
            max_retries: SDK-level retries (0: one attempt per call)
            timeout: Request timeout in seconds
            client: Optional pre-configured AsyncOpenAI client (for testing)

        Raises:
            ValueError: If API key not found and client not provided
        """
        # If client provided, use it (for dependency injection/testing)
        if client is not None:
            self._client: Optional[AsyncOpenAI] = client
            self.api_key: str = api_key or "test-key"
        else:
            resolved_key = api_key or get_openai_api_key()
            if not resolved_key:
                raise ValueError(
                    "OPENAI_API_KEY not found in environment. "
                    "Set it in .env file or pass as parameter."
                )
            self.api_key = resolved_key
            self._client = None

        self.model = model
        self.max_retries = max_retries
        self.timeout = timeout

    @classmethod
    def from_env(cls) -> OpenAIClient:
        """
        Build a client from MEALSCOPE_OPENAI_* and OPENAI_API_KEY.

        Raises:
            ValueError: If the key is missing or the timeout is invalid
        """
        return cls(model=get_openai_model(), timeout=get_openai_timeout())

    async def __aenter__(self) -> OpenAIClient:
        """Async context manager entry."""
        # Only create client if not already provided (DI)
        if self._client is None:
            self._client = AsyncOpenAI(
                api_key=self.api_key,
                timeout=self.timeout,
                max_retries=self.max_retries,
            )
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        if self._client:
            await self._client.close()

    async def complete(
        self,
        messages: List[Dict[str, Any]],
        response_format: Optional[Dict[str, str]] = None,
        temperature: float = 0.2,
        max_tokens: int = 2000,
    ) -> Dict[str, Any]:
        """
        Complete chat, returning the raw message content.

        Args:
            messages: Chat messages (system, user with image)
            response_format: {"type": "json_object"} for JSON mode
            temperature: Sampling temperature (0.0-2.0)
            max_tokens: Max tokens in response

        Returns:
            Dict with:
            - content: Response text ("" when the model returned none)
            - usage: Token usage stats
            - finish_reason: Completion reason

        Raises:
            RuntimeError: If used outside ``async with``
            EstimationError: NETWORK_FAILURE on any API/transport error
        """
        if not self._client:
            raise RuntimeError("Client not initialized. Use async with.")

        params: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }

        if response_format:
            params["response_format"] = response_format

        try:
            completion: ChatCompletion = await self._client.chat.completions.create(**params)
        except openai.APIError as e:
            logger.warning("OpenAI request failed", model=self.model, error=str(e))
            raise EstimationError(
                EstimationErrorKind.NETWORK_FAILURE, f"OpenAI request failed: {e}"
            ) from e

        if not completion.choices:
            return {"content": "", "finish_reason": None, "usage": self._usage(completion)}

        choice = completion.choices[0]
        return {
            "content": choice.message.content or "",
            "finish_reason": choice.finish_reason,
            "usage": self._usage(completion),
        }

    async def complete_json(
        self,
        messages: List[Dict[str, Any]],
        max_tokens: int = 2000,
    ) -> Dict[str, Any]:
        """
        Complete chat in JSON mode and decode the object.

        Args:
            messages: Vision messages (system + user with image)
            max_tokens: Max tokens in response

        Returns:
            Decoded JSON object

        Raises:
            EstimationError: NETWORK_FAILURE, EMPTY_RESPONSE, or
                MALFORMED_PAYLOAD when the content is not a JSON object
        """
        response = await self.complete(
            messages=messages,
            response_format={"type": "json_object"},
            max_tokens=max_tokens,
        )

        content = response["content"].strip()
        if not content:
            logger.warning(
                "OpenAI returned empty content",
                model=self.model,
                finish_reason=response["finish_reason"],
            )
            raise EstimationError(EstimationErrorKind.EMPTY_RESPONSE, "No response from model")

        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            logger.warning("OpenAI returned invalid JSON", model=self.model, error=str(e))
            raise EstimationError(
                EstimationErrorKind.MALFORMED_PAYLOAD, f"Invalid JSON response: {e}"
            ) from e

        if not isinstance(data, dict):
            raise EstimationError(
                EstimationErrorKind.MALFORMED_PAYLOAD,
                f"Expected a JSON object, got {type(data).__name__}",
            )

        logger.debug("OpenAI completion decoded", model=self.model, usage=response["usage"])
        return data

    @staticmethod
    def _usage(completion: ChatCompletion) -> Dict[str, int]:
        usage = completion.usage
        return {
            "prompt_tokens": usage.prompt_tokens if usage else 0,
            "completion_tokens": usage.completion_tokens if usage else 0,
            "total_tokens": usage.total_tokens if usage else 0,
        }
