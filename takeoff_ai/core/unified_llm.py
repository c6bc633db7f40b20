"""Unified completion client.

Wraps the Gemini and OpenRouter clients behind one ``complete`` call, with an
optional Gemini fallback when OpenRouter is the primary provider.
"""

from enum import Enum
from typing import Optional, Union

from takeoff_ai.core.config import LLMSettings, settings
from takeoff_ai.core.exceptions import APIClientError, ConfigurationError
from takeoff_ai.core.llm_client import GeminiClient, OpenRouterClient
from takeoff_ai.schemas.llm import CompletionRequest, CompletionResult
from takeoff_ai.utils.logging import get_logger

LOGGER = get_logger(__name__)


class LLMProvider(str, Enum):
    """Supported LLM providers."""
    GEMINI = "gemini"
    OPENROUTER = "openrouter"


class UnifiedLLMClient:
    """Provider-neutral completion client."""

    def __init__(
        self,
        provider: Union[str, LLMProvider],
        api_key: str,
        model: str,
        base_url: Optional[str] = None,
        timeout: int = 120,
        max_retries: int = 3,
        fallback_to_gemini: bool = False,
        gemini_api_key: Optional[str] = None,
        gemini_model: Optional[str] = None,
    ):
        """Initialize unified LLM client.

        Args:
            provider: "gemini" or "openrouter"
            api_key: API key for the primary provider
            model: Model name to use
            base_url: OpenRouter chat completions URL
            timeout: Request timeout in seconds
            max_retries: Maximum retry attempts
            fallback_to_gemini: Retry failed OpenRouter calls on Gemini
            gemini_api_key: Gemini API key (required if fallback_to_gemini=True)
            gemini_model: Gemini model name (for fallback)
        """
        self.provider = LLMProvider(provider)
        self.model = model
        self.fallback_client: Optional[GeminiClient] = None

        if self.provider == LLMProvider.GEMINI:
            self.client = GeminiClient(
                api_key=api_key,
                model=model,
                timeout=timeout,
                max_retries=max_retries
            )
            LOGGER.info(f"Initialized unified LLM with Gemini provider (model: {model})")
            return

        self.client = OpenRouterClient(
            api_key=api_key,
            model=model,
            base_url=base_url or "https://openrouter.ai/api/v1/chat/completions",
            timeout=timeout,
            max_retries=max_retries
        )

        if fallback_to_gemini:
            if not gemini_api_key:
                raise ConfigurationError("gemini_api_key required when fallback_to_gemini=True")
            self.fallback_client = GeminiClient(
                api_key=gemini_api_key,
                model=gemini_model or "gemini-2.0-flash",
                timeout=timeout,
                max_retries=max_retries
            )
            LOGGER.info(
                f"Initialized unified LLM with OpenRouter provider (model: {model}) "
                f"and Gemini fallback (model: {gemini_model})"
            )
        else:
            LOGGER.info(f"Initialized unified LLM with OpenRouter provider (model: {model})")

    async def complete(self, request: CompletionRequest) -> CompletionResult:
        """Run a completion on the primary provider, then the fallback.

        Raises:
            APIClientError: If generation fails on every configured provider
        """
        try:
            return await self.client.complete(request)
        except Exception as e:
            if not self.fallback_client:
                raise

            LOGGER.warning(
                f"Primary provider ({self.provider.value}) failed, attempting Gemini fallback: {e}"
            )
            try:
                return await self.fallback_client.complete(request)
            except Exception as fallback_error:
                LOGGER.error(f"Fallback to Gemini also failed: {fallback_error}")
                raise APIClientError(
                    f"Both primary ({self.provider.value}) and fallback (Gemini) failed",
                    original_error=fallback_error,
                ) from fallback_error


def create_llm_client_from_settings(llm_settings: Optional[LLMSettings] = None) -> UnifiedLLMClient:
    """Build a UnifiedLLMClient from ``LLMSettings``.

    Raises:
        ConfigurationError: If the provider is unknown or its API key is missing
    """
    llm = llm_settings or settings.llm

    try:
        provider = LLMProvider(llm.provider.lower())
    except ValueError as e:
        raise ConfigurationError(f"Unsupported LLM provider: {llm.provider}", original_error=e)

    if provider == LLMProvider.GEMINI:
        if not llm.gemini_api_key.strip():
            raise ConfigurationError(
                "gemini_api_key required when provider='gemini'. "
                "Please set GEMINI_API_KEY environment variable."
            )
        return UnifiedLLMClient(
            provider=provider,
            api_key=llm.gemini_api_key.strip(),
            model=llm.gemini_model,
            timeout=llm.timeout_seconds,
            max_retries=llm.max_retries,
        )

    if not llm.openrouter_api_key.strip():
        raise ConfigurationError(
            "openrouter_api_key required when provider='openrouter'. "
            "Please set OPENROUTER_API_KEY environment variable."
        )
    fallback = llm.enable_fallback and bool(llm.gemini_api_key.strip())
    return UnifiedLLMClient(
        provider=provider,
        api_key=llm.openrouter_api_key.strip(),
        model=llm.openrouter_model,
        base_url=llm.openrouter_api_url,
        timeout=llm.timeout_seconds,
        max_retries=llm.max_retries,
        fallback_to_gemini=fallback,
        gemini_api_key=llm.gemini_api_key.strip() or None,
        gemini_model=llm.gemini_model,
    )
