import asyncio
from typing import Dict, Any, Optional, List

import httpx
from httpx import TimeoutException, HTTPStatusError
from google import genai
from google.genai import types

from takeoff_ai.core.exceptions import APIClientError, APITimeoutError
from takeoff_ai.schemas.llm import CompletionRequest, CompletionResult
from takeoff_ai.utils.logging import get_logger

LOGGER = get_logger(__name__)


class BaseLLMClient:
    """Base client for LLM API interactions.

    Handles common logic for HTTP requests, retries, timeout management,
    and error logging.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str,
        timeout: int = 60,
        max_retries: int = 3,
        retry_delay: int = 2
    ):
        """Initialize the LLM client.

        Args:
            api_key: API key for authentication
            base_url: Base URL for the API
            timeout: Request timeout in seconds
            max_retries: Maximum number of retries
            retry_delay: Base delay for exponential backoff
        """
        self.api_key = api_key
        self.base_url = base_url
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.logger = LOGGER

    async def call_api(
        self,
        endpoint: str = "",
        payload: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None
    ) -> Dict[str, Any]:
        """POST ``payload`` with retry logic.

        Returns:
            Parsed JSON response

        Raises:
            APIClientError: If the API call fails after retries, or on a
                non-retryable 4xx response
            APITimeoutError: If every attempt timed out
        """
        url = f"{self.base_url}{endpoint}" if endpoint else self.base_url

        default_headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        if headers:
            default_headers.update(headers)

        self.logger.debug(f"Calling LLM API: {url}", extra={"timeout": self.timeout})

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            for attempt in range(self.max_retries):
                try:
                    response = await client.post(url, headers=default_headers, json=payload)
                    response.raise_for_status()
                    return response.json()

                except HTTPStatusError as e:
                    await self._handle_http_error(e, attempt, url)

                except TimeoutException as e:
                    await self._handle_timeout_error(e, attempt, url)

                except Exception as e:
                    await self._handle_generic_error(e, attempt, url)

        raise APIClientError(f"Failed to call API {url} after {self.max_retries} attempts")

    async def _handle_http_error(self, error: HTTPStatusError, attempt: int, url: str):
        status_code = error.response.status_code

        try:
            error_body = error.response.text
        except Exception:
            error_body = "Could not read response body"

        self.logger.warning(
            f"API HTTP error (Attempt {attempt + 1}/{self.max_retries})",
            extra={
                "url": url,
                "status_code": status_code,
                "error_body": error_body[:500]
            }
        )

        # Client errors are final, except rate limiting
        if 400 <= status_code < 500 and status_code != 429:
            raise APIClientError(f"API Client Error {status_code}: {error_body}") from error

        if attempt < self.max_retries - 1:
            await self._wait_before_retry(attempt)
        else:
            raise APIClientError(f"API HTTP Error {status_code} after retries") from error

    async def _handle_timeout_error(self, error: TimeoutException, attempt: int, url: str):
        self.logger.warning(
            f"API Timeout (Attempt {attempt + 1}/{self.max_retries})",
            extra={"url": url}
        )

        if attempt < self.max_retries - 1:
            await self._wait_before_retry(attempt)
        else:
            raise APITimeoutError(f"API Timeout after {self.max_retries} attempts") from error

    async def _handle_generic_error(self, error: Exception, attempt: int, url: str):
        self.logger.warning(
            f"API Generic Error (Attempt {attempt + 1}/{self.max_retries})",
            extra={"url": url, "error": str(error)}
        )

        if attempt < self.max_retries - 1:
            await self._wait_before_retry(attempt)
        else:
            raise APIClientError(f"API Error: {str(error)}") from error

    async def _wait_before_retry(self, attempt: int):
        """Exponential backoff wait."""
        await asyncio.sleep(self.retry_delay * (2 ** attempt))


class OpenRouterClient:
    """OpenRouter chat completions with image_url message parts."""

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str = "https://openrouter.ai/api/v1/chat/completions",
        timeout: int = 120,
        max_retries: int = 3,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url
        self.timeout = timeout
        self.max_retries = max_retries

        self.client = BaseLLMClient(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout,
            max_retries=max_retries
        )

        LOGGER.info(f"Initialized OpenRouter client with model {self.model}")

    def build_payload(self, request: CompletionRequest) -> Dict[str, Any]:
        user_content: List[Dict[str, Any]] = [{"type": "text", "text": request.user_prompt}]
        user_content.extend(
            {"type": "image_url", "image_url": {"url": url}} for url in request.images
        )
        return {
            "model": self.model,
            "messages": [
                {"role": "system", "content": request.system_prompt},
                {"role": "user", "content": user_content},
            ],
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
        }

    async def complete(self, request: CompletionRequest) -> CompletionResult:
        """Run one chat completion.

        Raises:
            APIClientError: If the call fails or the response has no choices
        """
        response = await self.client.call_api(payload=self.build_payload(request))

        choices = response.get("choices") or []
        if not choices:
            LOGGER.error(f"Unexpected OpenRouter response format: {str(response)[:500]}")
            raise APIClientError("Invalid response format from OpenRouter")

        content = choices[0].get("message", {}).get("content") or ""
        if not content:
            LOGGER.warning("Empty response from OpenRouter")

        usage = response.get("usage") or {}
        return CompletionResult(
            content=content,
            usage={
                key: int(value)
                for key, value in usage.items()
                if key in ("prompt_tokens", "completion_tokens", "total_tokens") and value is not None
            },
            provider="openrouter",
            model=self.model,
        )


class GeminiClient:
    """Wrapper for Google Gemini API client."""

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.0-flash",
        timeout: int = 120,
        max_retries: int = 3,
    ):
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.max_retries = max_retries

        try:
            self.client = genai.Client(api_key=self.api_key)
            LOGGER.info(f"Initialized Gemini client with model {self.model}")
        except Exception as e:
            LOGGER.error(f"Failed to initialize Gemini client: {e}")
            raise APIClientError(f"Failed to initialize Gemini client: {e}", original_error=e)

    async def fetch_image_parts(self, urls: List[str]) -> List[types.Part]:
        """Download page images and wrap them as inline byte parts."""
        parts = []
        async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
            for url in urls:
                try:
                    response = await client.get(url)
                    response.raise_for_status()
                except httpx.HTTPError as e:
                    LOGGER.warning(f"Skipping page image {url}: {e}")
                    continue
                mime_type = response.headers.get("content-type", "image/png").split(";")[0]
                parts.append(types.Part.from_bytes(data=response.content, mime_type=mime_type))
        return parts

    async def complete(self, request: CompletionRequest) -> CompletionResult:
        """Run one completion, retrying with exponential backoff.

        Raises:
            APIClientError: If generation fails after retries
        """
        config = types.GenerateContentConfig(
            temperature=request.temperature,
            max_output_tokens=request.max_tokens,
            system_instruction=request.system_prompt,
        )
        contents: List[Any] = [request.user_prompt]
        contents.extend(await self.fetch_image_parts(request.images))

        for attempt in range(self.max_retries):
            try:
                response = await self.client.aio.models.generate_content(
                    model=self.model,
                    contents=contents,
                    config=config
                )
                break
            except Exception as e:
                LOGGER.warning(
                    f"Gemini API error (Attempt {attempt + 1}/{self.max_retries}): {e}"
                )
                if attempt < self.max_retries - 1:
                    await asyncio.sleep(2 ** attempt)
                else:
                    LOGGER.error(f"Gemini generation failed after retries: {e}", exc_info=True)
                    raise APIClientError(f"Gemini generation failed: {e}", original_error=e)
        else:
            raise APIClientError("Gemini generation failed")

        if not response.text:
            LOGGER.warning("Empty response from Gemini")

        usage: Dict[str, int] = {}
        metadata = getattr(response, "usage_metadata", None)
        if metadata is not None:
            for key, attr in (
                ("prompt_tokens", "prompt_token_count"),
                ("completion_tokens", "candidates_token_count"),
                ("total_tokens", "total_token_count"),
            ):
                value = getattr(metadata, attr, None)
                if value is not None:
                    usage[key] = int(value)

        return CompletionResult(
            content=response.text or "",
            usage=usage,
            provider="gemini",
            model=self.model,
        )
