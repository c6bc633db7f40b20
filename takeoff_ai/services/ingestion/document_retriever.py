"""Plan file retrieval from Supabase storage with retry."""

import asyncio
from typing import List, Optional, Sequence

from takeoff_ai.core.config import settings
from takeoff_ai.core.exceptions import DownloadError
from takeoff_ai.services.storage_service import StorageService
from takeoff_ai.utils.logging import get_logger

LOGGER = get_logger(__name__)


class DocumentRetriever:
    """Downloads a stored plan file, retrying every failure kind.

    Each attempt re-resolves the path and issues a fresh signed URL, so an
    expired or rejected URL is recovered by the next attempt.
    """

    def __init__(
        self,
        storage: Optional[StorageService] = None,
        bucket: Optional[str] = None,
        max_attempts: Optional[int] = None,
        retry_delays: Optional[Sequence[float]] = None,
        max_bytes: Optional[int] = None,
        signed_url_ttl: Optional[int] = None,
    ):
        self.storage = storage or StorageService()
        self.bucket = bucket or settings.storage.bucket
        self.max_attempts = max_attempts or settings.storage.download_max_attempts
        self.retry_delays = list(retry_delays if retry_delays is not None else settings.storage.download_retry_delays)
        self.max_bytes = max_bytes or settings.storage.max_file_size_bytes
        self.signed_url_ttl = signed_url_ttl or settings.storage.signed_url_ttl_seconds
        self.errors: List[str] = []

    async def download(self, file_reference: str) -> bytes:
        """Fetch the file behind ``file_reference``.

        Returns:
            Raw file bytes

        Raises:
            DownloadError: After ``max_attempts`` failed attempts; carries one
                message per attempt in ``attempt_errors``
        """
        self.errors = []
        last_error: Optional[Exception] = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                content = await self._attempt(file_reference)
                LOGGER.info(
                    f"Downloaded plan file ({len(content)} bytes) on attempt {attempt}",
                    extra={"file_reference": file_reference},
                )
                return content
            except Exception as e:
                last_error = e
                message = f"Download attempt {attempt} failed: {str(e)}"
                self.errors.append(message)
                LOGGER.warning(message, extra={"file_reference": file_reference})

                if attempt < self.max_attempts:
                    await asyncio.sleep(self._delay_for(attempt))

        raise DownloadError(
            f"Failed to download plan file after {self.max_attempts} attempts",
            attempt_errors=self.errors,
            original_error=last_error,
        )

    async def _attempt(self, file_reference: str) -> bytes:
        path = self.storage.resolve_path(file_reference, self.bucket)
        signed_url = await self.storage.get_signed_url(self.bucket, path, expires_in=self.signed_url_ttl)
        return await self.storage.download(signed_url, self.max_bytes)

    def _delay_for(self, attempt: int) -> float:
        if not self.retry_delays:
            return 0.0
        return self.retry_delays[min(attempt - 1, len(self.retry_delays) - 1)]
