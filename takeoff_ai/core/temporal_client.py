"""Temporal client connection management.

Services and the API share one lazily created client.
"""

from typing import Optional

from temporalio.client import Client as TemporalClient

from takeoff_ai.core.config import settings
from takeoff_ai.utils.logging import get_logger

LOGGER = get_logger(__name__)


class TemporalClientManager:
    """Lazily creates a Temporal client and keeps it around for reuse."""

    _client: Optional[TemporalClient] = None

    async def get_client(self) -> TemporalClient:
        if self._client is None:
            LOGGER.info(f"Connecting to Temporal at {settings.temporal_address}")
            self._client = await TemporalClient.connect(
                settings.temporal_address,
                namespace=settings.temporal.namespace,
            )
        return self._client

    async def close(self) -> None:
        """Drop the cached client; the connection closes with it."""
        if self._client is not None:
            self._client = None
            LOGGER.info("Temporal client released")


_temporal_manager = TemporalClientManager()


async def get_temporal_client() -> TemporalClient:
    """FastAPI dependency returning the shared Temporal client."""
    return await _temporal_manager.get_client()


async def close_temporal_client() -> None:
    await _temporal_manager.close()
