"""Tests for plan file download with retry."""

import logging
from unittest.mock import AsyncMock, Mock, patch

import pytest

from takeoff_ai.core.exceptions import DownloadError, StorageError
from takeoff_ai.services.ingestion.document_retriever import DocumentRetriever


@pytest.fixture
def storage() -> Mock:
    storage = Mock()
    storage.resolve_path = Mock(return_value="plans/riverside.pdf")
    storage.get_signed_url = AsyncMock(return_value="https://storage.example.com/signed/riverside.pdf?token=abc")
    storage.download = AsyncMock(return_value=b"%PDF-1.7")
    return storage


def make_retriever(storage: Mock) -> DocumentRetriever:
    return DocumentRetriever(
        storage=storage,
        bucket="job-plans",
        max_attempts=3,
        retry_delays=[1.0, 2.0, 4.0],
        max_bytes=1024,
        signed_url_ttl=300,
    )


class TestDocumentRetriever:

    @pytest.mark.asyncio
    async def test_download_success(self, storage):
        retriever = make_retriever(storage)

        content = await retriever.download("job-plans/plans/riverside.pdf")

        assert content == b"%PDF-1.7"
        storage.resolve_path.assert_called_once_with("job-plans/plans/riverside.pdf", "job-plans")
        storage.get_signed_url.assert_awaited_once_with("job-plans", "plans/riverside.pdf", expires_in=300)
        storage.download.assert_awaited_once_with(
            "https://storage.example.com/signed/riverside.pdf?token=abc", 1024
        )

    @pytest.mark.asyncio
    async def test_recovers_on_second_attempt_with_fresh_url(self, storage):
        storage.download.side_effect = [StorageError("403 signature expired"), b"%PDF-1.7"]
        retriever = make_retriever(storage)

        with patch("takeoff_ai.services.ingestion.document_retriever.asyncio.sleep", new=AsyncMock()) as sleep:
            content = await retriever.download("plans/riverside.pdf")

        assert content == b"%PDF-1.7"
        assert storage.get_signed_url.await_count == 2
        sleep.assert_awaited_once_with(1.0)
        assert retriever.errors == ["Download attempt 1 failed: 403 signature expired"]

    @pytest.mark.asyncio
    async def test_exhausted_attempts_raise_download_error(self, storage, caplog):
        storage.download.side_effect = StorageError("connection reset")
        retriever = make_retriever(storage)

        with patch("takeoff_ai.services.ingestion.document_retriever.asyncio.sleep", new=AsyncMock()) as sleep:
            with caplog.at_level(logging.WARNING):
                with pytest.raises(DownloadError) as exc_info:
                    await retriever.download("plans/riverside.pdf")

        assert exc_info.value.attempt_errors == [
            "Download attempt 1 failed: connection reset",
            "Download attempt 2 failed: connection reset",
            "Download attempt 3 failed: connection reset",
        ]
        assert isinstance(exc_info.value.original_error, StorageError)
        assert [call.args[0] for call in sleep.await_args_list] == [1.0, 2.0]
        warnings = [record for record in caplog.records if record.levelno == logging.WARNING]
        assert len(warnings) == 3

    @pytest.mark.asyncio
    async def test_path_resolution_failures_are_retried(self, storage):
        storage.resolve_path.side_effect = [ValueError("bad reference"), "plans/riverside.pdf"]
        retriever = make_retriever(storage)

        with patch("takeoff_ai.services.ingestion.document_retriever.asyncio.sleep", new=AsyncMock()):
            content = await retriever.download("plans/riverside.pdf")

        assert content == b"%PDF-1.7"
        assert len(retriever.errors) == 1
