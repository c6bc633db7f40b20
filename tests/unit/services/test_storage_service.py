"""Tests for Supabase storage path resolution and transfers."""

import json
from unittest.mock import patch

import httpx
import pytest

from takeoff_ai.core.exceptions import FileTooLargeError, StorageError
from takeoff_ai.services.storage_service import StorageService

BASE_URL = "https://project.supabase.co"

_RealAsyncClient = httpx.AsyncClient


def client_factory(handler):
    transport = httpx.MockTransport(handler)

    def build(**kwargs):
        return _RealAsyncClient(transport=transport, **kwargs)

    return build


@pytest.fixture
def storage() -> StorageService:
    return StorageService(url=BASE_URL, service_role_key="service-key", timeout=5)


@pytest.mark.parametrize(
    "reference,expected",
    [
        ("plans/a.pdf", "plans/a.pdf"),
        ("/plans/a.pdf", "plans/a.pdf"),
        ("job-plans/plans/a.pdf", "plans/a.pdf"),
        (f"{BASE_URL}/storage/v1/object/public/job-plans/plans/a.pdf", "plans/a.pdf"),
        (f"{BASE_URL}/storage/v1/object/sign/job-plans/plans/a%20b.pdf?token=xyz", "plans/a b.pdf"),
        (f"{BASE_URL}/storage/v1/object/job-plans/plans/a.pdf", "plans/a.pdf"),
        ("https://cdn.example.com/job-plans/plans/a.pdf", "plans/a.pdf"),
    ],
)
def test_resolve_path(storage, reference, expected):
    assert storage.resolve_path(reference, "job-plans") == expected


class TestSignedUrl:

    @pytest.mark.asyncio
    async def test_relative_signed_path_is_made_absolute(self, storage):
        def handler(request):
            assert request.url.path == "/storage/v1/object/sign/job-plans/plans/a.pdf"
            assert json.loads(request.content) == {"expiresIn": 300}
            return httpx.Response(200, json={"signedURL": "/object/sign/job-plans/plans/a.pdf?token=t"})

        with patch("takeoff_ai.services.storage_service.httpx.AsyncClient", client_factory(handler)):
            url = await storage.get_signed_url("job-plans", "plans/a.pdf", expires_in=300)

        assert url == f"{BASE_URL}/storage/v1/object/sign/job-plans/plans/a.pdf?token=t"

    @pytest.mark.asyncio
    async def test_error_response_raises(self, storage):
        handler = lambda request: httpx.Response(404, text="Object not found")

        with patch("takeoff_ai.services.storage_service.httpx.AsyncClient", client_factory(handler)):
            with pytest.raises(StorageError, match="Object not found"):
                await storage.get_signed_url("job-plans", "plans/missing.pdf")


class TestDownload:

    @pytest.mark.asyncio
    async def test_download_returns_bytes(self, storage):
        handler = lambda request: httpx.Response(200, content=b"%PDF-1.7 body")

        with patch("takeoff_ai.services.storage_service.httpx.AsyncClient", client_factory(handler)):
            content = await storage.download(f"{BASE_URL}/signed", max_bytes=1024)

        assert content == b"%PDF-1.7 body"

    @pytest.mark.asyncio
    async def test_oversize_body_is_rejected(self, storage):
        handler = lambda request: httpx.Response(200, content=b"0" * 2048)

        with patch("takeoff_ai.services.storage_service.httpx.AsyncClient", client_factory(handler)):
            with pytest.raises(FileTooLargeError):
                await storage.download(f"{BASE_URL}/signed", max_bytes=1024)

    @pytest.mark.asyncio
    async def test_http_error_propagates(self, storage):
        handler = lambda request: httpx.Response(403)

        with patch("takeoff_ai.services.storage_service.httpx.AsyncClient", client_factory(handler)):
            with pytest.raises(httpx.HTTPStatusError):
                await storage.download(f"{BASE_URL}/signed", max_bytes=1024)
