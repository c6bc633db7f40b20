"""Tests for PDF.co page image conversion and page image upload."""

import json
from unittest.mock import AsyncMock, Mock, patch

import httpx
import pytest

from takeoff_ai.core.exceptions import ImageExtractionError, StorageError
from takeoff_ai.models.page_data import PageImage
from takeoff_ai.services.ingestion.image_extractor import PageImageExtractor, upload_page_images

API_URL = "https://pdfco.example.com/v1"
FILE_URL = "https://pdf-temp-files.example.com/plan.pdf"

_RealAsyncClient = httpx.AsyncClient


def client_factory(handler):
    transport = httpx.MockTransport(handler)

    def build(**kwargs):
        return _RealAsyncClient(transport=transport, **kwargs)

    return build


def pdf_co(convert_response: httpx.Response, seen=None):
    """Handler that accepts the upload and answers the conversion with ``convert_response``."""

    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        if request.url.path.endswith("/file/upload"):
            return httpx.Response(200, json={"url": FILE_URL, "error": False})
        return convert_response

    return handler


@pytest.fixture
def extractor() -> PageImageExtractor:
    return PageImageExtractor(api_key="pdfco-key", api_url=API_URL, timeout=5)


class TestToImages:

    @pytest.mark.asyncio
    async def test_without_key_returns_no_images(self):
        extractor = PageImageExtractor(api_key="", api_url=API_URL)

        assert extractor.enabled is False
        assert await extractor.to_images(b"%PDF-1.7") == []

    @pytest.mark.asyncio
    async def test_upload_then_convert(self, extractor):
        seen = []
        converted = httpx.Response(
            200,
            json={
                "error": False,
                "urls": ["https://pdf-temp-files.example.com/p1.png", "https://pdf-temp-files.example.com/p2.png"],
            },
        )

        with patch(
            "takeoff_ai.services.ingestion.image_extractor.httpx.AsyncClient",
            client_factory(pdf_co(converted, seen)),
        ):
            images = await extractor.to_images(b"%PDF-1.7", file_name="A-101.pdf", dpi=150)

        assert [image.page_number for image in images] == [1, 2]
        assert images[1].url == "https://pdf-temp-files.example.com/p2.png"
        assert all(image.is_hosted and image.dpi == 150 for image in images)

        assert [request.url.path for request in seen] == ["/v1/file/upload", "/v1/pdf/convert/to/png"]
        assert all(request.headers["x-api-key"] == "pdfco-key" for request in seen)
        body = json.loads(seen[1].content)
        assert body["url"] == FILE_URL
        assert body["async"] is False
        assert body["name"] == "A-101.pdf-page"
        assert json.loads(body["profiles"]) == {"RenderingResolution": 150}

    @pytest.mark.asyncio
    async def test_service_error_is_raised(self, extractor):
        refused = httpx.Response(200, json={"error": True, "message": "quota"})

        with patch("takeoff_ai.services.ingestion.image_extractor.httpx.AsyncClient", client_factory(pdf_co(refused))):
            with pytest.raises(ImageExtractionError, match="PDF.co error: quota"):
                await extractor.to_images(b"%PDF-1.7")

    @pytest.mark.asyncio
    async def test_failed_upload_status(self, extractor):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401, json={"error": True, "message": "bad key"})

        with patch("takeoff_ai.services.ingestion.image_extractor.httpx.AsyncClient", client_factory(handler)):
            with pytest.raises(ImageExtractionError, match="PDF.co request failed"):
                await extractor.to_images(b"%PDF-1.7")

    @pytest.mark.asyncio
    async def test_html_gateway_page_is_an_extraction_error(self, extractor):
        gateway = httpx.Response(200, text="<html>gateway</html>", headers={"content-type": "text/html"})

        with patch("takeoff_ai.services.ingestion.image_extractor.httpx.AsyncClient", client_factory(pdf_co(gateway))):
            with pytest.raises(ImageExtractionError, match="invalid JSON") as exc_info:
                await extractor.to_images(b"%PDF-1.7")

        assert isinstance(exc_info.value.original_error, ValueError)

    @pytest.mark.asyncio
    async def test_non_object_reply_is_an_extraction_error(self, extractor):
        listing = httpx.Response(200, json=["https://pdf-temp-files.example.com/p1.png"])

        with patch("takeoff_ai.services.ingestion.image_extractor.httpx.AsyncClient", client_factory(pdf_co(listing))):
            with pytest.raises(ImageExtractionError, match="expected an object"):
                await extractor.to_images(b"%PDF-1.7")

    @pytest.mark.asyncio
    async def test_malformed_page_urls(self, extractor):
        broken = httpx.Response(200, json={"error": False, "urls": "https://pdf-temp-files.example.com/p1.png"})

        with patch("takeoff_ai.services.ingestion.image_extractor.httpx.AsyncClient", client_factory(pdf_co(broken))):
            with pytest.raises(ImageExtractionError, match="malformed page urls"):
                await extractor.to_images(b"%PDF-1.7")


class TestUploadPageImages:

    @pytest.fixture
    def storage(self) -> Mock:
        storage = Mock()
        storage.upload_file = AsyncMock(return_value={"Key": "job-plans/chunks/plan-1/page-2.png"})
        storage.get_signed_url = AsyncMock(return_value="https://project.supabase.co/signed/page-2.png?token=t")
        return storage

    @pytest.mark.asyncio
    async def test_hosted_and_byte_images(self, storage):
        images = [
            PageImage(page_number=1, url="https://pdf-temp-files.example.com/p1.png"),
            PageImage(page_number=2, image_bytes=b"\x89PNG"),
        ]

        urls, errors = await upload_page_images("plan-1", images, storage, bucket="job-plans", url_ttl=600)

        assert errors == []
        assert urls == {
            1: "https://pdf-temp-files.example.com/p1.png",
            2: "https://project.supabase.co/signed/page-2.png?token=t",
        }
        storage.upload_file.assert_awaited_once_with(
            b"\x89PNG", "job-plans", "chunks/plan-1/page-2.png", content_type="image/png", upsert=True
        )
        storage.get_signed_url.assert_awaited_once_with("job-plans", "chunks/plan-1/page-2.png", expires_in=600)

    @pytest.mark.asyncio
    async def test_failed_page_is_reported_and_skipped(self, storage):
        storage.upload_file.side_effect = [StorageError("bucket full"), {"Key": "ok"}]
        images = [
            PageImage(page_number=1, image_bytes=b"\x89PNG"),
            PageImage(page_number=2, image_bytes=b"\x89PNG"),
        ]

        urls, errors = await upload_page_images("plan-1", images, storage, bucket="job-plans", url_ttl=600)

        assert list(urls) == [2]
        assert errors == ["Failed to upload image for page 1: bucket full"]

    @pytest.mark.asyncio
    async def test_empty_image_is_reported(self, storage):
        urls, errors = await upload_page_images(
            "plan-1", [PageImage(page_number=3, image_bytes=b"")], storage, bucket="job-plans", url_ttl=600
        )

        assert urls == {}
        assert errors == ["Page 3 image has no content"]
        storage.upload_file.assert_not_awaited()
