"""Page image extraction through PDF.co."""

from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx

from takeoff_ai.core.config import settings
from takeoff_ai.core.exceptions import ImageExtractionError, StorageError
from takeoff_ai.models.page_data import PageImage
from takeoff_ai.services.storage_service import StorageService
from takeoff_ai.utils.logging import get_logger

LOGGER = get_logger(__name__)


def _json_object(response: httpx.Response, step: str) -> Dict[str, Any]:
    """Decode a PDF.co reply that must be a JSON object."""
    try:
        data = response.json()
    except ValueError as e:
        LOGGER.error(f"PDF.co {step} returned non-JSON body: {response.text[:200]}")
        raise ImageExtractionError(f"PDF.co {step} returned invalid JSON", original_error=e)
    if not isinstance(data, dict):
        raise ImageExtractionError(f"PDF.co {step} returned {type(data).__name__}, expected an object")
    return data


class PageImageExtractor:
    """Converts a PDF into one PNG per page.

    Without a PDF.co API key the feature is disabled and ``to_images``
    returns an empty list instead of failing.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_url: Optional[str] = None,
        timeout: Optional[int] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.ingestion.pdf_co_api_key
        self.api_url = (api_url or settings.ingestion.pdf_co_api_url).rstrip("/")
        self.timeout = timeout or settings.http_timeout

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    async def to_images(self, pdf_bytes: bytes, file_name: str = "plan.pdf", dpi: int = 300) -> List[PageImage]:
        """Convert every page to a hosted PNG.

        Raises:
            ImageExtractionError: If PDF.co rejects the upload or conversion
        """
        if not self.enabled:
            LOGGER.warning("PDF_CO_API_KEY not configured - skipping image extraction")
            return []

        headers = {"x-api-key": self.api_key}
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                upload = await client.post(
                    f"{self.api_url}/file/upload",
                    headers=headers,
                    files={"file": (file_name, pdf_bytes, "application/pdf")},
                )
                upload.raise_for_status()
                file_url = _json_object(upload, "upload").get("url")
                if not file_url:
                    raise ImageExtractionError("PDF.co upload returned no file url")

                convert = await client.post(
                    f"{self.api_url}/pdf/convert/to/png",
                    headers=headers,
                    json={
                        "url": file_url,
                        "async": False,
                        "pages": "",
                        "name": f"{file_name}-page",
                        "profiles": f'{{"RenderingResolution": {dpi}}}',
                    },
                )
                convert.raise_for_status()
                data = _json_object(convert, "conversion")
        except httpx.HTTPError as e:
            LOGGER.error(f"PDF.co request failed: {str(e)}", exc_info=True)
            raise ImageExtractionError(f"PDF.co request failed: {str(e)}", original_error=e)

        if data.get("error"):
            raise ImageExtractionError(f"PDF.co error: {data.get('message')}")

        urls = data.get("urls") or []
        if not isinstance(urls, list) or not all(isinstance(url, str) for url in urls):
            raise ImageExtractionError("PDF.co conversion returned malformed page urls")
        LOGGER.info(f"Converted {file_name} into {len(urls)} page images", extra={"dpi": dpi})
        return [PageImage(page_number=idx, url=url, dpi=dpi) for idx, url in enumerate(urls, start=1)]


async def upload_page_images(
    plan_id: str,
    images: Sequence[PageImage],
    storage: StorageService,
    bucket: Optional[str] = None,
    url_ttl: Optional[int] = None,
) -> Tuple[Dict[int, str], List[str]]:
    """Give every page image a URL chunks can reference.

    Hosted images keep their URL. Byte payloads are uploaded to
    ``chunks/{plan_id}/page-{n}.png`` and referenced by a long-lived signed
    URL. A failed page is reported in the returned error list and skipped.

    Returns:
        (page number -> URL, error messages)
    """
    bucket = bucket or settings.storage.bucket
    url_ttl = url_ttl or settings.storage.page_image_url_ttl_seconds

    urls: Dict[int, str] = {}
    errors: List[str] = []

    for image in images:
        if image.is_hosted:
            urls[image.page_number] = image.url
            continue
        if not image.image_bytes:
            errors.append(f"Page {image.page_number} image has no content")
            continue

        path = f"chunks/{plan_id}/page-{image.page_number}.png"
        try:
            await storage.upload_file(image.image_bytes, bucket, path, content_type="image/png", upsert=True)
            urls[image.page_number] = await storage.get_signed_url(bucket, path, expires_in=url_ttl)
        except StorageError as e:
            message = f"Failed to upload image for page {image.page_number}: {str(e)}"
            LOGGER.warning(message, extra={"plan_id": plan_id})
            errors.append(message)

    return urls, errors
