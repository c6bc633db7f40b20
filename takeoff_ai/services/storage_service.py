"""Storage service for Supabase storage operations."""

from typing import Any, Dict, Optional, Tuple
from urllib.parse import unquote, urlparse

import httpx

from takeoff_ai.core.config import settings
from takeoff_ai.core.exceptions import FileTooLargeError, StorageError
from takeoff_ai.utils.logging import get_logger

LOGGER = get_logger(__name__)

OBJECT_API_MARKER = "/storage/v1/object/"
OBJECT_ACCESS_MODES = ("public", "sign", "authenticated")


class StorageService:
    """Service for managing plan files in Supabase storage."""

    def __init__(
        self,
        url: Optional[str] = None,
        service_role_key: Optional[str] = None,
        timeout: Optional[int] = None,
    ):
        self.url = (url if url is not None else settings.storage.supabase_url).rstrip("/")
        self.service_role_key = service_role_key if service_role_key is not None else settings.storage.service_role_key
        self.timeout = timeout or settings.http_timeout
        self.base_api_url = f"{self.url}/storage/v1"
        self.headers = {
            "Authorization": f"Bearer {self.service_role_key}",
            "apikey": self.service_role_key,
        }

    def resolve_path(self, reference: str, bucket: str) -> str:
        """Turn a stored file reference into a path inside ``bucket``.

        Accepts bucket-relative paths, paths prefixed with the bucket name,
        Supabase object URLs (public, signed or authenticated) and other
        absolute URLs whose first path segment is the bucket.
        """
        reference = reference.strip()

        if OBJECT_API_MARKER in reference or reference.startswith("http"):
            parsed_path = unquote(urlparse(reference).path) if reference.startswith("http") else reference.split("?", 1)[0]
            if OBJECT_API_MARKER in parsed_path:
                rest = parsed_path.split(OBJECT_API_MARKER, 1)[1]
                mode, _, rest = rest.partition("/")
                if mode not in OBJECT_ACCESS_MODES:
                    rest = f"{mode}/{rest}"
                # Drop the bucket segment
                return rest.split("/", 1)[1] if "/" in rest else rest
            segments = [segment for segment in parsed_path.split("/") if segment]
            return "/".join(segments[1:]) if len(segments) > 1 else "/".join(segments)

        path = reference.lstrip("/")
        if path.startswith(f"{bucket}/"):
            path = path[len(bucket) + 1:]
        return path

    async def upload_file(
        self,
        content: bytes,
        bucket: str,
        path: str,
        content_type: str = "application/octet-stream",
        upsert: bool = False,
    ) -> Dict[str, Any]:
        """Upload bytes to Supabase storage.

        Args:
            content: File payload.
            bucket: Target bucket name.
            path: Target path within the bucket.
            content_type: MIME type stored with the object.
            upsert: Overwrite an existing object at the same path.

        Returns:
            Dict containing the upload result.

        Raises:
            StorageError: If the upload fails.
        """
        upload_url = f"{self.base_api_url}/object/{bucket}/{path}"
        headers = {**self.headers, "Content-Type": content_type}
        if upsert:
            headers["x-upsert"] = "true"

        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    upload_url,
                    headers=headers,
                    content=content,
                    timeout=self.timeout,
                )
        except httpx.HTTPError as e:
            LOGGER.error(f"Error uploading file to Supabase: {str(e)}", exc_info=True)
            raise StorageError(f"Storage upload error: {str(e)}", original_error=e)

        if response.status_code != 200:
            LOGGER.error(
                f"Failed to upload file to Supabase: {response.text}",
                extra={"bucket": bucket, "path": path, "status_code": response.status_code},
            )
            raise StorageError(f"Upload failed: {response.text}")

        return response.json()

    async def get_signed_url(self, bucket: str, path: str, expires_in: int = 3600) -> str:
        """Issue a signed URL for an object.

        Raises:
            StorageError: If URL generation fails.
        """
        url = f"{self.base_api_url}/object/sign/{bucket}/{path}"

        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    url,
                    headers=self.headers,
                    json={"expiresIn": expires_in},
                    timeout=self.timeout,
                )
        except httpx.HTTPError as e:
            LOGGER.error(f"Error generating signed URL: {str(e)}", exc_info=True)
            raise StorageError(f"Signed URL error: {str(e)}", original_error=e)

        if response.status_code != 200:
            LOGGER.error(
                f"Failed to generate signed URL: {response.text}",
                extra={"bucket": bucket, "path": path, "status_code": response.status_code},
            )
            raise StorageError(f"Signed URL generation failed: {response.text}")

        signed_path = response.json().get("signedURL") or response.json().get("signedUrl")
        if not signed_path:
            raise StorageError("Supabase response did not contain signedURL")

        # Supabase returns a path relative to /storage/v1
        if signed_path.startswith("/"):
            if not signed_path.startswith("/storage/v1"):
                signed_path = f"/storage/v1{signed_path}"
            return f"{self.url}{signed_path}"
        return signed_path

    async def download(self, url: str, max_bytes: int) -> bytes:
        """Download ``url`` into memory, refusing bodies above ``max_bytes``."""
        content, _ = await self.download_with_content_type(url, max_bytes)
        return content

    async def download_with_content_type(self, url: str, max_bytes: int) -> Tuple[bytes, str]:
        """Stream ``url`` into memory and return it with its content type.

        The ceiling is checked against Content-Length first and then while
        the body is read, so oversize files are never fully buffered.

        Raises:
            FileTooLargeError: If the declared or streamed size exceeds the ceiling.
            httpx.HTTPError: On transport or HTTP status failures.
        """
        async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
            async with client.stream("GET", url) as response:
                response.raise_for_status()

                declared = response.headers.get("content-length")
                if declared and declared.isdigit() and int(declared) > max_bytes:
                    raise FileTooLargeError(f"File too large: {int(declared)} bytes (max: {max_bytes})")

                content_type = response.headers.get("content-type", "").lower()
                received = bytearray()
                async for block in response.aiter_bytes():
                    received.extend(block)
                    if len(received) > max_bytes:
                        raise FileTooLargeError(f"File too large: more than {max_bytes} bytes (max: {max_bytes})")

        return bytes(received), content_type
