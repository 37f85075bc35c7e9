"""Two-stage file upload: obtain a signed target, then post the file to it."""

import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Protocol

import httpx

from perplexity_client.clients.http_client import response_snippet
from perplexity_client.config.settings import settings
from perplexity_client.exceptions import UploadError
from perplexity_client.utils.logger import logger
from perplexity_client.utils.structured_logging import log_error

MIME_TYPES = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "webp": "image/webp",
    "pdf": "application/pdf",
    "txt": "text/plain",
    "md": "text/markdown",
    "csv": "text/csv",
    "json": "application/json",
}
DEFAULT_MIME_TYPE = "application/octet-stream"

_SIGNED_IMAGE_SEGMENT = re.compile(r"/private/s--.*?--/v\d+/user_uploads/")


def guess_mime(filename: str) -> str:
    """Guess a MIME type from the filename extension."""
    _, dot, ext = filename.rpartition(".")
    if not dot:
        return DEFAULT_MIME_TYPE
    return MIME_TYPES.get(ext.lower(), DEFAULT_MIME_TYPE)


def encode_content(content: Any) -> bytes:
    """Bytes as-is, text as UTF-8, anything else as its JSON text."""
    if isinstance(content, (bytes, bytearray, memoryview)):
        return bytes(content)
    if isinstance(content, str):
        return content.encode("utf-8")
    return json.dumps(content).encode("utf-8")


@dataclass(frozen=True)
class UploadTarget:
    """
    Signed upload destination returned by the first stage.

    Attributes:
        upload_url: URL the multipart form is posted to
        fields: Form fields that must accompany the file
        final_url: Durable URL of the object once uploaded
    """
    upload_url: str
    fields: Dict[str, str] = field(default_factory=dict)
    final_url: str = ""


class BlobUploader(Protocol):
    """Collaborator turning file bytes into a durable URL."""

    async def create_upload_target(self, filename: str, content_type: str, size: int) -> UploadTarget:
        ...

    async def perform_upload(self, target: UploadTarget, filename: str, data: bytes, content_type: str) -> str:
        ...


class PerplexityUploader:
    """BlobUploader backed by the Perplexity upload endpoint."""

    def __init__(self, http_client: httpx.AsyncClient):
        """
        Initialize the uploader.

        Args:
            http_client: Authenticated client whose base_url is the Perplexity site
        """
        self.http_client = http_client

    async def create_upload_target(self, filename: str, content_type: str, size: int) -> UploadTarget:
        """
        Request a signed upload target for one file.

        Raises:
            UploadError: If the endpoint returns a non-success status
        """
        response = await self.http_client.post(
            "/rest/uploads/create_upload_url",
            params={"version": settings.API_VERSION, "source": "default"},
            json={
                "content_type": content_type,
                "file_size": size,
                "filename": filename,
                "force_image": False,
                "source": "default",
            },
        )
        if not response.is_success:
            snippet = response_snippet(response)
            log_error("upload_error", "create upload url failed", context={"filename": filename, "status": response.status_code})
            raise UploadError(
                f"Could not create upload URL for {filename}",
                status_code=response.status_code,
                payload=snippet,
            )

        info = response.json()
        return UploadTarget(
            upload_url=info.get("s3_bucket_url", ""),
            fields={str(k): str(v) for k, v in (info.get("fields") or {}).items()},
            final_url=info.get("s3_object_url", ""),
        )

    async def perform_upload(self, target: UploadTarget, filename: str, data: bytes, content_type: str) -> str:
        """
        Post the file to its signed target.

        Returns:
            Durable URL of the uploaded file

        Raises:
            UploadError: If the storage endpoint returns a non-success status
        """
        response = await self.http_client.post(
            target.upload_url,
            data=target.fields,
            files={"file": (filename, data, content_type)},
        )
        if not response.is_success:
            log_error("upload_error", "file upload failed", context={"filename": filename, "status": response.status_code})
            raise UploadError(
                f"File upload failed for {filename}",
                status_code=response.status_code,
                payload=response_snippet(response),
            )
        return self._durable_url(target, response)

    @staticmethod
    def _durable_url(target: UploadTarget, response: httpx.Response) -> str:
        if "image/upload" not in target.final_url:
            return target.final_url
        try:
            body = response.json()
        except ValueError:
            return target.final_url
        secure_url = body.get("secure_url") if isinstance(body, dict) else None
        if not isinstance(secure_url, str):
            return target.final_url
        return _SIGNED_IMAGE_SEGMENT.sub("/private/user_uploads/", secure_url, count=1)


async def upload_files(uploader: BlobUploader, files: Mapping[str, Any]) -> List[str]:
    """
    Upload every file and return their durable URLs, in mapping order.

    Args:
        uploader: Upload collaborator
        files: Filename -> content (bytes, str, or a JSON-serializable value)
    """
    urls: List[str] = []
    for filename, content in files.items():
        data = encode_content(content)
        content_type = guess_mime(filename)
        logger.info(f"Uploading {filename} ({content_type}, {len(data)} bytes)")
        target = await uploader.create_upload_target(filename, content_type, len(data))
        urls.append(await uploader.perform_upload(target, filename, data, content_type))
    return urls
