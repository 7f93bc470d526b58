from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

logger = logging.getLogger(__name__)


class BlobFetchError(RuntimeError):
    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class BlobTooLarge(RuntimeError):
    def __init__(self, size: int, limit: int):
        super().__init__(f"Blob exceeds {limit} bytes (read at least {size}).")
        self.size = size
        self.limit = limit


@dataclass(frozen=True)
class HeadResult:
    ok: bool
    status_code: int
    content_length: int | None = None


def _content_length(response: httpx.Response) -> int | None:
    raw = response.headers.get("content-length")
    if not raw:
        return None
    try:
        value = int(raw)
    except ValueError:
        return None
    return value if value >= 0 else None


class HttpBlobClient:
    """HEAD/GET access to delivered blobs over HTTP."""

    def __init__(self, timeout_s: float = 10.0, client: httpx.AsyncClient | None = None):
        self._client = client or httpx.AsyncClient(timeout=timeout_s, follow_redirects=True)

    async def head_url(self, url: str) -> HeadResult:
        try:
            response = await self._client.head(url)
        except httpx.HTTPError as exc:
            logger.warning("blob_head_failed error=%s", exc.__class__.__name__)
            return HeadResult(ok=False, status_code=0)
        return HeadResult(
            ok=response.is_success,
            status_code=response.status_code,
            content_length=_content_length(response),
        )

    async def get_url(self, url: str, max_bytes: int | None = None) -> bytes:
        chunks: list[bytes] = []
        total = 0
        try:
            async with self._client.stream("GET", url) as response:
                if not response.is_success:
                    raise BlobFetchError(f"Failed to fetch file: {response.status_code}", status_code=response.status_code)
                async for chunk in response.aiter_bytes(1024 * 64):
                    total += len(chunk)
                    if max_bytes is not None and total > max_bytes:
                        raise BlobTooLarge(total, max_bytes)
                    chunks.append(chunk)
        except httpx.HTTPError as exc:
            raise BlobFetchError(f"Failed to fetch file: {exc.__class__.__name__}") from exc
        return b"".join(chunks)

    async def aclose(self) -> None:
        await self._client.aclose()
