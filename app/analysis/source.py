from __future__ import annotations

import base64
import binascii
import logging
from dataclasses import dataclass
from typing import Literal, Protocol

from app.integrations.blob_delivery import BlobFetchError, BlobTooLarge, HeadResult
from app.integrations.cloudinary_signing import SigningError
from app.schemas.analysis import DocumentRecord, InlineDocument

logger = logging.getLogger(__name__)

DOCUMENT_MIME_TYPES = frozenset(
    {
        "application/pdf",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    }
)
LEGACY_DELIVERY_SEGMENT = "/image/upload/"
DOCUMENT_DELIVERY_SEGMENT = "/raw/upload/"

SourceOrigin = Literal["inline", "public", "signed"]


class InvalidInlineBytes(ValueError):
    code = "INVALID_INLINE_BYTES"


class SourceTooLarge(RuntimeError):
    code = "SIZE_EXCEEDED"

    def __init__(self, size: int, limit: int):
        super().__init__(f"Document exceeds the maximum analyzable size of {limit} bytes.")
        self.size = size
        self.limit = limit


class SourceFetchFailed(RuntimeError):
    code = "GATEWAY_FETCH_FAILED"


class BlobClient(Protocol):
    async def head_url(self, url: str) -> HeadResult: ...

    async def get_url(self, url: str, max_bytes: int | None = None) -> bytes: ...


class UrlSigner(Protocol):
    def sign_authenticated_url(self, public_id: str, version: str | int | None = None) -> str: ...


@dataclass(frozen=True)
class ResolvedSource:
    data: bytes
    mime_type: str
    origin: SourceOrigin


def delivery_url(document: DocumentRecord) -> str:
    """Public delivery URL, correcting image-path uploads of document files."""
    url = document.file_url
    if document.mime_type in DOCUMENT_MIME_TYPES and LEGACY_DELIVERY_SEGMENT in url:
        return url.replace(LEGACY_DELIVERY_SEGMENT, DOCUMENT_DELIVERY_SEGMENT, 1)
    return url


def decode_inline(payload: InlineDocument) -> bytes:
    compact = "".join(payload.data.split())
    try:
        data = base64.b64decode(compact, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise InvalidInlineBytes("Inline document bytes are not valid base64.") from exc
    if not data:
        raise InvalidInlineBytes("Inline document bytes are empty.")
    return data


class DocumentSourceResolver:
    def __init__(self, blob_client: BlobClient, signer: UrlSigner, max_bytes: int):
        self._blob_client = blob_client
        self._signer = signer
        self._max_bytes = max_bytes

    async def resolve(self, document: DocumentRecord, inline: InlineDocument | None = None) -> ResolvedSource:
        if inline is not None:
            data = decode_inline(inline)
            if len(data) > self._max_bytes:
                raise SourceTooLarge(len(data), self._max_bytes)
            mime_type = inline.mime_type.strip() or document.mime_type
            return ResolvedSource(data=data, mime_type=mime_type, origin="inline")

        url, origin = await self._probe(document)
        try:
            data = await self._blob_client.get_url(url, max_bytes=self._max_bytes)
        except BlobTooLarge as exc:
            raise SourceTooLarge(exc.size, self._max_bytes) from exc
        except BlobFetchError as exc:
            raise SourceFetchFailed(str(exc)) from exc
        if len(data) > self._max_bytes:
            raise SourceTooLarge(len(data), self._max_bytes)
        return ResolvedSource(data=data, mime_type=document.mime_type, origin=origin)

    async def _probe(self, document: DocumentRecord) -> tuple[str, SourceOrigin]:
        public_url = delivery_url(document)
        head = await self._blob_client.head_url(public_url)
        if head.ok:
            self._check_reported_size(head)
            return public_url, "public"

        logger.info("source_probe_failed document_id=%s kind=public status=%s", document.id, head.status_code)
        if not document.public_id:
            raise SourceFetchFailed("Document is not publicly reachable and has no signable identifier.")

        try:
            signed_url = self._signer.sign_authenticated_url(document.public_id, document.version)
        except SigningError as exc:
            raise SourceFetchFailed(f"Unable to sign document URL: {exc}") from exc

        head = await self._blob_client.head_url(signed_url)
        if not head.ok:
            logger.warning("source_probe_failed document_id=%s kind=signed status=%s", document.id, head.status_code)
            raise SourceFetchFailed(f"Document could not be fetched (status {head.status_code}).")
        self._check_reported_size(head)
        return signed_url, "signed"

    def _check_reported_size(self, head: HeadResult) -> None:
        if head.content_length is not None and head.content_length > self._max_bytes:
            raise SourceTooLarge(head.content_length, self._max_bytes)
