import base64
import sys
import unittest
from datetime import datetime, timezone
from pathlib import Path

import httpx

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from app.analysis.source import (  # noqa: E402
    DocumentSourceResolver,
    InvalidInlineBytes,
    SourceFetchFailed,
    SourceTooLarge,
    decode_inline,
    delivery_url,
)
from app.integrations.blob_delivery import BlobFetchError, BlobTooLarge, HeadResult, HttpBlobClient  # noqa: E402
from app.integrations.cloudinary_signing import SigningError  # noqa: E402
from app.schemas.analysis import DocumentRecord, InlineDocument  # noqa: E402

PDF = "application/pdf"


def make_document(**overrides) -> DocumentRecord:
    values = {
        "id": "doc-1",
        "owner_id": "user-1",
        "file_name": "resume.pdf",
        "file_url": "https://res.cloudinary.com/demo/raw/upload/v1/resumes/resume.pdf",
        "file_size": 1024,
        "mime_type": PDF,
        "public_id": "resumes/resume.pdf",
        "version": "1",
        "uploaded_at": datetime(2024, 1, 1, tzinfo=timezone.utc),
    }
    values.update(overrides)
    return DocumentRecord(**values)


class FakeBlobClient:
    def __init__(self, heads=None, bodies=None, get_error=None):
        self.heads = heads or {}
        self.bodies = bodies or {}
        self.get_error = get_error
        self.head_calls = []
        self.get_calls = []

    async def head_url(self, url):
        self.head_calls.append(url)
        return self.heads.get(url, HeadResult(ok=False, status_code=404))

    async def get_url(self, url, max_bytes=None):
        self.get_calls.append((url, max_bytes))
        if self.get_error is not None:
            raise self.get_error
        return self.bodies[url]


class FakeSigner:
    def __init__(self, error=None):
        self.error = error
        self.calls = []

    def sign_authenticated_url(self, public_id, version=None):
        self.calls.append((public_id, version))
        if self.error is not None:
            raise self.error
        return f"https://signed.example/{public_id}?v={version}"


class InlineDecodingTests(unittest.TestCase):
    def test_decodes_base64_with_whitespace(self):
        encoded = base64.b64encode(b"%PDF-1.7 body").decode()
        payload = InlineDocument(data=f"{encoded[:8]}\n{encoded[8:]}", mime_type=PDF)
        self.assertEqual(decode_inline(payload), b"%PDF-1.7 body")

    def test_rejects_invalid_base64(self):
        with self.assertRaises(InvalidInlineBytes):
            decode_inline(InlineDocument(data="not base64!!", mime_type=PDF))

    def test_rejects_empty_payload(self):
        with self.assertRaises(InvalidInlineBytes):
            decode_inline(InlineDocument(data="   ", mime_type=PDF))


class DeliveryUrlTests(unittest.TestCase):
    def test_document_uploaded_under_image_path_is_rewritten(self):
        document = make_document(file_url="https://res.cloudinary.com/demo/image/upload/v1/resume.pdf")
        self.assertEqual(delivery_url(document), "https://res.cloudinary.com/demo/raw/upload/v1/resume.pdf")

    def test_other_mime_types_keep_their_url(self):
        url = "https://res.cloudinary.com/demo/image/upload/v1/photo.png"
        self.assertEqual(delivery_url(make_document(file_url=url, mime_type="image/png")), url)


class DocumentSourceResolverTests(unittest.IsolatedAsyncioTestCase):
    async def test_inline_bytes_skip_network(self):
        blob = FakeBlobClient()
        resolver = DocumentSourceResolver(blob, FakeSigner(), max_bytes=1024)
        inline = InlineDocument(data=base64.b64encode(b"hello").decode(), mime_type=PDF)

        source = await resolver.resolve(make_document(), inline)

        self.assertEqual(source.data, b"hello")
        self.assertEqual(source.origin, "inline")
        self.assertEqual(blob.head_calls, [])

    async def test_oversized_inline_bytes_are_rejected(self):
        resolver = DocumentSourceResolver(FakeBlobClient(), FakeSigner(), max_bytes=4)
        inline = InlineDocument(data=base64.b64encode(b"hello").decode(), mime_type=PDF)
        with self.assertRaises(SourceTooLarge):
            await resolver.resolve(make_document(), inline)

    async def test_public_url_is_used_when_reachable(self):
        document = make_document()
        blob = FakeBlobClient(
            heads={document.file_url: HeadResult(ok=True, status_code=200, content_length=5)},
            bodies={document.file_url: b"%PDF!"},
        )
        signer = FakeSigner()
        source = await DocumentSourceResolver(blob, signer, max_bytes=1024).resolve(document)

        self.assertEqual(source.origin, "public")
        self.assertEqual(source.data, b"%PDF!")
        self.assertEqual(source.mime_type, PDF)
        self.assertEqual(signer.calls, [])
        self.assertEqual(blob.get_calls, [(document.file_url, 1024)])

    async def test_signed_url_is_used_when_public_probe_fails(self):
        document = make_document()
        signed = "https://signed.example/resumes/resume.pdf?v=1"
        blob = FakeBlobClient(
            heads={signed: HeadResult(ok=True, status_code=200)},
            bodies={signed: b"%PDF signed"},
        )
        signer = FakeSigner()
        source = await DocumentSourceResolver(blob, signer, max_bytes=1024).resolve(document)

        self.assertEqual(source.origin, "signed")
        self.assertEqual(signer.calls, [("resumes/resume.pdf", "1")])
        self.assertEqual(blob.head_calls, [document.file_url, signed])

    async def test_unreachable_without_public_id_fails(self):
        blob = FakeBlobClient()
        with self.assertRaises(SourceFetchFailed):
            await DocumentSourceResolver(blob, FakeSigner(), max_bytes=1024).resolve(make_document(public_id=None))
        self.assertEqual(blob.get_calls, [])

    async def test_signing_failure_becomes_fetch_failure(self):
        signer = FakeSigner(error=SigningError("CLOUDINARY_SERVER_CREDS_MISSING"))
        with self.assertRaises(SourceFetchFailed):
            await DocumentSourceResolver(FakeBlobClient(), signer, max_bytes=1024).resolve(make_document())

    async def test_signed_probe_failure(self):
        with self.assertRaises(SourceFetchFailed):
            await DocumentSourceResolver(FakeBlobClient(), FakeSigner(), max_bytes=1024).resolve(make_document())

    async def test_reported_size_over_limit_skips_download(self):
        document = make_document()
        blob = FakeBlobClient(heads={document.file_url: HeadResult(ok=True, status_code=200, content_length=4096)})
        with self.assertRaises(SourceTooLarge) as ctx:
            await DocumentSourceResolver(blob, FakeSigner(), max_bytes=1024).resolve(document)
        self.assertEqual(ctx.exception.size, 4096)
        self.assertEqual(blob.get_calls, [])

    async def test_streamed_size_over_limit(self):
        document = make_document()
        blob = FakeBlobClient(
            heads={document.file_url: HeadResult(ok=True, status_code=200)},
            get_error=BlobTooLarge(2048, 1024),
        )
        with self.assertRaises(SourceTooLarge):
            await DocumentSourceResolver(blob, FakeSigner(), max_bytes=1024).resolve(document)

    async def test_download_failure(self):
        document = make_document()
        blob = FakeBlobClient(
            heads={document.file_url: HeadResult(ok=True, status_code=200)},
            get_error=BlobFetchError("Failed to fetch file: 500", status_code=500),
        )
        with self.assertRaises(SourceFetchFailed):
            await DocumentSourceResolver(blob, FakeSigner(), max_bytes=1024).resolve(document)


class HttpBlobClientTests(unittest.IsolatedAsyncioTestCase):
    def make_client(self, handler) -> HttpBlobClient:
        return HttpBlobClient(client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))

    async def test_head_reports_status_and_length(self):
        def handler(request):
            self.assertEqual(request.method, "HEAD")
            return httpx.Response(200, headers={"content-length": "42"})

        client = self.make_client(handler)
        try:
            head = await client.head_url("https://files.example/resume.pdf")
        finally:
            await client.aclose()
        self.assertTrue(head.ok)
        self.assertEqual(head.content_length, 42)

    async def test_head_transport_error_is_not_ok(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        client = self.make_client(handler)
        try:
            head = await client.head_url("https://files.example/resume.pdf")
        finally:
            await client.aclose()
        self.assertFalse(head.ok)
        self.assertEqual(head.status_code, 0)

    async def test_get_returns_body(self):
        client = self.make_client(lambda request: httpx.Response(200, content=b"%PDF-1.7"))
        try:
            body = await client.get_url("https://files.example/resume.pdf", max_bytes=1024)
        finally:
            await client.aclose()
        self.assertEqual(body, b"%PDF-1.7")

    async def test_get_non_success_raises(self):
        client = self.make_client(lambda request: httpx.Response(403))
        try:
            with self.assertRaises(BlobFetchError) as ctx:
                await client.get_url("https://files.example/resume.pdf")
        finally:
            await client.aclose()
        self.assertEqual(ctx.exception.status_code, 403)

    async def test_get_stops_past_limit(self):
        client = self.make_client(lambda request: httpx.Response(200, content=b"x" * 2048))
        try:
            with self.assertRaises(BlobTooLarge):
                await client.get_url("https://files.example/resume.pdf", max_bytes=1024)
        finally:
            await client.aclose()


if __name__ == "__main__":
    unittest.main()
