import sys
import unittest
from pathlib import Path
from unittest.mock import patch

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from app.integrations.cloudinary_signing import CloudinaryUrlSigner, SigningError  # noqa: E402


class CloudinaryUrlSignerTests(unittest.TestCase):
    def test_missing_public_id(self):
        signer = CloudinaryUrlSigner("demo", "key", "secret")
        with self.assertRaises(SigningError) as ctx:
            signer.sign_authenticated_url("")
        self.assertEqual(str(ctx.exception), "CLOUDINARY_PUBLIC_ID_MISSING")

    def test_missing_credentials(self):
        signer = CloudinaryUrlSigner("demo", None, "secret")
        with self.assertLogs("app.integrations.cloudinary_signing", level="ERROR"):
            with self.assertRaises(SigningError) as ctx:
                signer.sign_authenticated_url("resumes/cv.pdf")
        self.assertEqual(str(ctx.exception), "CLOUDINARY_SERVER_CREDS_MISSING")

    def test_signs_authenticated_raw_url(self):
        signer = CloudinaryUrlSigner("demo", "key", "secret")
        with patch("cloudinary.config") as config, patch(
            "cloudinary.utils.cloudinary_url",
            return_value=("https://res.cloudinary.com/demo/raw/authenticated/s--sig--/v3/resumes/cv.pdf", {}),
        ) as build_url:
            url = signer.sign_authenticated_url("resumes/cv.pdf", "3")
            signer.sign_authenticated_url("resumes/other.pdf")

        self.assertIn("/raw/authenticated/", url)
        config.assert_called_once()
        first_kwargs = build_url.call_args_list[0].kwargs
        self.assertEqual(first_kwargs["resource_type"], "raw")
        self.assertEqual(first_kwargs["type"], "authenticated")
        self.assertTrue(first_kwargs["sign_url"])
        self.assertEqual(first_kwargs["version"], "3")
        self.assertNotIn("version", build_url.call_args_list[1].kwargs)

    def test_override_base_with_placeholders(self):
        signer = CloudinaryUrlSigner(None, None, None, signed_url_base="https://proxy.example/files/{publicId}?v={version}")
        url = signer.sign_authenticated_url("resumes/cv.pdf", 7)
        self.assertEqual(url, "https://proxy.example/files/resumes%2Fcv.pdf?v=7")

    def test_override_base_with_query_params(self):
        signer = CloudinaryUrlSigner(None, None, None, signed_url_base="https://proxy.example/sign?token=abc")
        url = signer.sign_authenticated_url("resumes/cv.pdf", "2")
        self.assertEqual(url, "https://proxy.example/sign?token=abc&publicId=resumes%2Fcv.pdf&version=2")

    def test_override_base_without_version(self):
        signer = CloudinaryUrlSigner(None, None, None, signed_url_base="https://proxy.example/sign")
        self.assertEqual(signer.sign_authenticated_url("cv"), "https://proxy.example/sign?publicId=cv")


if __name__ == "__main__":
    unittest.main()
