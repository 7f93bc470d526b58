from __future__ import annotations

import logging
from urllib.parse import quote, urlencode

import cloudinary
import cloudinary.utils

logger = logging.getLogger(__name__)


class SigningError(RuntimeError):
    pass


class CloudinaryUrlSigner:
    """Builds signed delivery URLs for authenticated raw assets."""

    def __init__(
        self,
        cloud_name: str | None,
        api_key: str | None,
        api_secret: str | None,
        signed_url_base: str | None = None,
    ):
        self._cloud_name = cloud_name
        self._api_key = api_key
        self._api_secret = api_secret
        self._signed_url_base = (signed_url_base or "").strip() or None
        self._configured = False

    def _configure(self) -> None:
        if not all([self._cloud_name, self._api_key, self._api_secret]):
            logger.error(
                "cloudinary_server_creds_missing has_cloud_name=%s has_api_key=%s has_api_secret=%s",
                bool(self._cloud_name),
                bool(self._api_key),
                bool(self._api_secret),
            )
            raise SigningError("CLOUDINARY_SERVER_CREDS_MISSING")
        if not self._configured:
            cloudinary.config(
                cloud_name=self._cloud_name,
                api_key=self._api_key,
                api_secret=self._api_secret,
                secure=True,
            )
            self._configured = True

    def _from_override(self, public_id: str, version: str | int | None) -> str:
        base = self._signed_url_base or ""
        version_value = "" if version is None else str(version)
        if "{publicId}" in base:
            url = base.replace("{publicId}", quote(public_id, safe=""))
            return url.replace("{version}", quote(version_value, safe=""))
        params = {"publicId": public_id}
        if version_value:
            params["version"] = version_value
        separator = "&" if "?" in base else "?"
        return f"{base}{separator}{urlencode(params)}"

    def sign_authenticated_url(self, public_id: str, version: str | int | None = None) -> str:
        if not public_id:
            raise SigningError("CLOUDINARY_PUBLIC_ID_MISSING")
        if self._signed_url_base:
            return self._from_override(public_id, version)

        self._configure()
        options: dict = {
            "resource_type": "raw",
            "type": "authenticated",
            "sign_url": True,
            "secure": True,
        }
        if version is not None and version != "":
            options["version"] = version
        url, _ = cloudinary.utils.cloudinary_url(public_id, **options)
        return url
