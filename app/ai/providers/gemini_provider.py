from __future__ import annotations

import io
import re
from typing import Any, Awaitable, TypeVar

from google import genai
from google.genai import errors, types

from app.ai.types import InlinePayload, ProviderRateLimited, ProviderRejected, RemoteAttemptOutcome, StoredFile

T = TypeVar("T")

_RETRY_INFO_TYPE = "type.googleapis.com/google.rpc.RetryInfo"
_DELAY_RE = re.compile(r"([0-9.]+)s")


def _enum_name(value: Any) -> str | None:
    if value is None:
        return None
    return getattr(value, "name", None) or str(value)


def _retry_delay_seconds(exc: errors.APIError) -> float | None:
    details = exc.details if isinstance(exc.details, dict) else {}
    error = details.get("error", details)
    entries = error.get("details") if isinstance(error, dict) else None
    for entry in entries or []:
        if not isinstance(entry, dict) or entry.get("@type") != _RETRY_INFO_TYPE:
            continue
        match = _DELAY_RE.search(str(entry.get("retryDelay", "")))
        if match:
            return max(0.0, float(match.group(1)))
    return None


async def _translated(call: Awaitable[T]) -> T:
    try:
        return await call
    except errors.ClientError as exc:
        if exc.code == 429:
            raise ProviderRateLimited(str(exc), retry_after_s=_retry_delay_seconds(exc)) from exc
        if exc.code == 400:
            raise ProviderRejected(str(exc)) from exc
        raise


def _to_stored(file: types.File) -> StoredFile:
    return StoredFile(
        name=file.name or "",
        state=_enum_name(file.state) or "STATE_UNSPECIFIED",
        uri=file.uri,
        mime_type=file.mime_type,
    )


class GeminiAnalysisTransport:
    def __init__(self, model: str, api_key: str, max_output_tokens: int = 1024, temperature: float = 0.2):
        self.model = model
        self._client = genai.Client(api_key=api_key)
        self._config = types.GenerateContentConfig(
            max_output_tokens=max_output_tokens,
            temperature=temperature,
            response_mime_type="application/json",
        )

    async def generate(
        self,
        prompt: str,
        *,
        inline: InlinePayload | None = None,
        stored: StoredFile | None = None,
    ) -> RemoteAttemptOutcome:
        contents: list[Any] = []
        if stored is not None:
            contents.append(types.Part.from_uri(file_uri=stored.uri or stored.name, mime_type=stored.mime_type))
        elif inline is not None:
            contents.append(types.Part.from_bytes(data=inline.data, mime_type=inline.mime_type))
        contents.append(prompt)

        response = await _translated(
            self._client.aio.models.generate_content(
                model=self.model,
                contents=contents,
                config=self._config,
            )
        )

        candidate = response.candidates[0] if response.candidates else None
        feedback = response.prompt_feedback
        return RemoteAttemptOutcome(
            text=(response.text or "").strip(),
            finish_reason=_enum_name(candidate.finish_reason) if candidate else None,
            safety_feedback=_enum_name(feedback.block_reason) if feedback else None,
        )

    async def upload_file(self, data: bytes, mime_type: str) -> StoredFile:
        uploaded = await _translated(
            self._client.aio.files.upload(
                file=io.BytesIO(data),
                config=types.UploadFileConfig(mime_type=mime_type),
            )
        )
        return _to_stored(uploaded)

    async def get_file(self, name: str) -> StoredFile:
        return _to_stored(await _translated(self._client.aio.files.get(name=name)))

    async def delete_file(self, name: str) -> None:
        await self._client.aio.files.delete(name=name)
