from __future__ import annotations

import base64
from typing import Any, Awaitable, Optional, TypeVar

import openai
from openai import AsyncOpenAI

from app.ai.types import InlinePayload, ProviderRateLimited, ProviderRejected, RemoteAttemptOutcome, StoredFile

T = TypeVar("T")

_FILE_STATES = {"processed": "ACTIVE", "error": "FAILED"}
_EXTENSIONS = {
    "application/pdf": "pdf",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": "docx",
    "text/plain": "txt",
}


def _filename(mime_type: str) -> str:
    return f"resume.{_EXTENSIONS.get(mime_type, 'bin')}"


def _retry_after_seconds(exc: openai.APIStatusError) -> float | None:
    headers = getattr(exc.response, "headers", None) or {}
    raw_ms = headers.get("retry-after-ms")
    if raw_ms:
        try:
            return max(0.0, float(raw_ms) / 1000)
        except ValueError:
            pass
    raw = headers.get("retry-after")
    if raw:
        try:
            return max(0.0, float(raw))
        except ValueError:
            return None
    return None


async def _translated(call: Awaitable[T]) -> T:
    try:
        return await call
    except openai.RateLimitError as exc:
        raise ProviderRateLimited(str(exc), retry_after_s=_retry_after_seconds(exc)) from exc
    except openai.BadRequestError as exc:
        raise ProviderRejected(str(exc)) from exc


class OpenAIAnalysisTransport:
    def __init__(
        self,
        model: str,
        api_key: str,
        base_url: Optional[str] = None,
        timeout_s: float = 30.0,
        max_output_tokens: int = 1024,
        temperature: float = 0.2,
    ):
        self.model = model
        self._max_output_tokens = max_output_tokens
        self._temperature = temperature
        # Retries are owned by RemoteAnalysisClient.
        self._client = AsyncOpenAI(
            api_key=api_key,
            base_url=base_url or None,
            timeout=timeout_s,
            max_retries=0,
        )

    async def generate(
        self,
        prompt: str,
        *,
        inline: InlinePayload | None = None,
        stored: StoredFile | None = None,
    ) -> RemoteAttemptOutcome:
        content: list[dict[str, Any]] = []
        if stored is not None:
            content.append({"type": "file", "file": {"file_id": stored.name}})
        elif inline is not None:
            encoded = base64.b64encode(inline.data).decode("ascii")
            content.append(
                {
                    "type": "file",
                    "file": {
                        "filename": _filename(inline.mime_type),
                        "file_data": f"data:{inline.mime_type};base64,{encoded}",
                    },
                }
            )
        content.append({"type": "text", "text": prompt})

        response = await _translated(
            self._client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": content}],
                temperature=self._temperature,
                response_format={"type": "json_object"},
                max_tokens=self._max_output_tokens,
            )
        )

        if not response.choices:
            return RemoteAttemptOutcome(text="", finish_reason=None)
        choice = response.choices[0]
        message = choice.message
        return RemoteAttemptOutcome(
            text=(message.content or "").strip(),
            finish_reason=choice.finish_reason,
            safety_feedback=getattr(message, "refusal", None),
        )

    async def upload_file(self, data: bytes, mime_type: str) -> StoredFile:
        created = await _translated(
            self._client.files.create(
                file=(_filename(mime_type), data, mime_type),
                purpose="user_data",
            )
        )
        return StoredFile(name=created.id, state=_FILE_STATES.get(created.status, "PROCESSING"), mime_type=mime_type)

    async def get_file(self, name: str) -> StoredFile:
        current = await _translated(self._client.files.retrieve(name))
        return StoredFile(name=current.id, state=_FILE_STATES.get(current.status, "PROCESSING"))

    async def delete_file(self, name: str) -> None:
        await self._client.files.delete(name)
