from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class RemoteAttemptOutcome:
    text: str
    finish_reason: str | None
    safety_feedback: str | None = None

    @property
    def sufficient(self) -> bool:
        return bool(self.text.strip()) and (self.finish_reason or "").lower() == "stop"


@dataclass(frozen=True)
class StoredFile:
    name: str
    state: str
    uri: str | None = None
    mime_type: str | None = None

    @property
    def active(self) -> bool:
        return self.state.upper() == "ACTIVE"


@dataclass(frozen=True)
class InlinePayload:
    data: bytes
    mime_type: str


class ProviderRateLimited(Exception):
    """Provider answered with a too-many-requests condition."""

    def __init__(self, message: str, retry_after_s: float | None = None):
        super().__init__(message)
        self.retry_after_s = retry_after_s


class ProviderRejected(Exception):
    """Provider refused the request (bad request / content policy)."""


class AnalysisTransport(Protocol):
    model: str

    async def generate(
        self,
        prompt: str,
        *,
        inline: InlinePayload | None = None,
        stored: StoredFile | None = None,
    ) -> RemoteAttemptOutcome: ...

    async def upload_file(self, data: bytes, mime_type: str) -> StoredFile: ...

    async def get_file(self, name: str) -> StoredFile: ...

    async def delete_file(self, name: str) -> None: ...
