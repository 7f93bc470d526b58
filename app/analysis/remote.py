from __future__ import annotations

import asyncio
import json
import logging
import random
import re
import time
from functools import partial
from typing import Any, Awaitable, Callable, Sequence, TypeVar

from pydantic import ValidationError

from app.ai.types import (
    AnalysisTransport,
    InlinePayload,
    ProviderRateLimited,
    ProviderRejected,
    RemoteAttemptOutcome,
    StoredFile,
)
from app.analysis.errors import EMPTY_CODE, EMPTY_PROD_CODE, SAFETY_CODE, TIMEOUT_CODE, ParseError, QuotaError
from app.analysis.state import RemoteStateStore
from app.schemas.analysis import AnalysisResult

logger = logging.getLogger(__name__)

T = TypeVar("T")

ANALYSIS_PROMPT = (
    "You are an applicant tracking system reviewing the attached resume. "
    "Return strict JSON only, no prose and no markdown, with exactly this shape: "
    '{"atsScore": <integer 0-100>, '
    '"feedback": {"positive": [<string>], "improvements": [<string>]}, '
    '"keywords": {"extracted": [<string>], "missing": [<string>]}}. '
    "atsScore rates how well the resume would pass an ATS screen for a software engineering role."
)

DEFAULT_BACKOFF_MS = (1000, 2000, 4000)
JITTER_MS = 200
FILE_POLL_ATTEMPTS = 5
FILE_POLL_BASE_MS = 200

_FENCE_RE = re.compile(r"```[A-Za-z0-9_+-]*[ \t]*\n?(.*?)```", re.DOTALL)


def _load_json(text: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass
    match = _FENCE_RE.search(text)
    if not match:
        raise ParseError("Remote analysis returned non-JSON content", code=EMPTY_CODE)
    try:
        return json.loads(match.group(1).strip())
    except json.JSONDecodeError as exc:
        raise ParseError("Remote analysis returned unreadable fenced content", code=EMPTY_CODE) from exc


def parse_analysis_payload(text: str) -> AnalysisResult:
    """Parse and validate a remote response, tolerating one fenced code block."""
    if not (text or "").strip():
        raise ParseError("Remote analysis returned an empty response", code=EMPTY_CODE)
    payload = _load_json(text.strip())
    try:
        return AnalysisResult.model_validate(payload)
    except ValidationError as exc:
        raise ParseError("Remote analysis response failed schema validation", code=EMPTY_CODE) from exc


def build_prompt(keywords: Sequence[str] | None = None) -> str:
    if not keywords:
        return ANALYSIS_PROMPT
    joined = ", ".join(keywords)
    return (
        f"{ANALYSIS_PROMPT} Target keywords: {joined}. "
        "List the target keywords found in the resume under keywords.extracted and the rest under keywords.missing."
    )


class RemoteAnalysisClient:
    def __init__(
        self,
        transport: AnalysisTransport,
        *,
        state: RemoteStateStore | None = None,
        max_retries: int = 3,
        max_backoff_ms: int = 8000,
        production: bool = False,
        deadline_ms: int = 7000,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], float] = time.time,
        rng: Callable[[], float] = random.random,
        file_poll_attempts: int = FILE_POLL_ATTEMPTS,
        file_poll_base_ms: int = FILE_POLL_BASE_MS,
    ):
        self._transport = transport
        self._state = state
        self._max_retries = max(1, max_retries)
        self._max_backoff_ms = max_backoff_ms
        self._production = production
        self._deadline_ms = deadline_ms
        self._sleep = sleep
        self._clock = clock
        self._wall_clock = wall_clock
        self._rng = rng
        self._file_poll_attempts = file_poll_attempts
        self._file_poll_base_ms = file_poll_base_ms
        self._detached: set[asyncio.Future] = set()

    @property
    def model(self) -> str:
        return self._transport.model

    async def analyze(
        self,
        document_bytes: bytes,
        mime_type: str,
        keywords: Sequence[str] | None = None,
    ) -> AnalysisResult:
        self._ensure_no_cooldown()
        prompt = build_prompt(keywords)
        deadline = self._clock() + self._deadline_ms / 1000 if self._production else None

        inline = InlinePayload(data=document_bytes, mime_type=mime_type)
        first = await self._run_phase("inline", lambda: self._generate(prompt, inline=inline), deadline)
        if first.sufficient:
            return parse_analysis_payload(first.text)
        self._log_insufficient("inline", first)

        second = await self._run_phase(
            "stored",
            lambda: self._submit_stored(prompt, document_bytes, mime_type),
            deadline,
        )
        if second.sufficient:
            return parse_analysis_payload(second.text)
        self._log_insufficient("stored", second)

        code = EMPTY_PROD_CODE if self._production else EMPTY_CODE
        raise ParseError("Remote analysis returned no usable content", code=code)

    def _ensure_no_cooldown(self) -> None:
        if self._state is None:
            return
        remaining = self._state.cooldown_remaining(self.model)
        if remaining > 0:
            raise QuotaError(
                "Remote model cooling down",
                reason="COOLDOWN",
                retry_at=self._wall_clock() + remaining,
            )

    def _log_insufficient(self, phase: str, outcome: RemoteAttemptOutcome) -> None:
        logger.warning(
            "remote_phase_insufficient phase=%s model=%s finish_reason=%s text_len=%s safety=%s",
            phase,
            self.model,
            outcome.finish_reason,
            len(outcome.text),
            outcome.safety_feedback,
        )

    async def _run_phase(
        self,
        phase: str,
        start: Callable[[], Awaitable[RemoteAttemptOutcome]],
        deadline: float | None,
    ) -> RemoteAttemptOutcome:
        if deadline is None:
            return await start()

        remaining = deadline - self._clock()
        if remaining <= 0:
            raise ParseError(f"Remote analysis deadline reached before {phase} phase", code=TIMEOUT_CODE)

        task = asyncio.ensure_future(start())
        done, _pending = await asyncio.wait({task}, timeout=remaining)
        if task in done:
            return task.result()

        # Still running: detach it and let its result (and cleanup) land unobserved.
        self._detached.add(task)
        task.add_done_callback(self._forget_detached)
        logger.warning("remote_deadline_exceeded phase=%s model=%s", phase, self.model)
        raise ParseError(f"Remote analysis deadline reached during {phase} phase", code=TIMEOUT_CODE)

    def _forget_detached(self, task: asyncio.Future) -> None:
        self._detached.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.debug("remote_detached_phase_failed: %s", task.exception())

    def _backoff_ms(self, attempt: int, hint_s: float | None) -> float:
        if hint_s is not None:
            base = hint_s * 1000
        else:
            base = DEFAULT_BACKOFF_MS[min(attempt, len(DEFAULT_BACKOFF_MS) - 1)]
            base += self._rng() * 2 * JITTER_MS - JITTER_MS
        return max(0.0, min(base, float(self._max_backoff_ms)))

    async def _generate(
        self,
        prompt: str,
        *,
        inline: InlinePayload | None = None,
        stored: StoredFile | None = None,
    ) -> RemoteAttemptOutcome:
        return await self._with_rate_limit(
            "generate",
            lambda: self._transport.generate(prompt, inline=inline, stored=stored),
        )

    async def _with_rate_limit(self, operation: str, call: Callable[[], Awaitable[T]]) -> T:
        """Run one provider call with bounded 429 retries; rejections become SAFETY."""
        attempt = 0
        while True:
            try:
                return await call()
            except ProviderRejected as exc:
                logger.warning("remote_rejected model=%s operation=%s: %s", self.model, operation, exc)
                raise ParseError("Remote analysis was rejected by the content policy", code=SAFETY_CODE) from exc
            except ProviderRateLimited as exc:
                delay_ms = self._backoff_ms(attempt, exc.retry_after_s)
                attempt += 1
                logger.warning(
                    "remote_rate_limited model=%s operation=%s attempt=%s delay_ms=%s hinted=%s",
                    self.model,
                    operation,
                    attempt,
                    int(delay_ms),
                    exc.retry_after_s is not None,
                )
                if attempt >= self._max_retries:
                    if self._state is not None:
                        self._state.start_cooldown(self.model)
                    retry_at = self._wall_clock() + exc.retry_after_s if exc.retry_after_s is not None else None
                    raise QuotaError("Remote analysis quota exceeded", retry_at=retry_at) from exc
                await self._sleep(delay_ms / 1000)

    async def _submit_stored(self, prompt: str, data: bytes, mime_type: str) -> RemoteAttemptOutcome:
        stored = await self._with_rate_limit("upload", lambda: self._transport.upload_file(data, mime_type))
        name = stored.name
        try:
            stored = await self._wait_until_active(stored)
            if not stored.active:
                logger.warning("remote_file_not_active name=%s state=%s", name, stored.state)
                return RemoteAttemptOutcome(text="", finish_reason=None)
            if stored.mime_type is None:
                stored = StoredFile(name=stored.name, state=stored.state, uri=stored.uri, mime_type=mime_type)
            return await self._generate(prompt, stored=stored)
        finally:
            await self._delete_quietly(name)

    async def _wait_until_active(self, stored: StoredFile) -> StoredFile:
        current = stored
        delay_ms = self._file_poll_base_ms
        for _ in range(self._file_poll_attempts):
            if current.active or current.state.upper() == "FAILED":
                return current
            await self._sleep(delay_ms / 1000)
            delay_ms *= 2
            current = await self._with_rate_limit("poll", partial(self._transport.get_file, current.name))
        return current

    async def _delete_quietly(self, name: str) -> None:
        try:
            await self._transport.delete_file(name)
        except Exception as exc:  # noqa: BLE001 - cleanup is best effort
            logger.warning("remote_file_delete_failed name=%s: %s", name, exc)
