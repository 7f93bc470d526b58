"""Analysis orchestration.

One request moves through SIZE_CHECK, SOURCE_RESOLUTION, REMOTE_ATTEMPT,
SUCCESS or FALLBACK, then PERSIST. Remote failures never surface to the
caller: they become a fallback result tagged with a ``fallback_reason``.
Source failures do surface, since without bytes there is nothing to score.
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime
from typing import Callable, Protocol, Sequence

from app.analysis.errors import EMPTY_CODE, EMPTY_PROD_CODE, SAFETY_CODE, ParseError, QuotaError
from app.analysis.score import build_fallback_result
from app.analysis.source import DocumentSourceResolver, ResolvedSource
from app.analysis.state import RemoteStateStore, make_cache_key
from app.parsing.parse import extract_text
from app.schemas.analysis import (
    AnalysisOutcome,
    AnalysisRequest,
    AnalysisResult,
    DocumentRecord,
    FallbackReason,
)

logger = logging.getLogger(__name__)

DEFAULT_KEYWORDS = ("javascript", "react", "node", "typescript", "nextjs")

_PARSE_ERROR_REASONS: dict[str, FallbackReason] = {
    EMPTY_CODE: "EMPTY",
    EMPTY_PROD_CODE: "EMPTY_PROD",
    SAFETY_CODE: "SAFETY",
}


class DocumentNotFound(LookupError):
    code = "NOT_FOUND"


class AnalysisSizeExceeded(RuntimeError):
    code = "SIZE_EXCEEDED"

    def __init__(self, size: int, limit: int):
        super().__init__(f"File exceeds the maximum analyzable size of {limit // (1024 * 1024) or 1} MB.")
        self.size = size
        self.limit = limit


class DocumentRepository(Protocol):
    def find_document(self, document_id: str) -> DocumentRecord | None: ...

    def create_analysis_record(
        self,
        *,
        document_id: str,
        owner_id: str,
        result: AnalysisResult,
        used_fallback: bool,
        fallback_reason: FallbackReason | None,
    ) -> AnalysisOutcome: ...

    def update_document_analysis_meta(self, document_id: str, score: int, analyzed_at: datetime) -> None: ...


class RemoteAnalyzer(Protocol):
    @property
    def model(self) -> str: ...

    async def analyze(
        self,
        document_bytes: bytes,
        mime_type: str,
        keywords: Sequence[str] | None = None,
    ) -> AnalysisResult: ...


def normalize_keywords(keywords: Sequence[str] | None) -> list[str]:
    if not keywords:
        return list(DEFAULT_KEYWORDS)
    return [keyword.strip() for keyword in keywords if keyword.strip()]


def classify_failure(exc: BaseException) -> FallbackReason:
    if isinstance(exc, QuotaError):
        return "QUOTA"
    if isinstance(exc, ParseError):
        return _PARSE_ERROR_REASONS.get(exc.code, "PARSE")
    return "PARSE"


class AnalysisOrchestrator:
    def __init__(
        self,
        repository: DocumentRepository,
        resolver: DocumentSourceResolver,
        remote: RemoteAnalyzer | None,
        *,
        max_file_bytes: int,
        text_extractor: Callable[[bytes, str], str] = extract_text,
        state: RemoteStateStore | None = None,
    ):
        self._repository = repository
        self._resolver = resolver
        self._remote = remote
        self._max_file_bytes = max_file_bytes
        self._text_extractor = text_extractor
        self._state = state

    async def run(self, request: AnalysisRequest, owner_id: str) -> AnalysisOutcome:
        started = time.perf_counter()
        document = self._repository.find_document(request.document_id)
        if document is None or document.owner_id != owner_id:
            raise DocumentNotFound("CV not found")

        if document.file_size > self._max_file_bytes:
            raise AnalysisSizeExceeded(document.file_size, self._max_file_bytes)

        keywords = normalize_keywords(request.keywords)
        source = await self._resolver.resolve(document, request.inline)
        result, reason = await self._analyze(document, source, keywords)

        outcome = self._repository.create_analysis_record(
            document_id=document.id,
            owner_id=owner_id,
            result=result,
            used_fallback=reason is not None,
            fallback_reason=reason,
        )
        self._repository.update_document_analysis_meta(document.id, outcome.ats_score, outcome.created_at)

        logger.info(
            "analysis_completed document_id=%s origin=%s used_fallback=%s reason=%s score=%s latency_ms=%s",
            document.id,
            source.origin,
            outcome.used_fallback,
            outcome.fallback_reason,
            outcome.ats_score,
            int((time.perf_counter() - started) * 1000),
        )
        return outcome

    async def _analyze(
        self,
        document: DocumentRecord,
        source: ResolvedSource,
        keywords: list[str],
    ) -> tuple[AnalysisResult, FallbackReason | None]:
        if self._remote is None:
            # Unconfigured remote shares the PARSE tag with malformed output.
            logger.info("analysis_fallback document_id=%s reason=PARSE cause=remote_unconfigured", document.id)
            return await self._fallback(source, keywords), "PARSE"

        # Inline bytes may differ from the stored file, so they never touch the cache.
        cacheable = self._state is not None and source.origin != "inline"
        cache_key = make_cache_key(document.id, keywords, self._remote.model)
        if cacheable:
            cached = self._state.get_cached(cache_key)
            if cached is not None:
                logger.info("analysis_cache_hit document_id=%s model=%s", document.id, self._remote.model)
                return cached, None

        try:
            result = await self._remote.analyze(source.data, source.mime_type, keywords)
        except Exception as exc:  # noqa: BLE001 - every remote failure degrades to the fallback scorer
            reason = classify_failure(exc)
            logger.warning(
                "analysis_fallback document_id=%s reason=%s error=%s code=%s",
                document.id,
                reason,
                exc.__class__.__name__,
                getattr(exc, "code", None) or getattr(exc, "reason", None),
            )
            return await self._fallback(source, keywords), reason

        if cacheable:
            self._state.set_cached(cache_key, result)
        return result, None

    async def _fallback(self, source: ResolvedSource, keywords: list[str]) -> AnalysisResult:
        text = await asyncio.to_thread(self._text_extractor, source.data, source.mime_type)
        return build_fallback_result(text, keywords)
