from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Sequence

from app.schemas.analysis import AnalysisFeedback, AnalysisKeywords, AnalysisResult


@dataclass(frozen=True)
class KeywordScore:
    score: int
    keywords_matched: list[str] = field(default_factory=list)


def _clamp_score(value: float) -> int:
    if value <= 0:
        return 0
    if value >= 100:
        return 100
    return int(math.floor(value + 0.5))


def _distinct_keywords(keywords: Sequence[str]) -> list[str]:
    seen: set[str] = set()
    distinct: list[str] = []
    for keyword in keywords:
        normalized = keyword.strip().lower()
        if not normalized or normalized in seen:
            continue
        seen.add(normalized)
        distinct.append(keyword.strip())
    return distinct


def score_keywords(text: str, keywords: Sequence[str]) -> KeywordScore:
    """Keyword coverage of ``text`` as a 0-100 score, case-insensitive, duplicates collapsed."""
    distinct = _distinct_keywords(keywords)
    if not distinct:
        return KeywordScore(score=0, keywords_matched=[])

    haystack = (text or "").lower()
    matches = [keyword for keyword in distinct if keyword.lower() in haystack]
    return KeywordScore(
        score=_clamp_score(100 * len(matches) / len(distinct)),
        keywords_matched=matches,
    )


def build_fallback_result(text: str, keywords: Sequence[str]) -> AnalysisResult:
    outcome = score_keywords(text, keywords)
    matched = {keyword.lower() for keyword in outcome.keywords_matched}
    missing = [keyword for keyword in _distinct_keywords(keywords) if keyword.lower() not in matched]

    positive = [f"Mentions {keyword}." for keyword in outcome.keywords_matched]
    improvements = [f"Consider adding experience with {keyword}." for keyword in missing]
    if not (text or "").strip():
        improvements.insert(0, "No readable text was found in this file.")

    return AnalysisResult(
        ats_score=outcome.score,
        feedback=AnalysisFeedback(positive=positive, improvements=improvements),
        keywords=AnalysisKeywords(extracted=list(outcome.keywords_matched), missing=missing),
    )
