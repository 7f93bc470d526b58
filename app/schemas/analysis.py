from __future__ import annotations

from datetime import datetime
from typing import Annotated, Literal

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, StrictInt, StrictStr, model_validator
from pydantic.alias_generators import to_camel

FallbackReason = Literal["QUOTA", "PARSE", "EMPTY", "EMPTY_PROD", "SAFETY"]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _version_text(value: object) -> object:
    # Cloudinary upload responses report the asset version as an integer.
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return value


AssetVersion = Annotated[str | None, BeforeValidator(_version_text)]


class AnalysisFeedback(CamelModel):
    positive: list[StrictStr]
    improvements: list[StrictStr]


class AnalysisKeywords(CamelModel):
    extracted: list[StrictStr]
    missing: list[StrictStr]


class AnalysisResult(CamelModel):
    """Scored analysis, identical in shape whether produced remotely or by the fallback scorer."""

    ats_score: StrictInt = Field(ge=0, le=100)
    feedback: AnalysisFeedback
    keywords: AnalysisKeywords


class InlineDocument(CamelModel):
    data: str = Field(min_length=1)
    mime_type: str = Field(min_length=1, max_length=256)


class AnalysisRequest(CamelModel):
    document_id: str = Field(min_length=1, max_length=200)
    keywords: list[str] | None = Field(default=None, max_length=100)
    inline: InlineDocument | None = None


class AnalysisOutcome(AnalysisResult):
    id: str
    document_id: str
    owner_id: str
    created_at: datetime
    used_fallback: bool = False
    fallback_reason: FallbackReason | None = None

    @model_validator(mode="after")
    def _fallback_reason_matches_flag(self) -> "AnalysisOutcome":
        if self.used_fallback != (self.fallback_reason is not None):
            raise ValueError("fallback_reason must be set if and only if used_fallback is true")
        return self


class AnalysisListResponse(CamelModel):
    analyses: list[AnalysisOutcome] = Field(default_factory=list)


class DocumentRecord(CamelModel):
    id: str
    owner_id: str
    file_name: str
    file_url: str
    file_size: int = Field(ge=0)
    mime_type: str
    public_id: str | None = None
    version: AssetVersion = None
    uploaded_at: datetime
    last_score: int | None = None
    last_analyzed_at: datetime | None = None


class DocumentCreateRequest(CamelModel):
    file_url: str = Field(min_length=1, max_length=2048)
    original_name: str = Field(min_length=1, max_length=512)
    mime_type: str = Field(min_length=1, max_length=256)
    size: int = Field(gt=0)
    public_id: str | None = Field(default=None, min_length=1, max_length=256)
    version: AssetVersion = Field(default=None, max_length=64)


class DocumentListResponse(CamelModel):
    documents: list[DocumentRecord] = Field(default_factory=list)
