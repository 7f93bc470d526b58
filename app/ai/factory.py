from __future__ import annotations

from app.ai.types import AnalysisTransport
from app.core.config import Settings


def _looks_like_placeholder(value: str) -> bool:
    lower = value.strip().lower()
    return lower.startswith("your_") or lower.startswith("replace_") or lower in {"changeme", "todo"}


def _usable_key(value: str | None) -> str | None:
    key = (value or "").strip()
    if not key or _looks_like_placeholder(key):
        return None
    return key


def get_analysis_transport(cfg: Settings) -> AnalysisTransport | None:
    """Build the configured provider, or None when no credential is set."""
    if cfg.ai_provider == "openai":
        key = _usable_key(cfg.openai_api_key)
        if key is None:
            return None
        from app.ai.providers.openai_provider import OpenAIAnalysisTransport

        return OpenAIAnalysisTransport(
            model=cfg.ai_model,
            api_key=key,
            base_url=cfg.openai_base_url,
            timeout_s=cfg.ai_timeout_s,
            max_output_tokens=cfg.ai_max_output_tokens,
        )

    if cfg.ai_provider == "gemini":
        key = _usable_key(cfg.gemini_api_key)
        if key is None:
            return None
        from app.ai.providers.gemini_provider import GeminiAnalysisTransport

        return GeminiAnalysisTransport(
            model=cfg.ai_model,
            api_key=key,
            max_output_tokens=cfg.ai_max_output_tokens,
        )

    raise ValueError(f"Unsupported AI_PROVIDER='{cfg.ai_provider}'")
