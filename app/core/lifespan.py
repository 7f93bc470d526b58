from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass
import logging

from app.ai.factory import get_analysis_transport
from app.analysis.orchestrator import AnalysisOrchestrator
from app.analysis.remote import RemoteAnalysisClient
from app.analysis.source import DocumentSourceResolver
from app.analysis.state import RemoteStateStore
from app.core.analysis_store import AnalysisRepository
from app.core.config import Settings, settings
from app.core.throttle import RequestThrottle
from app.integrations.blob_delivery import HttpBlobClient
from app.integrations.cloudinary_signing import CloudinaryUrlSigner

logger = logging.getLogger(__name__)


@dataclass
class Services:
    repository: AnalysisRepository
    throttle: RequestThrottle
    state: RemoteStateStore
    blob_client: HttpBlobClient
    orchestrator: AnalysisOrchestrator

    async def aclose(self) -> None:
        await self.blob_client.aclose()
        self.repository.close()


def build_services(cfg: Settings) -> Services:
    repository = AnalysisRepository(cfg.analysis_db_path)
    state = RemoteStateStore(
        cooldown_seconds=cfg.ai_cooldown_seconds,
        cache_ttl_seconds=cfg.ai_cache_ttl_seconds,
    )
    blob_client = HttpBlobClient(timeout_s=cfg.blob_timeout_s)
    signer = CloudinaryUrlSigner(
        cloud_name=cfg.cloudinary_cloud_name,
        api_key=cfg.cloudinary_api_key,
        api_secret=cfg.cloudinary_api_secret,
        signed_url_base=cfg.cloudinary_signed_url_base,
    )

    transport = get_analysis_transport(cfg)
    remote = None
    if transport is not None:
        remote = RemoteAnalysisClient(
            transport,
            state=state,
            max_retries=cfg.ai_max_retries,
            max_backoff_ms=cfg.ai_max_backoff_ms,
            production=cfg.is_production,
            deadline_ms=cfg.analysis_deadline_ms,
        )
    else:
        logger.warning("remote_analysis_unconfigured provider=%s; using keyword fallback", cfg.ai_provider)

    orchestrator = AnalysisOrchestrator(
        repository,
        DocumentSourceResolver(blob_client, signer, max_bytes=cfg.max_file_bytes),
        remote,
        max_file_bytes=cfg.max_file_bytes,
        state=state,
    )
    return Services(
        repository=repository,
        throttle=RequestThrottle(limit=cfg.analysis_rate_limit, window_ms=cfg.analysis_rate_window_ms),
        state=state,
        blob_client=blob_client,
        orchestrator=orchestrator,
    )


@asynccontextmanager
async def lifespan(app):
    services = build_services(settings)
    app.state.services = services
    yield
    await services.aclose()
