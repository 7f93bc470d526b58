from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.analysis.orchestrator import AnalysisSizeExceeded, DocumentNotFound
from app.analysis.source import InvalidInlineBytes, SourceFetchFailed, SourceTooLarge
from app.api.v1.deps import current_user, get_services
from app.core.lifespan import Services
from app.schemas.analysis import AnalysisListResponse, AnalysisOutcome, AnalysisRequest

router = APIRouter()


def _error(status_code: int, code: str, message: str) -> HTTPException:
    return HTTPException(status_code=status_code, detail={"code": code, "message": message})


@router.post("/analyses", response_model=AnalysisOutcome, status_code=status.HTTP_201_CREATED)
async def create_analysis(
    payload: AnalysisRequest,
    user_id: str = Depends(current_user),
    services: Services = Depends(get_services),
):
    if not services.throttle.allow(user_id):
        raise _error(
            status.HTTP_429_TOO_MANY_REQUESTS,
            "RATE_LIMITED",
            "Too many analysis requests. Please wait a minute and try again.",
        )

    try:
        return await services.orchestrator.run(payload, owner_id=user_id)
    except DocumentNotFound as exc:
        raise _error(status.HTTP_404_NOT_FOUND, exc.code, str(exc)) from exc
    except InvalidInlineBytes as exc:
        raise _error(status.HTTP_400_BAD_REQUEST, exc.code, str(exc)) from exc
    except (AnalysisSizeExceeded, SourceTooLarge) as exc:
        raise _error(status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, exc.code, str(exc)) from exc
    except SourceFetchFailed as exc:
        raise _error(status.HTTP_502_BAD_GATEWAY, exc.code, str(exc)) from exc


@router.get("/analyses", response_model=AnalysisListResponse)
async def list_analyses(
    document_id: str = Query(alias="documentId", min_length=1),
    user_id: str = Depends(current_user),
    services: Services = Depends(get_services),
):
    document = services.repository.find_document(document_id)
    if document is None or document.owner_id != user_id:
        return AnalysisListResponse(analyses=[])
    return AnalysisListResponse(analyses=services.repository.list_analyses(document_id))
