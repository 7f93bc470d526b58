from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from app.api.v1.deps import current_user, get_services
from app.core.config import settings
from app.core.lifespan import Services
from app.schemas.analysis import DocumentCreateRequest, DocumentListResponse, DocumentRecord

router = APIRouter()


@router.post("/documents", response_model=DocumentRecord, status_code=status.HTTP_201_CREATED)
async def register_document(
    payload: DocumentCreateRequest,
    user_id: str = Depends(current_user),
    services: Services = Depends(get_services),
):
    if payload.mime_type not in settings.allowed_mime:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"code": "INVALID_FILE_TYPE", "message": "File type is not allowed."},
        )
    if payload.size > settings.max_file_bytes:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail={"code": "SIZE_EXCEEDED", "message": "File exceeds the maximum allowed size."},
        )

    return services.repository.create_document(
        owner_id=user_id,
        file_name=payload.original_name,
        file_url=payload.file_url,
        file_size=payload.size,
        mime_type=payload.mime_type,
        public_id=payload.public_id,
        version=payload.version,
    )


@router.get("/documents", response_model=DocumentListResponse)
async def list_documents(
    user_id: str = Depends(current_user),
    services: Services = Depends(get_services),
):
    return DocumentListResponse(documents=services.repository.list_documents(user_id))
