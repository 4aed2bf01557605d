from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Request, UploadFile, status
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession

from loandesk.api import deps
from loandesk.core.limiter import limiter, upload_limit
from loandesk.core.settings import settings
from loandesk.db.session import get_db
from loandesk.schemas.common import DocumentType, IdCardType
from loandesk.schemas.documents import (
    DocumentDownloadResponse,
    DocumentListResponse,
    DocumentOut,
    DocumentReviewRequest,
)
from loandesk.services import documents as document_service
from loandesk.services.storage.adapter import verify_local_url_signature
from loandesk.services.storage.service import get_local_adapter

router = APIRouter(prefix="/documents", tags=["documents"])


@router.get("", response_model=DocumentListResponse)
async def list_documents(
    application_id: UUID | None = Query(default=None),
    db: AsyncSession = Depends(get_db),
    principal: deps.Principal = Depends(deps.get_principal),
) -> DocumentListResponse:
    items = await document_service.list_documents(db, principal, application_id=application_id)
    return DocumentListResponse(
        items=[DocumentOut.model_validate(item) for item in items],
        total=len(items),
    )


@router.post("", response_model=DocumentOut, status_code=status.HTTP_201_CREATED)
@limiter.limit(upload_limit)
async def upload_document(
    request: Request,
    application_id: UUID = Form(...),
    document_type: DocumentType = Form(...),
    id_card_type: IdCardType | None = Form(default=None),
    file: UploadFile | None = File(default=None),
    db: AsyncSession = Depends(get_db),
    principal: deps.Principal = Depends(deps.get_principal),
) -> DocumentOut:
    document = await document_service.upload_document(
        db,
        principal,
        application_id,
        document_type=document_type,
        file=file,
        id_card_type=id_card_type,
    )
    await db.commit()
    await db.refresh(document)
    return DocumentOut.model_validate(document)


@router.get("/local-content")
async def get_local_content(
    key: str = Query(...),
    expires: int = Query(...),
    signature: str = Query(...),
    db: AsyncSession = Depends(get_db),
    principal: deps.Principal = Depends(deps.get_principal),
):
    if not verify_local_url_signature(settings.secret_key, key, expires, signature):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid or expired URL signature",
        )
    document = await document_service.get_document_by_key(db, principal, key)
    if document.storage_provider != "local":
        raise HTTPException(status_code=404, detail="Document is not held in local storage")
    try:
        path = get_local_adapter().resolve_path(key)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    if not path.exists():
        raise HTTPException(status_code=404, detail="Stored file is missing")
    return FileResponse(path, media_type=document.content_type, filename=document.file_name)


@router.get("/{document_id}", response_model=DocumentOut)
async def get_document(
    document_id: UUID,
    db: AsyncSession = Depends(get_db),
    principal: deps.Principal = Depends(deps.get_principal),
) -> DocumentOut:
    document = await document_service.get_document(db, principal, document_id)
    return DocumentOut.model_validate(document)


@router.get("/{document_id}/download", response_model=DocumentDownloadResponse)
async def get_document_download(
    document_id: UUID,
    db: AsyncSession = Depends(get_db),
    principal: deps.Principal = Depends(deps.get_principal),
) -> DocumentDownloadResponse:
    document = await document_service.get_document(db, principal, document_id)
    return DocumentDownloadResponse(download_url=document_service.download_url(document))


@router.patch("/{document_id}", response_model=DocumentOut)
async def review_document(
    document_id: UUID,
    payload: DocumentReviewRequest,
    db: AsyncSession = Depends(get_db),
    principal: deps.Principal = Depends(deps.get_principal),
) -> DocumentOut:
    document = await document_service.review_document(
        db, principal, document_id, status=payload.status, notes=payload.notes
    )
    await db.commit()
    await db.refresh(document)
    return DocumentOut.model_validate(document)


@router.delete("/{document_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_document(
    document_id: UUID,
    db: AsyncSession = Depends(get_db),
    principal: deps.Principal = Depends(deps.get_principal),
) -> None:
    await document_service.delete_document(db, principal, document_id)
    await db.commit()
    return None
