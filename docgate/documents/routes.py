
import logging
import mimetypes
from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session
from docgate.config import settings
from docgate.auth.deps import current_session, enforce, get_db, optional_session, require
from docgate.auth.gate import Module, SessionContext, read, write
from docgate.documents.service import (
    create_document_record,
    delete_document_record,
    find_document_by_local_path,
    get_billing_or_404,
    get_document_by_id,
    get_resident_or_404,
    list_resident_documents,
)
from docgate.errors import ValidationError
from docgate.schemas.document import DocumentOut, StorageStatusOut
from docgate.storage.deps import get_artifact_resolver, get_storage_router
from docgate.storage.refs import LocalRef, RemoteRef, ref_from_document
from docgate.storage.resolver import ArtifactResolver
from docgate.storage.router import (
    OwnerKind,
    OwnerNamespace,
    StorageRouter,
    UploadRequest,
    clean_file_name,
    normalize_mime,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["documents"])


def _owner_module(owner_type: str) -> Module:
    return Module.BILLINGS if owner_type == OwnerKind.BILLING else Module.RESIDENTS


def _parse_id(raw: str | None, field: str) -> int:
    try:
        return int((raw or "").strip())
    except ValueError:
        raise ValidationError(f"{field} must be an integer") from None


async def _store_upload(
    db: Session,
    owner: OwnerNamespace,
    file: UploadFile,
    title: str,
    allowed_types: tuple[str, ...],
    session: SessionContext,
    storage: StorageRouter,
) -> DocumentOut:
    if file.size is not None and file.size > settings.max_upload_bytes:
        raise ValidationError(f"File exceeds the {settings.max_upload_bytes // (1024 * 1024)} MiB limit")
    content = await file.read()
    upload = UploadRequest(
        owner=owner,
        file_name=clean_file_name(file.filename),
        mime_type=normalize_mime(file.content_type),
        size_bytes=len(content),
        content=content,
    )
    upload.validate(settings.max_upload_bytes, allowed_types)

    ref = await storage.store(upload)
    doc = create_document_record(
        db,
        owner,
        title=title,
        file_name=upload.file_name,
        file_size=upload.size_bytes,
        mime_type=upload.mime_type,
        storage_ref=ref,
        uploaded_by=session.user_id,
    )
    logger.info("document %s uploaded for %s", doc.id, owner.display_id, extra={"user_id": session.user_id})
    return DocumentOut.from_document(doc)


@router.post("/documents/upload", response_model=DocumentOut, status_code=201)
async def upload_document(
    file: UploadFile | None = File(None),
    title: str | None = Form(None),
    resident_id: str | None = Form(None, alias="residentId"),
    db: Session = Depends(get_db),
    session: SessionContext = Depends(require(write(Module.RESIDENTS))),
    storage: StorageRouter = Depends(get_storage_router),
):
    if file is None or not (title or "").strip() or not resident_id:
        raise ValidationError("File, title, and resident ID are required")
    resident = get_resident_or_404(db, _parse_id(resident_id, "residentId"))
    owner = OwnerNamespace(OwnerKind.RESIDENT, resident.id)
    return await _store_upload(db, owner, file, title.strip(), settings.document_mime_types, session, storage)


@router.post("/billings/{billing_id}/invoice", response_model=DocumentOut, status_code=201)
async def upload_invoice(
    billing_id: int,
    file: UploadFile | None = File(None),
    db: Session = Depends(get_db),
    session: SessionContext = Depends(require(write(Module.BILLINGS))),
    storage: StorageRouter = Depends(get_storage_router),
):
    if file is None:
        raise ValidationError("No file uploaded")
    billing = get_billing_or_404(db, billing_id)
    owner = OwnerNamespace(OwnerKind.BILLING, billing.id)
    return await _store_upload(
        db, owner, file, f"Invoice {owner.display_id}", settings.invoice_mime_types, session, storage
    )


# declared before /documents/{document_id} so "download" is not parsed as an id
@router.get("/documents/download")
async def download_by_path(
    path: str | None = Query(None),
    db: Session = Depends(get_db),
    session: SessionContext = Depends(current_session),
    resolver: ArtifactResolver = Depends(get_artifact_resolver),
):
    if not path:
        raise ValidationError("File path is required")
    ref = resolver.legacy_ref(path)
    doc = find_document_by_local_path(db, ref.relative_path)
    if doc is not None:
        content_type, file_name = doc.mime_type, doc.file_name
    else:
        file_name = ref.relative_path.rsplit("/", 1)[-1]
        content_type = mimetypes.guess_type(file_name)[0] or "application/octet-stream"
    artifact = await resolver.open(ref, content_type, file_name)
    return StreamingResponse(artifact.body, media_type=artifact.content_type, headers=artifact.headers)


@router.get("/documents/{document_id}", response_model=DocumentOut)
def get_document(
    document_id: int,
    request: Request,
    db: Session = Depends(get_db),
    session: SessionContext | None = Depends(optional_session),
):
    enforce(session, read(Module.RESIDENTS), request.url.path)
    doc = get_document_by_id(db, document_id)
    enforce(session, read(_owner_module(doc.owner_type)), request.url.path)
    return DocumentOut.from_document(doc)


@router.get("/documents/{document_id}/download")
async def download_document(
    document_id: int,
    db: Session = Depends(get_db),
    session: SessionContext = Depends(current_session),
    resolver: ArtifactResolver = Depends(get_artifact_resolver),
):
    doc = get_document_by_id(db, document_id)
    artifact = await resolver.open(ref_from_document(doc), doc.mime_type, doc.file_name)
    return StreamingResponse(artifact.body, media_type=artifact.content_type, headers=artifact.headers)


@router.delete("/documents/{document_id}")
async def delete_document(
    document_id: int,
    request: Request,
    db: Session = Depends(get_db),
    session: SessionContext | None = Depends(optional_session),
    resolver: ArtifactResolver = Depends(get_artifact_resolver),
):
    enforce(session, write(Module.RESIDENTS), request.url.path)
    doc = get_document_by_id(db, document_id)
    enforce(session, write(_owner_module(doc.owner_type)), request.url.path)

    ref = ref_from_document(doc)
    # record goes first: a leftover artifact is harmless, a dangling record is not
    delete_document_record(db, doc)
    try:
        if isinstance(ref, RemoteRef):
            if resolver.remote is not None:
                await resolver.remote.delete(ref.id)
            else:
                logger.warning("remote artifact %s left in place, no remote backend configured", ref.id)
        elif isinstance(ref, LocalRef):
            await resolver.local.delete(ref.relative_path)
    except Exception:
        logger.error("artifact cleanup for document %s failed", document_id, exc_info=True)
    return {"message": "Document deleted successfully"}


@router.get("/residents/{resident_id}/documents", response_model=list[DocumentOut])
def resident_documents(
    resident_id: int,
    db: Session = Depends(get_db),
    session: SessionContext = Depends(require(read(Module.RESIDENTS))),
):
    get_resident_or_404(db, resident_id)
    return [DocumentOut.from_document(d) for d in list_resident_documents(db, resident_id)]


@router.get("/settings/file-storage", response_model=StorageStatusOut)
def file_storage_status(session: SessionContext = Depends(require(write(Module.ROOMS)))):
    return StorageStatusOut(
        storage_type=settings.storage_type,
        oauth_configured=settings.oauth_configured,
        service_account_configured=bool(settings.google_service_account_key.strip()),
        root_folder_configured=bool(settings.google_drive_root_folder_id),
        google_drive_active=settings.remote_configured,
    )
