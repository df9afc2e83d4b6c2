
from sqlalchemy.orm import Session
from docgate.errors import NotFound
from docgate.models.document import Document
from docgate.models.resident import Billing, Resident
from docgate.storage.refs import StorageRef
from docgate.storage.router import OwnerKind, OwnerNamespace


def get_resident_or_404(db: Session, resident_id: int) -> Resident:
    resident = db.get(Resident, resident_id)
    if resident is None:
        raise NotFound("Resident not found")
    return resident


def get_billing_or_404(db: Session, billing_id: int) -> Billing:
    billing = db.get(Billing, billing_id)
    if billing is None:
        raise NotFound("Billing not found")
    return billing


def get_document_by_id(db: Session, document_id: int) -> Document:
    doc = db.get(Document, document_id)
    if doc is None:
        raise NotFound("Document not found")
    return doc


def find_document_by_local_path(db: Session, relative_path: str) -> Document | None:
    return db.query(Document).filter(
        Document.storage_kind == "local",
        Document.local_path == relative_path,
    ).first()


def list_resident_documents(db: Session, resident_id: int) -> list[Document]:
    return (db.query(Document)
              .filter(Document.resident_id == resident_id)
              .order_by(Document.created_at, Document.id)
              .all())


def create_document_record(
    db: Session,
    owner: OwnerNamespace,
    *,
    title: str,
    file_name: str,
    file_size: int,
    mime_type: str,
    storage_ref: StorageRef,
    uploaded_by: int | None = None,
) -> Document:
    """Persist metadata for bytes the storage router already confirmed."""
    doc = Document(
        owner_type=owner.kind.value,
        resident_id=owner.entity_id if owner.kind is OwnerKind.RESIDENT else None,
        billing_id=owner.entity_id if owner.kind is OwnerKind.BILLING else None,
        title=title,
        file_name=file_name,
        file_size=file_size,
        mime_type=mime_type,
        uploaded_by=uploaded_by,
        **storage_ref.to_columns(),
    )
    db.add(doc); db.commit(); db.refresh(doc)
    return doc


def delete_document_record(db: Session, doc: Document) -> None:
    db.delete(doc)
    db.commit()
