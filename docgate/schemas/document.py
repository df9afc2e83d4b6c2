
from datetime import datetime
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from docgate.storage.refs import ref_from_document, ref_to_dict


class DocumentOut(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: int
    owner_type: str
    resident_id: int | None = None
    billing_id: int | None = None
    title: str
    file_name: str
    file_size: int
    mime_type: str
    storage: dict
    created_at: datetime | None = None

    @classmethod
    def from_document(cls, doc) -> "DocumentOut":
        return cls(
            id=doc.id,
            owner_type=doc.owner_type,
            resident_id=doc.resident_id,
            billing_id=doc.billing_id,
            title=doc.title,
            file_name=doc.file_name,
            file_size=doc.file_size,
            mime_type=doc.mime_type,
            storage=ref_to_dict(ref_from_document(doc)),
            created_at=doc.created_at,
        )


class StorageStatusOut(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    storage_type: str
    oauth_configured: bool
    service_account_configured: bool
    root_folder_configured: bool
    google_drive_active: bool
