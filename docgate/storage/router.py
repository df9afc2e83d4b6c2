import asyncio
import logging
from dataclasses import dataclass
from enum import StrEnum
from pathlib import PurePosixPath

from docgate.errors import StorageWriteFailed, ValidationError
from docgate.storage.gdrive import GoogleDriveBackend
from docgate.storage.local import LocalBackend
from docgate.storage.refs import StorageRef

logger = logging.getLogger(__name__)

MAX_FILE_NAME = 255


class OwnerKind(StrEnum):
    RESIDENT = "resident"
    BILLING = "billing"


@dataclass(frozen=True)
class OwnerNamespace:
    kind: OwnerKind
    entity_id: int

    @property
    def display_id(self) -> str:
        prefix = "R" if self.kind is OwnerKind.RESIDENT else "B"
        return f"{prefix}-{self.entity_id:05d}"

    @property
    def remote_folder(self) -> str:
        if self.kind is OwnerKind.RESIDENT:
            return f"residents/{self.display_id}/documents"
        return f"billings/{self.display_id}/invoices"

    @property
    def local_segment(self) -> str:
        if self.kind is OwnerKind.RESIDENT:
            return f"documents/{self.display_id}"
        return f"invoices/{self.display_id}"


def clean_file_name(raw: str | None) -> str:
    # browsers may send "C:\fakepath\x.pdf"; keep only the last component
    name = PurePosixPath((raw or "").replace("\\", "/")).name.strip()
    name = "".join(ch for ch in name if ch.isprintable())
    return name[:MAX_FILE_NAME]


def normalize_mime(raw: str | None) -> str:
    return (raw or "").split(";", 1)[0].strip().lower()


@dataclass(frozen=True)
class UploadRequest:
    owner: OwnerNamespace
    file_name: str
    mime_type: str
    size_bytes: int
    content: bytes

    def validate(self, max_bytes: int, allowed_types: tuple[str, ...]) -> None:
        if not self.file_name:
            raise ValidationError("File name is required")
        if self.size_bytes <= 0 or not self.content:
            raise ValidationError("File is empty")
        if self.size_bytes > max_bytes or len(self.content) > max_bytes:
            raise ValidationError(f"File exceeds the {max_bytes // (1024 * 1024)} MiB limit")
        if self.mime_type not in allowed_types:
            raise ValidationError(f"File type not allowed: {', '.join(allowed_types)} only")


class StorageRouter:
    def __init__(self, local: LocalBackend, remote: GoogleDriveBackend | None = None,
                 remote_timeout: float = 20.0):
        self.local = local
        self.remote = remote
        self.remote_timeout = remote_timeout

    async def store(self, request: UploadRequest) -> StorageRef:
        """Remote first if configured, then local exactly once. A local failure is final."""
        if self.remote is not None:
            try:
                ref = await asyncio.wait_for(
                    self.remote.upload(request.owner.remote_folder, request.file_name,
                                       request.mime_type, request.content),
                    timeout=self.remote_timeout,
                )
            except Exception:
                logger.warning(
                    "remote upload for %s failed, falling back to local storage",
                    request.owner.display_id, exc_info=True, extra={"backend": "google_drive"},
                )
            else:
                logger.info("stored %s for %s remotely", ref.id, request.owner.display_id,
                            extra={"backend": "google_drive"})
                return ref

        try:
            ref = await self.local.write(request.owner.local_segment, request.file_name, request.content)
        except Exception as e:
            logger.error("local write for %s failed", request.owner.display_id, exc_info=True,
                         extra={"backend": "local"})
            raise StorageWriteFailed() from e
        logger.info("stored %s locally", ref.relative_path, extra={"backend": "local"})
        return ref
