from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from docgate.errors import InternalError


# storage_kind column is the tag; a path or URL is never inspected to pick a backend
class StorageKind(StrEnum):
    REMOTE = "remote"
    LOCAL = "local"


@dataclass(frozen=True)
class RemoteRef:
    id: str
    web_url: str | None = None

    kind = StorageKind.REMOTE

    def to_columns(self) -> dict[str, Any]:
        return {
            "storage_kind": self.kind.value,
            "remote_id": self.id,
            "remote_url": self.web_url,
            "local_path": None,
        }


@dataclass(frozen=True)
class LocalRef:
    relative_path: str

    kind = StorageKind.LOCAL

    def to_columns(self) -> dict[str, Any]:
        return {
            "storage_kind": self.kind.value,
            "remote_id": None,
            "remote_url": None,
            "local_path": self.relative_path,
        }


StorageRef = RemoteRef | LocalRef


def ref_from_columns(storage_kind: str | None, remote_id: str | None, remote_url: str | None,
                     local_path: str | None) -> StorageRef:
    try:
        kind = StorageKind(storage_kind)
    except ValueError:
        raise InternalError(f"Unknown storage kind {storage_kind!r}") from None

    if kind is StorageKind.REMOTE:
        if not remote_id:
            raise InternalError("Remote reference without id")
        return RemoteRef(id=remote_id, web_url=remote_url)
    if not local_path:
        raise InternalError("Local reference without path")
    return LocalRef(relative_path=local_path)


def ref_from_document(doc) -> StorageRef:
    return ref_from_columns(doc.storage_kind, doc.remote_id, doc.remote_url, doc.local_path)


def ref_to_dict(ref: StorageRef) -> dict[str, Any]:
    if isinstance(ref, RemoteRef):
        return {"kind": ref.kind.value, "id": ref.id, "webUrl": ref.web_url}
    return {"kind": ref.kind.value, "relativePath": ref.relative_path}
