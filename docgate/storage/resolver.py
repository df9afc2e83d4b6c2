import asyncio
import logging
from dataclasses import dataclass
from typing import AsyncIterator, assert_never
from urllib.parse import quote

from docgate.errors import RemoteFetchFailed
from docgate.storage.gdrive import GoogleDriveBackend
from docgate.storage.local import LocalBackend
from docgate.storage.refs import LocalRef, RemoteRef, StorageRef

logger = logging.getLogger(__name__)

LEGACY_PREFIX = "uploads/"


def content_disposition(file_name: str) -> str:
    cleaned = "".join(ch for ch in file_name if ch.isprintable() and ch not in '"\\')
    cleaned = cleaned.strip() or "download"
    ascii_name = cleaned.encode("ascii", "ignore").decode("ascii").strip() or "download"
    value = f'attachment; filename="{ascii_name}"'
    if ascii_name != cleaned:
        value += f"; filename*=UTF-8''{quote(cleaned, safe='')}"
    return value


def normalize_legacy_path(raw: str) -> str:
    """Map the old `/uploads/...` pointer form onto a path relative to the root."""
    path = raw.replace("\\", "/")
    if path.startswith("/"):
        path = path[1:]
    if path.startswith(LEGACY_PREFIX):
        path = path[len(LEGACY_PREFIX):]
    return path


@dataclass(frozen=True)
class ResolvedArtifact:
    body: AsyncIterator[bytes]
    content_type: str
    file_name: str

    @property
    def headers(self) -> dict[str, str]:
        return {
            "Content-Disposition": content_disposition(self.file_name),
            "X-Content-Type-Options": "nosniff",
        }


async def _single_chunk(data: bytes) -> AsyncIterator[bytes]:
    yield data


class ArtifactResolver:
    def __init__(self, local: LocalBackend, remote: GoogleDriveBackend | None = None,
                 remote_timeout: float = 20.0):
        self.local = local
        self.remote = remote
        self.remote_timeout = remote_timeout

    async def _fetch_remote(self, ref: RemoteRef) -> AsyncIterator[bytes]:
        if self.remote is None:
            logger.error("remote artifact %s requested but no remote backend is configured", ref.id)
            raise RemoteFetchFailed()
        try:
            data = await asyncio.wait_for(self.remote.download(ref.id), timeout=self.remote_timeout)
        except Exception as e:
            logger.error("remote fetch of %s failed", ref.id, exc_info=True, extra={"backend": "google_drive"})
            raise RemoteFetchFailed() from e
        return _single_chunk(data)

    def legacy_ref(self, raw_path: str) -> LocalRef:
        """Canonical LocalRef for an old `/uploads/...` string; InvalidPath if it escapes the root."""
        resolved = self.local.resolve(normalize_legacy_path(raw_path))
        return LocalRef(relative_path=resolved.relative_to(self.local.root.resolve()).as_posix())

    async def open(self, ref: StorageRef, content_type: str, file_name: str) -> ResolvedArtifact:
        match ref:
            case RemoteRef():
                body = await self._fetch_remote(ref)
            case LocalRef():
                body = await self.local.open(ref.relative_path)
            case _:
                assert_never(ref)
        return ResolvedArtifact(body=body, content_type=content_type, file_name=file_name)
