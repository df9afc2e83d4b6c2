import logging
import re
import secrets
import time
import uuid
from pathlib import Path, PurePosixPath
from typing import AsyncIterator

import aiofiles
import aiofiles.os

from docgate.errors import InvalidPath, NotFound
from docgate.storage.refs import LocalRef

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024
_EXT_RE = re.compile(r"\.[a-z0-9]{1,10}")


class LocalStorageError(Exception):
    pass


def safe_extension(original_name: str) -> str:
    suffix = PurePosixPath(original_name.replace("\\", "/")).suffix.lower()
    return suffix if _EXT_RE.fullmatch(suffix) else ""


def generate_file_name(original_name: str) -> str:
    """`<epoch-ms>-<random>.<ext>`; the caller's name only contributes its extension."""
    return f"{int(time.time() * 1000)}-{secrets.token_hex(8)}{safe_extension(original_name)}"


class LocalBackend:
    def __init__(self, root: str | Path):
        self.root = Path(root)

    def resolve(self, relative_path: str) -> Path:
        """Absolute path for `relative_path`, guaranteed to lie strictly under the root.

        The containment check runs on the fully resolved path (`..` and
        symlinks already followed), never on the raw text.
        """
        if not relative_path or "\x00" in relative_path:
            raise InvalidPath()
        rel = PurePosixPath(relative_path.replace("\\", "/"))
        if rel.is_absolute():
            raise InvalidPath()
        root = self.root.resolve()
        candidate = (root / rel).resolve()
        if candidate == root or not candidate.is_relative_to(root):
            raise InvalidPath()
        # hidden names are in-flight temp files; generated names never start with a dot
        if any(part.startswith(".") for part in candidate.relative_to(root).parts):
            raise InvalidPath()
        return candidate

    async def write(self, segment: str, original_name: str, content: bytes) -> LocalRef:
        directory = self.resolve(segment)
        # concurrent first writers may race here; exist_ok makes that harmless
        await aiofiles.os.makedirs(directory, exist_ok=True)

        tmp_path = directory / f".{uuid.uuid4().hex}.part"
        try:
            async with aiofiles.open(tmp_path, "wb") as f:
                await f.write(content)
            for attempt in range(2):
                name = generate_file_name(original_name)
                try:
                    # link() refuses to replace an existing name, unlike rename()
                    await aiofiles.os.link(tmp_path, directory / name)
                except FileExistsError:
                    logger.warning("file name collision on %s/%s (attempt %d)", segment, name, attempt + 1)
                    continue
                relative = (directory / name).relative_to(self.root.resolve()).as_posix()
                return LocalRef(relative_path=relative)
            raise LocalStorageError(f"repeated file name collision in {segment}")
        finally:
            try:
                await aiofiles.os.remove(tmp_path)
            except FileNotFoundError:
                pass

    async def open(self, relative_path: str) -> AsyncIterator[bytes]:
        path = self.resolve(relative_path)
        try:
            f = await aiofiles.open(path, "rb")
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError):
            raise NotFound("File not found") from None
        return _iter_file(f)

    async def delete(self, relative_path: str) -> bool:
        path = self.resolve(relative_path)
        try:
            await aiofiles.os.remove(path)
        except FileNotFoundError:
            return False
        return True


async def _iter_file(f) -> AsyncIterator[bytes]:
    try:
        while chunk := await f.read(CHUNK_SIZE):
            yield chunk
    finally:
        await f.close()
