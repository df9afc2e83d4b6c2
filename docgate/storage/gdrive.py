import asyncio
import json
import logging
import secrets
import time
from dataclasses import dataclass, field

import httpx
from jose import jwt

from docgate.storage.refs import RemoteRef

logger = logging.getLogger(__name__)

TOKEN_URI = "https://oauth2.googleapis.com/token"
DRIVE_API = "https://www.googleapis.com/drive/v3"
DRIVE_UPLOAD_API = "https://www.googleapis.com/upload/drive/v3"
DRIVE_SCOPE = "https://www.googleapis.com/auth/drive.file"
FOLDER_MIME = "application/vnd.google-apps.folder"


class RemoteBackendError(Exception):
    pass


# OAuth refresh token: uploads land in the owner's Drive, `root` by default.
# Service account JWT bearer: needs a folder shared with the account.
@dataclass(frozen=True)
class OAuthRefreshCredentials:
    client_id: str
    client_secret: str
    refresh_token: str

    def token_uri(self) -> str:
        return TOKEN_URI

    def token_request(self) -> dict:
        return {
            "grant_type": "refresh_token",
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "refresh_token": self.refresh_token,
        }


@dataclass(frozen=True)
class ServiceAccountCredentials:
    key_json: str = field(repr=False)

    def _info(self) -> dict:
        try:
            info = json.loads(self.key_json)
        except ValueError:
            raise RemoteBackendError("service account key is not valid JSON") from None
        if not isinstance(info, dict) or not info.get("client_email") or not info.get("private_key"):
            raise RemoteBackendError("service account key lacks client_email or private_key")
        return info

    def token_uri(self) -> str:
        return self._info().get("token_uri") or TOKEN_URI

    def token_request(self) -> dict:
        info = self._info()
        now = int(time.time())
        claims = {
            "iss": info["client_email"],
            "scope": DRIVE_SCOPE,
            "aud": info.get("token_uri") or TOKEN_URI,
            "iat": now,
            "exp": now + 3600,
        }
        assertion = jwt.encode(claims, info["private_key"], algorithm="RS256")
        return {
            "grant_type": "urn:ietf:params:oauth:grant-type:jwt-bearer",
            "assertion": assertion,
        }


def _escape_query(value: str) -> str:
    return value.replace("\\", "\\\\").replace("'", "\\'")


class GoogleDriveBackend:
    def __init__(self, credentials, root_folder_id: str = "root", timeout: float = 20.0,
                 transport: httpx.AsyncBaseTransport | None = None):
        self.credentials = credentials
        self.root_folder_id = root_folder_id or "root"
        self.timeout = timeout
        self._transport = transport
        self._access_token: str | None = None
        self._token_expires_at = 0.0
        self._token_lock = asyncio.Lock()
        # "<parent id>|<name>" -> folder id, so repeated uploads reuse folders
        self._folder_cache: dict[str, str] = {}

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def _token(self, client: httpx.AsyncClient) -> str:
        async with self._token_lock:
            if self._access_token and time.monotonic() < self._token_expires_at:
                return self._access_token
            r = await client.post(self.credentials.token_uri(), data=self.credentials.token_request())
            r.raise_for_status()
            data = r.json()
            self._access_token = data["access_token"]
            self._token_expires_at = time.monotonic() + max(int(data.get("expires_in", 3600)) - 60, 0)
            return self._access_token

    async def _request(self, client: httpx.AsyncClient, method: str, url: str, **kwargs) -> httpx.Response:
        headers = kwargs.pop("headers", {})
        headers["Authorization"] = f"Bearer {await self._token(client)}"
        r = await client.request(method, url, headers=headers, **kwargs)
        r.raise_for_status()
        return r

    async def _ensure_folder(self, client: httpx.AsyncClient, folder_path: str) -> str:
        current = self.root_folder_id
        for name in (p for p in folder_path.split("/") if p):
            cache_key = f"{current}|{name}"
            cached = self._folder_cache.get(cache_key)
            if cached:
                current = cached
                continue

            r = await self._request(client, "GET", f"{DRIVE_API}/files", params={
                "q": (f"name='{_escape_query(name)}' and '{current}' in parents "
                      f"and mimeType='{FOLDER_MIME}' and trashed=false"),
                "fields": "files(id, name)",
                "spaces": "drive",
                "supportsAllDrives": "true",
                "includeItemsFromAllDrives": "true",
            })
            files = r.json().get("files") or []
            if files:
                folder_id = files[0]["id"]
            else:
                r = await self._request(
                    client, "POST", f"{DRIVE_API}/files",
                    params={"fields": "id", "supportsAllDrives": "true"},
                    json={"name": name, "mimeType": FOLDER_MIME, "parents": [current]},
                )
                folder_id = r.json()["id"]
                logger.debug("created drive folder %s under %s", name, current)
            self._folder_cache[cache_key] = folder_id
            current = folder_id
        return current

    async def upload(self, folder: str, file_name: str, mime_type: str, content: bytes) -> RemoteRef:
        try:
            async with self._client() as client:
                folder_id = await self._ensure_folder(client, folder)
                boundary = secrets.token_hex(16)
                metadata = json.dumps({"name": file_name, "parents": [folder_id]})
                body = (
                    f"--{boundary}\r\nContent-Type: application/json; charset=UTF-8\r\n\r\n"
                    f"{metadata}\r\n--{boundary}\r\nContent-Type: {mime_type}\r\n\r\n"
                ).encode("utf-8") + content + f"\r\n--{boundary}--\r\n".encode("ascii")
                r = await self._request(
                    client, "POST", f"{DRIVE_UPLOAD_API}/files",
                    params={"uploadType": "multipart", "fields": "id,name,webViewLink", "supportsAllDrives": "true"},
                    headers={"Content-Type": f"multipart/related; boundary={boundary}"},
                    content=body,
                )
                data = r.json()
                return RemoteRef(id=data["id"], web_url=data.get("webViewLink"))
        except (httpx.HTTPError, KeyError, ValueError) as e:
            raise RemoteBackendError(f"drive upload failed: {e}") from e

    async def download(self, file_id: str) -> bytes:
        try:
            async with self._client() as client:
                r = await self._request(
                    client, "GET", f"{DRIVE_API}/files/{file_id}",
                    params={"alt": "media", "supportsAllDrives": "true"},
                )
                return r.content
        except (httpx.HTTPError, KeyError, ValueError) as e:
            raise RemoteBackendError(f"drive download failed: {e}") from e

    async def delete(self, file_id: str) -> bool:
        try:
            async with self._client() as client:
                await self._request(client, "DELETE", f"{DRIVE_API}/files/{file_id}",
                                    params={"supportsAllDrives": "true"})
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                logger.info("drive file %s already deleted", file_id)
                return False
            raise RemoteBackendError(f"drive delete failed: {e}") from e
        except (httpx.HTTPError, KeyError, ValueError) as e:
            raise RemoteBackendError(f"drive delete failed: {e}") from e
        return True
