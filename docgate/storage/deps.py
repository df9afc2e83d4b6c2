
from functools import lru_cache
from docgate.config import settings
from docgate.storage.gdrive import GoogleDriveBackend, OAuthRefreshCredentials, ServiceAccountCredentials
from docgate.storage.local import LocalBackend
from docgate.storage.resolver import ArtifactResolver
from docgate.storage.router import StorageRouter


@lru_cache
def get_local_backend() -> LocalBackend:
    return LocalBackend(settings.upload_root)


@lru_cache
def get_remote_backend() -> GoogleDriveBackend | None:
    if settings.oauth_configured:
        creds = OAuthRefreshCredentials(
            client_id=settings.google_client_id,
            client_secret=settings.google_client_secret,
            refresh_token=settings.google_refresh_token,
        )
        root = settings.google_drive_root_folder_id or "root"
    elif settings.service_account_configured:
        creds = ServiceAccountCredentials(key_json=settings.google_service_account_key)
        root = settings.google_drive_root_folder_id
    else:
        return None
    return GoogleDriveBackend(creds, root_folder_id=root, timeout=settings.remote_timeout_seconds)


def get_storage_router() -> StorageRouter:
    return StorageRouter(
        get_local_backend(),
        get_remote_backend(),
        # token + folder lookups + upload each get the per-request timeout
        remote_timeout=settings.remote_timeout_seconds * 3,
    )


def get_artifact_resolver() -> ArtifactResolver:
    return ArtifactResolver(
        get_local_backend(),
        get_remote_backend(),
        remote_timeout=settings.remote_timeout_seconds * 2,
    )
