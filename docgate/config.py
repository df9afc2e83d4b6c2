import secrets
import warnings
from pydantic_settings import BaseSettings
from pydantic import Field, field_validator

MIB = 1024 * 1024


def _strip_quotes(value: str | None) -> str:
    return (value or "").strip().strip("\"'").strip()


class Settings(BaseSettings):
    app_name: str = "Residence Document Gateway"
    app_env: str = Field("dev", alias="APP_ENV")
    secret_key: str | None = Field(default=None, alias="SECRET_KEY")
    database_url: str | None = Field(default=None, alias="DATABASE_URL")

    session_expire_days: int = Field(7, alias="SESSION_EXPIRE_DAYS")
    session_cookie_name: str = Field("session", alias="SESSION_COOKIE_NAME")

    upload_root: str = Field("./uploads", alias="UPLOAD_ROOT")
    max_upload_bytes: int = Field(5 * MIB, alias="MAX_UPLOAD_BYTES")
    document_mime_types: tuple[str, ...] = ("application/pdf", "image/jpeg", "image/png")
    invoice_mime_types: tuple[str, ...] = ("application/pdf",)

    google_client_id: str = Field("", alias="GOOGLE_CLIENT_ID")
    google_client_secret: str = Field("", alias="GOOGLE_CLIENT_SECRET")
    google_refresh_token: str = Field("", alias="GOOGLE_REFRESH_TOKEN")
    google_service_account_key: str = Field("", alias="GOOGLE_SERVICE_ACCOUNT_KEY")
    google_drive_root_folder_id: str = Field("", alias="GOOGLE_DRIVE_ROOT_FOLDER_ID")
    remote_timeout_seconds: float = Field(20.0, alias="REMOTE_TIMEOUT_SECONDS")

    rate_limit_window_seconds: int = Field(60, alias="RATE_LIMIT_WINDOW_SECONDS")
    rate_limit_max_calls: int = Field(30, alias="RATE_LIMIT_MAX_CALLS")

    log_level: str | None = Field(default=None, alias="LOG_LEVEL")
    log_format: str | None = Field(default=None, alias="LOG_FORMAT")

    seed_admin_username: str = Field("", alias="SEED_ADMIN_USERNAME")
    seed_admin_password: str = Field("", alias="SEED_ADMIN_PASSWORD")

    class Config:
        env_file = ".env"
        extra = "ignore"
        populate_by_name = True

    @field_validator(
        "google_client_id",
        "google_client_secret",
        "google_refresh_token",
        "google_drive_root_folder_id",
        mode="before",
    )
    @classmethod
    def _unquote(cls, v):
        return _strip_quotes(v)

    @property
    def is_prod(self) -> bool:
        return self.app_env.strip().lower() in ("prod", "production")

    @property
    def oauth_configured(self) -> bool:
        return bool(self.google_client_id and self.google_client_secret and self.google_refresh_token)

    @property
    def service_account_configured(self) -> bool:
        return bool(self.google_service_account_key.strip() and self.google_drive_root_folder_id)

    @property
    def remote_configured(self) -> bool:
        return self.oauth_configured or self.service_account_configured

    @property
    def storage_type(self) -> str:
        if self.oauth_configured:
            return "google_drive_oauth"
        if self.service_account_configured:
            return "google_drive_service_account"
        return "local"


settings = Settings()

if not settings.secret_key:
    if settings.is_prod:
        raise RuntimeError("SECRET_KEY must be set in production")
    warnings.warn("SECRET_KEY not set, using a random per-process key", RuntimeWarning, stacklevel=1)
    settings.secret_key = secrets.token_urlsafe(32)
