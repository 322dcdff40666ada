import os
import sys
from pathlib import Path
from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, AliasChoices

ROOT = Path(__file__).resolve().parents[2]
load_dotenv(ROOT / ".env", override=False)


class Settings(BaseSettings):
    # Namespaces every Firestore path (artifacts/{app_id}/public/data/...)
    app_id: str = Field("default-app-id", validation_alias="APP_ID")

    # ───────────────── GCP / Firestore ───────────────
    gcp_project: str | None = Field(
        None,
        validation_alias=AliasChoices(
            "GCP_PROJECT_ID",
            "GCLOUD_PROJECT",
            "GOOGLE_CLOUD_PROJECT",
        ),
    )
    gcp_credentials_path: str | None = Field(
        None,
        validation_alias=AliasChoices("GOOGLE_APPLICATION_CREDENTIALS", "GCP_CREDENTIALS"),
    )

    # ───────────────── Firebase Authentication ───────
    firebase_api_key: str | None = Field(
        None,
        validation_alias=AliasChoices("FIREBASE_API_KEY", "VITE_FIREBASE_API_KEY"),
    )
    identity_toolkit_url: str = Field(
        "https://identitytoolkit.googleapis.com/v1",
        validation_alias="IDENTITY_TOOLKIT_URL",
    )
    # One-time token redeemed by the guest path; anonymous sign-in otherwise
    initial_auth_token: str | None = Field(None, validation_alias="INITIAL_AUTH_TOKEN")
    http_timeout_s: float = Field(20.0, validation_alias="HTTP_TIMEOUT_S")

    # ───────────────── App session JWT ───────────────
    jwt_secret: str = Field("dev-secret", validation_alias="JWT_SECRET")
    jwt_alg: str = "HS256"
    access_ttl_h: int = Field(24, validation_alias="ACCESS_TTL_H")

    # ───────────────── HTTP surface ──────────────────
    ui_origin: str = Field(
        "http://localhost:5173",
        validation_alias=AliasChoices("UI_ORIGIN"),
    )
    # Data URLs are stored inline; Firestore caps a document at 1 MiB
    max_media_bytes: int = Field(750_000, validation_alias="MAX_MEDIA_BYTES")
    sse_keepalive_s: float = Field(15.0, validation_alias="SSE_KEEPALIVE_S")

    log_level: str = Field("INFO", validation_alias="LOG_LEVEL")

    model_config = SettingsConfigDict(case_sensitive=False, env_file=".env", extra="ignore")

    @property
    def issues_path(self) -> str:
        return f"artifacts/{self.app_id}/public/data/issues"

    @property
    def profiles_path(self) -> str:
        return f"artifacts/{self.app_id}/public/data/profiles"


settings = Settings()

if settings.gcp_credentials_path:
    os.environ.setdefault("GOOGLE_APPLICATION_CREDENTIALS", settings.gcp_credentials_path)
else:
    print("[CivicSync] WARNING: GOOGLE_APPLICATION_CREDENTIALS not set; relying on ADC.", file=sys.stderr)
