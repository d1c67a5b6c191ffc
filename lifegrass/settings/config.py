# lifegrass/settings/config.py  (Pydantic v2)
import re
from typing import Literal, Optional
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

PLACEHOLDER_SECRET = "CHANGE_ME_SECRET"


class Settings(BaseSettings):
    # ---------- Bearer tokens ----------
    TOKEN_SECRET: Optional[str] = None
    TOKEN_TTL_DAYS: int = Field(default=7, ge=1)

    # ---------- Object storage ----------
    # "sql" = one row per object in DATABASE_URL, "s3" = S3-compatible bucket
    STORAGE_BACKEND: Literal["sql", "s3"] = "sql"
    STORAGE_PREFIX: str = "users/"
    DATABASE_URL: str = "sqlite+aiosqlite:///./lifegrass.db"
    RUN_DB_CREATE_ALL: bool = True

    S3_BUCKET: Optional[str] = None
    S3_ENDPOINT_URL: Optional[str] = None
    S3_REGION: Optional[str] = None
    AWS_ACCESS_KEY_ID: Optional[str] = None
    AWS_SECRET_ACCESS_KEY: Optional[str] = None

    # ---------- AI text service ----------
    AI_PROVIDER: Literal["azure", "ollama", "off"] = "off"
    AI_TIMEOUT_SECONDS: float = 30.0
    AZURE_OPENAI_API_KEY: Optional[str] = None
    AZURE_OPENAI_ENDPOINT: Optional[str] = None
    AZURE_OPENAI_MODEL: str = "gpt-5-mini"
    AZURE_OPENAI_API_VERSION: str = "2024-02-15-preview"
    OLLAMA_BASE_URL: str = "http://localhost:11434"
    OLLAMA_MODEL: str = "llama3.1:8b"

    # ---------- HTTP ----------
    ADMIN_ORIGINS: list[str] = ["http://localhost:3030"]
    LOG_LEVEL: str = "INFO"

    # ---------- pydantic-settings config ----------
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,  # allow lower/upper env names
        extra="ignore",
    )

    def require_token_secret(self) -> str:
        secret = (self.TOKEN_SECRET or "").strip()
        if not secret or secret == PLACEHOLDER_SECRET:
            raise RuntimeError(
                "TOKEN_SECRET environment variable must be set to a strong value; the default placeholder is not allowed."
            )
        return secret

    @property
    def async_database_url(self) -> str:
        # a sync URL provided by mistake; upgrade it to async
        return re.sub(r"^postgresql\+psycopg2?:", "postgresql+asyncpg:", self.DATABASE_URL)


settings = Settings()
