from __future__ import annotations

from pathlib import Path
from typing import Any, List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _split_origins(raw: Any) -> List[str]:
    """
    Normalize CORS allow origins from env.

    Supports:
      - list[str] (already parsed)
      - "*"
      - comma-separated string: "https://a.com, https://b.com"
    """
    if raw is None:
        return ["*"]

    if isinstance(raw, list):
        items = [str(x).strip() for x in raw]
        items = [x for x in items if x]
        return items or ["*"]

    s = str(raw).strip()
    if not s or s == "*":
        return ["*"]

    if "," in s:
        parts = [p.strip() for p in s.split(",")]
        parts = [p for p in parts if p]
        return parts or ["*"]

    return [s]


class Settings(BaseSettings):
    """
    Central app settings (backend).

    - Keeps env var names flat and upper-case (APP_ENV, DATABASE_URL, ...)
    - Normalizes user-provided values (CORS, log level, DB URL, base URLs)
    - Provides a single resolved DB URL source of truth
    - Carries the intake defaults (home barangay, slot limits) so the
      wizard and the validation rules read them from one place
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # App identity
    env: str = Field(default="local", alias="APP_ENV")
    app_name: str = Field(default="resident-portal", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Server runtime (uvicorn)
    host: str = Field(default="127.0.0.1", alias="HOST")
    port: int = Field(default=8000, alias="PORT")
    reload: bool = Field(default=False, alias="RELOAD")

    cors_allow_origins: list[str] = Field(default_factory=lambda: ["*"], alias="CORS_ALLOW_ORIGINS")

    # Preferred: a real SQLAlchemy URL (SQLite now, Postgres later)
    database_url: str = Field(default="", alias="DATABASE_URL")

    # Back-compat: allow DB_PATH if DATABASE_URL not set
    db_path: str = Field(default="./data/residents.sqlite", alias="DB_PATH")

    # Email dispatcher (fire-and-forget notifications on status transitions)
    notify_base_url: str = Field(default="", alias="NOTIFY_BASE_URL")
    notify_timeout_s: float = Field(default=10.0, alias="NOTIFY_TIMEOUT_S")

    # Background reconciliation of status/profile while the wizard is open
    poll_interval_s: float = Field(default=5.0, alias="POLL_INTERVAL_S")

    # Wizard sessions kept in memory at once (least recently used evicted)
    max_open_wizards: int = Field(default=500, alias="MAX_OPEN_WIZARDS")

    # Household composition slot limits
    max_children: int = Field(default=40, alias="MAX_CHILDREN")
    max_other_members: int = Field(default=60, alias="MAX_OTHER_MEMBERS")

    # Final submission requires the uploaded photo / valid ID paths
    require_documents: bool = Field(default=True, alias="REQUIRE_DOCUMENTS")

    # Home address seeded into a fresh household head (PSGC codes)
    default_region: str = Field(default="100000000", alias="DEFAULT_REGION")
    default_province: str = Field(default="104300000", alias="DEFAULT_PROVINCE")
    default_city: str = Field(default="104305000", alias="DEFAULT_CITY")
    default_barangay: str = Field(default="104305040", alias="DEFAULT_BARANGAY")
    default_zip_code: str = Field(default="9000", alias="DEFAULT_ZIP_CODE")

    # The one barangay subdivided into numbered zones
    zoned_barangay: str = Field(default="104305040", alias="ZONED_BARANGAY")
    zone_count: int = Field(default=9, alias="ZONE_COUNT")

    # -------------------------
    # Validators / normalizers
    # -------------------------

    @field_validator("log_level", mode="before")
    @classmethod
    def _norm_log_level(cls, v: Any) -> str:
        s = ("" if v is None else str(v)).strip().upper()
        return s or "INFO"

    @field_validator("cors_allow_origins", mode="before")
    @classmethod
    def _norm_cors_allow_origins(cls, v: Any) -> list[str]:
        return _split_origins(v)

    @field_validator("host", mode="before")
    @classmethod
    def _norm_host(cls, v: Any) -> str:
        s = ("" if v is None else str(v)).strip()
        return s or "127.0.0.1"

    @field_validator("notify_base_url", mode="before")
    @classmethod
    def _norm_notify_base_url(cls, v: Any) -> str:
        return ("" if v is None else str(v)).strip().rstrip("/")

    @field_validator("database_url", mode="before")
    @classmethod
    def _norm_database_url(cls, v: Any) -> str:
        return ("" if v is None else str(v)).strip()

    @field_validator("db_path", mode="before")
    @classmethod
    def _norm_db_path(cls, v: Any) -> str:
        s = ("" if v is None else str(v)).strip()
        return s or "./data/residents.sqlite"

    @field_validator("max_children", "max_other_members", "zone_count", mode="after")
    @classmethod
    def _non_negative(cls, v: int) -> int:
        return max(0, int(v))

    # -------------------------
    # Derived helpers
    # -------------------------

    @property
    def is_prod(self) -> bool:
        return str(self.env).strip().lower() in ("prod", "production")

    @property
    def default_address(self) -> dict[str, str]:
        return {
            "region": self.default_region,
            "province": self.default_province,
            "city": self.default_city,
            "barangay": self.default_barangay,
            "zip_code": self.default_zip_code,
        }

    @property
    def resolved_database_url(self) -> str:
        """
        Priority:
        1) DATABASE_URL if provided
        2) Build sqlite:/// URL from DB_PATH
        """
        if self.database_url:
            return self.database_url

        path = (self.db_path or "").strip() or "./data/residents.sqlite"

        if path.startswith("sqlite:"):
            return path

        p = Path(path)
        if not p.is_absolute():
            if str(p).startswith("./"):
                return f"sqlite:///{p.as_posix()}"
            return f"sqlite:///./{p.as_posix()}"

        # Absolute path needs 4 slashes after scheme (sqlite:////abs/path)
        return f"sqlite:////{p.as_posix().lstrip('/')}"


settings = Settings()
