from typing import ClassVar, Optional
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from pathlib import Path


def _split_comma_list(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings(BaseSettings):
    app_name: ClassVar[str] = "Hondana"
    app_id: ClassVar[str] = "hondana-server"
    version: ClassVar[str] = "0.3.0"

    database_url: str = "sqlite:///./storage/database/manga.db"

    # --- ALLOWED ORIGINS ---
    # Comma-separated list of domains (e.g., "http://localhost:3000,http://localhost:8000")
    allowed_origins_raw: str = Field(default="*", alias="ALLOWED_ORIGINS")

    @property
    def allowed_origins(self) -> list[str]:
        return _split_comma_list(self.allowed_origins_raw)

    # --- SECURITY SETTINGS ---
    # openssl rand -hex 32
    secret_key: str = "CHANGE_THIS_TO_A_SECURE_RANDOM_KEY"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24

    # Bootstrap admin (both must be set)
    admin_email: Optional[str] = None
    admin_password: Optional[str] = None

    # Storage paths
    log_dir: Path = Path("storage/logs")
    image_dir: Path = Path("storage/images")
    run_dir: Path = Path("storage/run")

    # Image normalization
    image_format: str = "webp"
    image_quality: int = 80
    max_upload_bytes: int = 20 * 1024 * 1024  # per decoded image

    # --- ORPHAN CLEANUP ---
    # 0 disables the periodic sweep (delete endpoints still trigger one)
    cleanup_interval_minutes: int = 60
    cleanup_max_attempts: int = 5
    cleanup_backoff_seconds: float = 0.5

    # Public listing
    page_size: int = 50

    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env",
                                      extra="ignore",
                                      env_ignore_empty=True,
                                      case_sensitive=False,
                                      env_nested_delimiter=None
                                      )

    @property
    def sqlite_path(self) -> Optional[Path]:
        """Database file for sqlite:/// URLs, None for in-memory or other backends"""
        prefix = "sqlite:///"
        if not self.database_url.startswith(prefix):
            return None
        location = self.database_url[len(prefix):]
        if not location or location == ":memory:":
            return None
        return Path(location)

    @property
    def image_extension(self) -> str:
        return self.image_format.lower().lstrip(".")


settings = Settings()
