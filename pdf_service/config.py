from pathlib import Path
from typing import List, Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_API_KEY = "default-api-key"


class Settings(BaseSettings):
    app_name: str = "PDF Processing Service"
    app_version: str = "1.0.0"
    environment: str = "development"  # or "production"
    debug: bool = True
    log_level: str = "INFO"

    api_key: str = DEFAULT_API_KEY

    # Persistent data layout, every directory defaults to a child of data_dir
    data_dir: Path = Path("persistent_data")
    upload_dir: Optional[Path] = None
    processed_dir: Optional[Path] = None
    images_dir: Optional[Path] = None
    db_dir: Optional[Path] = None
    db_filename: str = "pdf_service.sqlite"

    metadata_backend: str = "sqlite"  # or "memory"
    renderer: str = "poppler"  # or "pymupdf"
    poppler_bin_path: str = ""

    max_file_size: int = 52428800  # 50MB
    cors_origins: List[str] = ["http://localhost:3000"]

    upload_ttl_seconds: float = 3600.0
    upload_sweep_interval_seconds: float = 60.0

    model_config: SettingsConfigDict = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False
    )

    @model_validator(mode="after")
    def _derive_directories(self) -> "Settings":
        self.data_dir = self.data_dir.resolve()
        self.upload_dir = (self.upload_dir or self.data_dir / "uploads").resolve()
        self.processed_dir = (self.processed_dir or self.data_dir / "processed").resolve()
        self.images_dir = (self.images_dir or self.data_dir / "images").resolve()
        self.db_dir = (self.db_dir or self.data_dir / "database").resolve()
        return self

    @property
    def db_path(self) -> Path:
        return self.db_dir / self.db_filename

    @property
    def database_url(self) -> str:
        return f"sqlite:///{self.db_path}"

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    def ensure_directories(self) -> None:
        """Create every data directory the service writes into."""
        from pdf_service.storage import filesystem

        for directory in (self.upload_dir, self.processed_dir, self.images_dir, self.db_dir):
            filesystem.ensure_dir(directory)


settings = Settings()
