"""Application configuration loaded from environment variables."""

from pathlib import Path
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Relational store
    database_url: str = "sqlite:///data/sheetintake.db"
    db_pool_size: int = 10
    data_table: str = "uploaded_data"

    # Backend
    backend_host: str = "0.0.0.0"
    backend_port: int = 4000

    # Paths (relative to project root)
    template_path: str = "data/template.xlsx"
    reports_dir: str = "data/reports"
    uploads_dir: str = "data/uploads"

    # Uploads
    max_file_size: int = 10 * 1024 * 1024
    allowed_extensions: list[str] = [".xlsx"]

    # Ingestion
    batch_size: int = 1000
    text_length: int = 255
    template_poll_interval: float = 1.0

    # Error report layout
    error_column: str = "Error"
    row_number_column: str = "Row Number"

    @property
    def project_root(self) -> Path:
        return Path(__file__).parent.parent.parent

    def resolve_path(self, value: str) -> Path:
        path = Path(value)
        if not path.is_absolute():
            path = self.project_root / path
        return path

    model_config = {"env_file": ".env", "env_prefix": "", "extra": "ignore"}


settings = Settings()
