# services/api/settings.py
from pydantic_settings import BaseSettings
from pydantic import ConfigDict, Field
from typing import List, Optional
from pathlib import Path


class Settings(BaseSettings):
    # Relational store
    # sqlite for deployments, json for quick local demos
    storage_backend: str = "sqlite"
    db_url: str = "sqlite:///data/surveys.db"
    json_data_dir: str = "data/json"

    # Blob store (diagrams)
    # local = files under blob_root/<bucket>/<path>
    # http  = storage REST API at blob_base_url/object/<bucket>/<path>
    blob_backend: str = "local"
    blob_root: str = "data/blobs"
    blob_base_url: str = ""
    blob_api_key: str = ""
    blob_timeout_s: float = 30.0

    diagram_bucket: str = "asset-diagrams"
    diagram_prefix: str = "templates"
    # Tried in order; png is what the admin upload script writes
    diagram_extensions: str = "png,jpg,jpeg,webp"

    # Branding used in every watermark / footer / filename
    org_name: str = "TES"

    # Optional TTF used by the raster compositor. Empty = Pillow's bundled font.
    watermark_font_path: str = ""

    # Session tokens
    jwt_secret: str = Field(default="dev-secret-key", description="HS256 secret for session tokens")
    jwt_algorithm: str = "HS256"
    jwt_ttl_s: int = 3600
    session_cookie_name: str = "session"

    # Reject exports for profiles whose license is not 'active'
    enforce_license: bool = True

    # Concurrent diagram downloads per export (pages are still assembled in order)
    max_parallel_fetches: int = 4

    # CORS settings
    allowed_origins: str = "http://localhost:3000,http://localhost:8000"

    log_level: str = "INFO"

    model_config = ConfigDict(
        # Always load .env from the same folder as this settings.py
        env_file=str(Path(__file__).resolve().parent / ".env"),
        extra="ignore",
    )

    def get_origins_list(self) -> List[str]:
        """Parse comma-separated origins into a list."""
        if not self.allowed_origins:
            return ["*"]
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]

    def get_diagram_extensions(self) -> List[str]:
        exts = [e.strip().lstrip(".").lower() for e in self.diagram_extensions.split(",")]
        return [e for e in exts if e] or ["png"]

    def font_path(self) -> Optional[str]:
        return self.watermark_font_path or None


_settings_instance = None

def get_settings() -> Settings:
    """Singleton pattern for settings."""
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Settings()
    return _settings_instance
