"""
Configuration settings for the FastAPI application
"""
import os
import sys
from pathlib import Path
from typing import List, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings"""

    # Application
    app_name: str = "Tile Visualizer API"
    version: str = "1.0.0"
    environment: str = "development"
    debug: bool = False

    # Server
    host: str = "0.0.0.0"
    port: int = 3003

    # CORS
    cors_origins: List[str] = ["*"]

    # Replicate (nano-banana image-to-image)
    replicate_api_token: str = ""
    replicate_model: str = "google/nano-banana"

    # Filesystem layout. server_root is the directory holding public/, shared with the worker subprocess
    server_root: str = ""
    public_dir: Optional[str] = None
    upload_dir: Optional[str] = None
    staging_dir: Optional[str] = None
    tiles_dir: Optional[str] = None

    # File upload
    max_file_size: int = 10 * 1024 * 1024  # 10MB
    allowed_image_extensions: List[str] = [".jpg", ".jpeg", ".png", ".gif", ".webp", ".bmp"]

    # Transform job
    python_executable: str = sys.executable
    job_timeout_seconds: float = 300.0  # 5 minutes
    provider_max_attempts: int = 3
    provider_retry_delay: float = 2.0
    download_max_attempts: int = 3
    download_retry_delay: float = 2.0
    download_timeout_seconds: float = 30.0

    # Post-processing
    watermark_crop_margin: int = 80
    jpeg_quality: int = 95
    artifact_prefix: str = "temp_resized_"

    # Generated artifact cleanup (off unless enabled)
    artifact_sweep_enabled: bool = False
    artifact_max_age_seconds: int = 3600
    artifact_sweep_interval_seconds: int = 600

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"  # Allow extra fields from .env

    @property
    def resolved_server_root(self) -> Path:
        return Path(self.server_root).resolve() if self.server_root else Path(os.getcwd()).resolve()

    @property
    def resolved_public_dir(self) -> Path:
        if self.public_dir:
            return Path(self.public_dir).resolve()
        return self.resolved_server_root / "public"

    @property
    def resolved_upload_dir(self) -> Path:
        if self.upload_dir:
            return Path(self.upload_dir).resolve()
        return self.resolved_server_root / "uploads"

    @property
    def resolved_staging_dir(self) -> Path:
        if self.staging_dir:
            return Path(self.staging_dir).resolve()
        return self.resolved_server_root / "tmp"

    @property
    def resolved_tiles_dir(self) -> Path:
        if self.tiles_dir:
            return Path(self.tiles_dir).resolve()
        return self.resolved_public_dir / "tiles"


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """FastAPI dependency returning the active settings (overridden in tests)."""
    return settings
