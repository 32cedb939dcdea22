"""
Configuration settings for the upload server and the uploader client
"""
import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

MB = 1024 * 1024


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


class Settings:
    """Application settings"""

    def __init__(self, **overrides):
        # Database
        self.DATABASE_URL: str = os.getenv(
            "DATABASE_URL",
            "sqlite+aiosqlite:///./upload_engine.db"
        )

        # Staging storage (chunks land here until the session completes)
        self.STAGING_DIR: str = os.getenv("STAGING_DIR", "./data/staging")

        # Final asset storage: "local" directory or "minio" bucket
        self.ASSET_BACKEND: str = os.getenv("ASSET_BACKEND", "local")
        self.ASSET_DIR: str = os.getenv("ASSET_DIR", "./data/assets")

        # MinIO / Object Storage
        self.MINIO_ENDPOINT: str = os.getenv("MINIO_ENDPOINT", "localhost:9000")
        self.MINIO_ACCESS_KEY: str = os.getenv("MINIO_ACCESS_KEY", "minioadmin")
        self.MINIO_SECRET_KEY: str = os.getenv("MINIO_SECRET_KEY", "minioadmin")
        self.MINIO_BUCKET: str = os.getenv("MINIO_BUCKET", "upload-assets")
        self.MINIO_SECURE: bool = _env_bool("MINIO_SECURE", "false")

        # Chunking
        self.CHUNK_SIZE: int = int(os.getenv("CHUNK_SIZE", str(10 * MB)))
        self.MIN_CHUNK_SIZE: int = int(os.getenv("MIN_CHUNK_SIZE", str(256 * 1024)))
        self.MAX_CHUNK_SIZE: int = int(os.getenv("MAX_CHUNK_SIZE", str(100 * MB)))
        self.MAX_TOTAL_CHUNKS: int = int(os.getenv("MAX_TOTAL_CHUNKS", "10000"))
        self.MAX_UPLOAD_SIZE: int = int(os.getenv("MAX_UPLOAD_SIZE", str(5 * 1024 * MB)))

        # Session housekeeping
        self.SESSION_TTL_SECONDS: int = int(os.getenv("SESSION_TTL_SECONDS", str(24 * 3600)))
        self.COMPLETED_RETENTION_SECONDS: int = int(
            os.getenv("COMPLETED_RETENTION_SECONDS", str(24 * 3600))
        )
        self.SWEEP_INTERVAL_SECONDS: float = float(os.getenv("SWEEP_INTERVAL_SECONDS", "300"))

        # Bearer tokens accepted by the API (empty = any non-empty token)
        self.API_TOKENS: list[str] = [
            token.strip()
            for token in os.getenv("API_TOKENS", "").split(",")
            if token.strip()
        ]

        # Server
        self.SERVER_HOST: str = os.getenv("SERVER_HOST", "0.0.0.0")
        self.SERVER_PORT: int = int(os.getenv("SERVER_PORT", "8000"))

        # Logging
        self.LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

        # Application
        self.APP_TITLE: str = "Resumable Upload Engine"
        self.APP_DESCRIPTION: str = "Chunked uploads with resumable sessions and exactly-once assembly"
        self.APP_VERSION: str = "1.0.0"

        # Client defaults
        self.UPLOAD_API_URL: str = os.getenv("UPLOAD_API_URL", "http://localhost:8000")
        self.UPLOAD_CONCURRENCY: int = int(os.getenv("UPLOAD_CONCURRENCY", "2"))
        self.UPLOAD_MAX_RETRIES: int = int(os.getenv("UPLOAD_MAX_RETRIES", "3"))
        self.UPLOAD_RETRY_DELAY: float = float(os.getenv("UPLOAD_RETRY_DELAY", "1.0"))
        self.UPLOAD_RETRY_JITTER: float = float(os.getenv("UPLOAD_RETRY_JITTER", "0.1"))
        self.SIMPLE_UPLOAD_THRESHOLD: int = int(os.getenv("SIMPLE_UPLOAD_THRESHOLD", str(50 * MB)))
        self.CONTROL_TIMEOUT: float = float(os.getenv("CONTROL_TIMEOUT", "30"))
        self.CLIENT_SESSION_FILE: str = os.getenv(
            "CLIENT_SESSION_FILE",
            str(Path.home() / ".upload_engine" / "sessions.json")
        )

        for name, value in overrides.items():
            if not hasattr(self, name):
                raise TypeError(f"Unknown setting: {name}")
            setattr(self, name, value)


settings = Settings()
