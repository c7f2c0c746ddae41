"""
Configuration module for cloudpaste.
Loads environment variables and provides config objects.
"""
import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _as_bool(value: str) -> bool:
    """Interpret an environment string as a boolean flag."""
    return value.lower() in ("true", "1", "yes")


class Settings:
    """Application settings loaded from environment variables."""

    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = int(os.getenv("PORT", "3000"))
    BASE_URL: str = os.getenv("BASE_URL", f"http://localhost:{PORT}")
    DEBUG: bool = _as_bool(os.getenv("DEBUG", "False"))

    # Record store
    DB_FILE: str = os.getenv("DB_FILE", "db.json")
    REDIS_URL: str = os.getenv("REDIS_URL", "")

    # Storage account
    MINIO_ENDPOINT: str = os.getenv("MINIO_ENDPOINT", "localhost:9000")
    MINIO_ACCESS_KEY: str = os.getenv("MINIO_ACCESS_KEY", "")
    MINIO_SECRET_KEY: str = os.getenv("MINIO_SECRET_KEY", "")
    MINIO_BUCKET: str = os.getenv("MINIO_BUCKET", "pastes")
    MINIO_SECURE: bool = _as_bool(os.getenv("MINIO_SECURE", "False"))
    MINIO_PUBLIC_URL: str = os.getenv(
        "MINIO_PUBLIC_URL",
        f"{'https' if MINIO_SECURE else 'http'}://{MINIO_ENDPOINT}/{MINIO_BUCKET}",
    )
    BACKEND_TIMEOUT_SECONDS: float = float(os.getenv("BACKEND_TIMEOUT_SECONDS", "30"))

    # Paste behaviour
    REDIRECT_ON_FETCH_FAILURE: bool = _as_bool(os.getenv("REDIRECT_ON_FETCH_FAILURE", "True"))
    MAX_CONTENT_BYTES: int = int(os.getenv("MAX_CONTENT_BYTES", str(1024 * 1024)))


settings = Settings()
