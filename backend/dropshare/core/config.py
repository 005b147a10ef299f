import logging
import os
from typing import List, Optional
from pydantic_settings import BaseSettings
from dotenv import load_dotenv

# Explicitly load .env file before defining Settings
env_path = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), ".env")
load_dotenv(env_path)

class Settings(BaseSettings):
    PROJECT_NAME: str = "DropShare"
    API_V1_STR: str = "/api/v1"
    LOG_LEVEL: str = "INFO"

    # Database
    SQLALCHEMY_DATABASE_URI: str

    # Security
    SECRET_KEY: str = "YOUR_SECRET_KEY_HERE"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 10080

    # Comma separated string in env, parsed to list.
    CORS_ORIGINS_STR: str = "*"
    FRONTEND_URL: str = "http://localhost:3000"
    # Comma separated proxy addresses whose X-Forwarded-For is believed
    TRUSTED_PROXIES_STR: str = ""

    # Storage
    STORAGE_BACKEND: str = "local"  # local | s3
    UPLOAD_DIR: str = os.path.join(os.getcwd(), "upload_storage")
    S3_BUCKET_NAME: str = "dropshare"
    S3_ENDPOINT_URL: Optional[str] = None  # set for MinIO / S3-compatible services
    AWS_REGION: str = "us-east-1"
    AWS_ACCESS_KEY_ID: Optional[str] = None
    AWS_SECRET_ACCESS_KEY: Optional[str] = None

    # Quota and uploads (bytes)
    DEFAULT_STORAGE_LIMIT: int = 1073741824
    MAX_UPLOAD_SIZE: int = 100 * 1024 * 1024
    # Empty means every mime type is accepted.
    ALLOWED_MIME_TYPES_STR: str = ""
    MAX_FILES_PER_UPLOAD: int = 10
    THUMBNAIL_SIZE: int = 300

    # Folder archives
    ARCHIVE_TEMP_DIR: Optional[str] = None
    ARCHIVE_CHUNK_SIZE: int = 1024 * 1024

    # Share links
    SHARE_PASSWORD_MIN_LENGTH: int = 4

    @property
    def CORS_ORIGINS(self) -> List[str]:
        raw_str = self.CORS_ORIGINS_STR.strip('"\'')
        return [o.strip() for o in raw_str.split(",") if o.strip()]

    @property
    def TRUSTED_PROXIES(self) -> List[str]:
        raw_str = self.TRUSTED_PROXIES_STR.strip('"\'')
        return [p.strip() for p in raw_str.split(",") if p.strip()]

    @property
    def ALLOWED_MIME_TYPES(self) -> List[str]:
        # Handle potential quote wrapping from env file parsing
        raw_str = self.ALLOWED_MIME_TYPES_STR.strip('"\'')
        return [m.strip().lower() for m in raw_str.split(",") if m.strip()]

    class Config:
        case_sensitive = True

settings = Settings()

if settings.STORAGE_BACKEND == "local" and not os.path.exists(settings.UPLOAD_DIR):
    try:
        os.makedirs(settings.UPLOAD_DIR)
    except OSError as e:
        logging.getLogger(__name__).warning(f"Could not create storage path {settings.UPLOAD_DIR}: {e}")
