import os
from typing import List
from pydantic import model_validator
from pydantic_settings import BaseSettings
from dotenv import load_dotenv

load_dotenv()

TESTING = os.getenv("TESTING", "False") == "True"

class Settings(BaseSettings):
    APP_NAME: str = "Linker API"
    BASE_URL: str = os.getenv("BASE_URL", "http://localhost:8000")
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    DATABASE_URL: str = "sqlite:///./test.db" if TESTING else os.getenv("DATABASE_URL", "sqlite:///./linker.db")

    REDIS_HOST: str = os.getenv("REDIS_HOST", "localhost")
    REDIS_PORT: int = int(os.getenv("REDIS_PORT", 6379))
    REDIS_DB: int = int(os.getenv("REDIS_DB", 0))
    CACHE_EXPIRY: int = 3600

    SECRET_KEY: str = os.getenv("SECRET_KEY", "your-secret-key-change-this")
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 24 * 60
    TOKEN_ISSUER: str = "linker"

    DEFAULT_SHORT_CODE_LENGTH: int = 7

    # Префиксы публичных маршрутов: /s/<код> для ссылок, /f/<код> для файлов
    UNIFIED_PREFIX: str = os.getenv("UNIFIED_PREFIX", "")
    LINK_PREFIX: str = os.getenv("LINK_PREFIX", "")
    FILE_PREFIX: str = os.getenv("FILE_PREFIX", "")

    ANALYTICS: bool = True

    UPLOAD_RATE_LIMIT: int = 10
    UPLOAD_RATE_WINDOW: int = 3600
    RATE_LIMIT_SWEEP_INTERVAL: int = 3600

    S3_ENABLED: bool = False
    S3_ENDPOINT: str = os.getenv("S3_ENDPOINT", "")
    S3_REGION: str = os.getenv("S3_REGION", "us-east-1")
    S3_ACCESS_KEY_ID: str = os.getenv("S3_ACCESS_KEY_ID", "")
    S3_SECRET_ACCESS_KEY: str = os.getenv("S3_SECRET_ACCESS_KEY", "")
    S3_BUCKET_NAME: str = os.getenv("S3_BUCKET_NAME", "linker-files")
    S3_USE_SSL: bool = True
    S3_MAX_FILE_SIZE_MB: int = 100
    S3_ALLOWED_MIME_TYPES: List[str] = [
        "image/jpeg", "image/png", "image/gif", "image/webp",
        "application/pdf", "text/plain", "text/csv",
        "application/zip", "application/json",
        "video/mp4", "video/webm",
        "audio/mpeg", "audio/wav",
    ]
    S3_UPLOAD_TIMEOUT: float = 30.0
    S3_DOWNLOAD_TIMEOUT: float = 30.0
    S3_DELETE_TIMEOUT: float = 10.0

    @model_validator(mode="after")
    def resolve_prefixes(self):
        """Заполняет префиксы маршрутов из общего префикса или значениями по умолчанию"""
        if self.UNIFIED_PREFIX:
            self.LINK_PREFIX = self.LINK_PREFIX or self.UNIFIED_PREFIX
            self.FILE_PREFIX = self.FILE_PREFIX or self.UNIFIED_PREFIX
        else:
            self.LINK_PREFIX = self.LINK_PREFIX or "s"
            self.FILE_PREFIX = self.FILE_PREFIX or "f"
        return self

settings = Settings()
