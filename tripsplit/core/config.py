from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List

class Settings(BaseSettings):
    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    # API Settings
    PROJECT_NAME: str = "Tripsplit API"
    API_V1_STR: str = "/api/v1"
    PROJECT_VERSION: str = "0.1.0"
    DESCRIPTION: str = "Trip bill splitting and settlement reconciliation API"

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    PUBLIC_BASE_URL: str = "http://localhost:8000"

    # MongoDB
    MONGODB_URL: str = "mongodb://localhost:27017"
    DATABASE_NAME: str = "tripsplit"

    # CORS
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:8081"]

    # JWT (tokens are issued by the auth provider, only verified here)
    SECRET_KEY: str = "change-this-in-production"
    ALGORITHM: str = "HS256"

    # OCR
    OCR_API_URL: str = "https://api.ocr.space/parse/image"
    OCR_API_KEY: str = ""
    OCR_LANGUAGES: List[str] = ["tha", "eng", "tha,eng"]
    OCR_TIMEOUT_SECONDS: int = 30
    SLIP_AMOUNT_TOLERANCE: float = 1.0

    # Cache (seconds)
    CACHE_MAX_ENTRIES: int = 50
    CACHE_DEFAULT_TTL: int = 24 * 60 * 60
    OVERVIEW_CACHE_TTL: int = 60 * 60
    BLOB_URL_CACHE_TTL: int = 24 * 60 * 60

    # Blob storage
    BLOB_BUCKET: str = "payment-proofs"
    MAX_FILE_SIZE: int = 10485760

    model_config = SettingsConfigDict(
        case_sensitive=True,
        env_file=".env"
    )

settings = Settings()
