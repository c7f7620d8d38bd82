"""
Application configuration
"""
from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    """Application settings"""
    
    # API Configuration
    API_PREFIX: str = "/api/conversion"
    DEBUG: bool = False
    
    # CORS
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]
    
    # Storage
    STORAGE_DIR: str = "storage"
    MAX_UPLOAD_SIZE_MB: int = 100
    MAX_BATCH_FILES: int = 10
    
    # Job Processing
    MAX_CONCURRENT_JOBS: int = 4
    MAX_QUEUED_JOBS: int = 100
    JOB_TIMEOUT_SECONDS: int = 300  # 5 minutes
    CODEC_MAX_RETRIES: int = 2
    CODEC_RETRY_BACKOFF_SECONDS: float = 0.5
    EXTRACTION_FAIL_SOFT: bool = True
    HISTORY_LIMIT: int = 20
    
    # Artifact lifecycle
    DOWNLOAD_CLEANUP_DELAY_SECONDS: float = 5.0
    ARTIFACT_RETENTION_SECONDS: int = 86400  # 24 hours
    JOB_RECORD_TTL_SECONDS: int = 86400
    CLEANUP_INTERVAL_SECONDS: int = 300
    
    # Codec defaults
    DEFAULT_IMAGE_QUALITY: int = 90
    DEFAULT_PNG_COMPRESSION: int = 6
    
    @property
    def max_upload_bytes(self) -> int:
        return self.MAX_UPLOAD_SIZE_MB * 1024 * 1024
    
    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
