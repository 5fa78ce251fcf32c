"""
Application configuration using Pydantic Settings
"""

from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    """Application settings with environment variable support"""
    
    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./data/inspections.db"
    DB_CACHE_SIZE_KB: int = 64000
    DB_SYNCHRONOUS: str = "NORMAL"
    DB_BUSY_TIMEOUT_MS: int = 5000
    
    # API
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000
    
    # Environment
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "text"
    
    # Remote source
    SOURCE_BASE_URL: str = "https://sewerai-public.s3.us-west-2.amazonaws.com"
    SOURCE_FILES: List[str] = [
        "sewer-inspections-part1.jsonl",
        "sewer-inspections-part2.jsonl",
        "sewer-inspections-part3.jsonl",
        "sewer-inspections-part4.jsonl",
        "sewer-inspections-part5.jsonl",
    ]
    SOURCE_TIMEOUT: float = 30.0
    DECODER_MAX_BUFFER_CHARS: int = 65536
    
    # Import
    IMPORT_CHUNK_SIZE: int = 200
    IMPORT_BATCH_SIZE: int = 100
    IMPORT_SKIP_DUPLICATES: bool = True
    IMPORT_VALIDATE: bool = True
    SYNC_INTERVAL_MINUTES: int = 0
    IMPORT_SHUTDOWN_TIMEOUT: float = 30.0
    
    # Search
    SEARCH_BACKEND: str = "auto"
    SEARCH_DEFAULT_PAGE_SIZE: int = 20
    SEARCH_MAX_PAGE_SIZE: int = 100
    SEARCH_SAMPLE_SIZE: int = 500
    SEARCH_ASSUMED_SOURCE_SIZE: int = 10000
    
    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"


settings = Settings()
