from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional

class Settings(BaseSettings):
    PROJECT_NAME: str = "Package Search API"
    VERSION: str = "1.0.0"

    # Solr core holding the package documents
    SOLR_URL: str = "http://localhost:8983/solr"
    SOLR_CORE: str = "packages"
    SOLR_TIMEOUT: float = 10.0

    # Relational package store
    DATABASE_URL: Optional[str] = None
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "packagist"
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "postgres"

    # Download counters, favers, trending scores and the run lock
    REDIS_URL: str = "redis://localhost:6379/0"

    CACHE_DIR: str = "var/cache"
    LOCK_NAME: str = "packagist:solr:index"
    LOCK_TTL: int = 3600
    INDEX_BATCH_SIZE: int = 50

    # Hosted-search contract
    INDEX_NAME: str = ""
    BASE_URL: str = "http://localhost:8000"
    DEFAULT_PER_PAGE: int = 15
    CACHE_MAX_AGE: int = 300

    class Config:
        env_file = ".env"
        extra = "ignore"

@lru_cache()
def get_settings():
    return Settings()
