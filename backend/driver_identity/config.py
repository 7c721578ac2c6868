import os
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = os.getenv("DATABASE_URL", "")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    correlation_batch_size: int = int(os.getenv("CORRELATION_BATCH_SIZE", "500"))
    correlation_min_confidence: float = float(os.getenv("CORRELATION_MIN_CONFIDENCE", "0.7"))
    fuzzy_min_score: float = float(os.getenv("FUZZY_MIN_SCORE", "0.7"))
    correlation_max_workers: int = int(os.getenv("CORRELATION_MAX_WORKERS", "1"))

    class Config:
        env_file = ".env"
        case_sensitive = False


settings = Settings()

FUZZY_MIN_SCORE = settings.fuzzy_min_score
