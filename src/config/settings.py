from pydantic_settings import BaseSettings
from pathlib import Path
from typing import Optional

# Get project root (2 levels up from this file)
PROJECT_ROOT = Path(__file__).parent.parent.parent

class Settings(BaseSettings):
    # PostgreSQL (feedback store)
    postgres_host: Optional[str] = None
    postgres_port: int = 5432
    postgres_database: Optional[str] = None
    postgres_username: Optional[str] = None
    postgres_password: Optional[str] = None
    postgres_sslmode: str = "require"

    # Analytics config
    stats_timezone: str = "Europe/Oslo"
    min_aggregation_threshold: int = 5
    default_days_back: int = 30
    max_word_frequency: int = 30

    # Partitioned execution (1 = sequential)
    max_workers: int = 1
    partition_size: int = 500

    log_level: str = "INFO"

    class Config:
        env_file = str(PROJECT_ROOT / ".env")
        case_sensitive = False
