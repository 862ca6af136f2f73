from pydantic_settings import BaseSettings
from pathlib import Path

from reviewbox.schemas import OverduePolicy

# Get the project root directory (parent of reviewbox folder)
PROJECT_ROOT = Path(__file__).parent.parent

class Settings(BaseSettings):
    """Application configuration loaded from environment variables"""
    database_url: str = f"sqlite:///{PROJECT_ROOT / 'reviewbox.db'}"
    sql_echo: bool = False

    # Applied to review dates that fall into the past when a request names no policy
    default_overdue_policy: OverduePolicy = OverduePolicy.COMPRESS_AS_COMPLETED

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    class Config:
        env_file = str(PROJECT_ROOT / ".env")
        env_prefix = "REVIEWBOX_"
        extra = "ignore"

settings = Settings()
