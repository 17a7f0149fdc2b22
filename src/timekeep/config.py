from pydantic import Field
from pydantic_settings import BaseSettings

MAX_RECLAIM_BATCH_SIZE = 25  # Upper bound of a single batch write in the session store


class Config(BaseSettings):
    """Application configuration loaded from environment variables."""

    database_url: str
    sessions_collection: str  # Collection holding session records, injected per deployment
    debug: bool = False
    default_session_timeout: int = Field(480, ge=1)  # Minutes of inactivity before a session expires
    session_retention_days: int = Field(30, ge=1)  # Sessions older than this are removed regardless of state
    scan_page_size: int = Field(100, ge=1)
    reclaim_batch_size: int = Field(MAX_RECLAIM_BATCH_SIZE, ge=1, le=MAX_RECLAIM_BATCH_SIZE)
    reclaim_batch_delay: float = Field(0.1, ge=0)  # Seconds to pause between delete batches
    cleanup_interval: int = Field(0, ge=0)  # Seconds between cleanup runs; 0 runs once and exits

    model_config = {
        "env_file": [".env"],
        "env_prefix": "TIMEKEEP_",
        "extra": "ignore",
    }
