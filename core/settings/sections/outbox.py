from pydantic import Field
from pydantic_settings import BaseSettings


class OutboxSettings(BaseSettings):
    """
    Outbox dispatcher settings.
    Loaded from .env with prefix OUTBOX_*
    """

    enabled: bool = True
    batch_size: int = Field(default=100, ge=1)
    max_attempts: int = Field(default=10, ge=1)
    max_backoff_seconds: int = 512
    retention_days: int = 7
    # Background worker cadence
    poll_interval_seconds: float = Field(default=2.0, gt=0)
    failed_check_interval_seconds: float = Field(default=3600.0, gt=0)
    cleanup_interval_seconds: float = Field(default=86400.0, gt=0)

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_prefix": "OUTBOX_",
        "extra": "ignore",
        "frozen": True,
    }
