from pydantic import Field
from pydantic_settings import BaseSettings


class WorkflowSettings(BaseSettings):
    """
    Workflow engine settings.
    Loaded from .env with prefix WORKFLOW_*
    """

    default_timeout_seconds: float = Field(default=300.0, gt=0)
    # When False the timeout is only logged, never enforced
    enforce_timeout: bool = True
    # A PENDING_PURCHASE marker younger than this blocks other purchase attempts
    label_purchase_lease_seconds: float = Field(default=120.0, gt=0)
    idempotency_ttl_hours: int = Field(default=24, ge=1)

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_prefix": "WORKFLOW_",
        "extra": "ignore",
        "frozen": True,
    }
