from .database import DatabaseSettings
from .outbox import OutboxSettings
from .shipping import ShipEngineSettings
from .workflow import WorkflowSettings

__all__ = ["DatabaseSettings", "OutboxSettings", "ShipEngineSettings", "WorkflowSettings"]
