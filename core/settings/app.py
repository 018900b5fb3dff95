# core/settings/app.py
from functools import lru_cache

from core.settings.sections import (
    DatabaseSettings,
    OutboxSettings,
    ShipEngineSettings,
    WorkflowSettings,
)


class AppSettings:
    """
    Central application settings aggregator.
    Sections are loaded inside __init__ to prevent eager evaluation at
    import time. The aggregate is read-only once built.
    """

    __slots__ = ("database", "workflow", "outbox", "shipengine")

    def __init__(
        self,
        database: DatabaseSettings | None = None,
        workflow: WorkflowSettings | None = None,
        outbox: OutboxSettings | None = None,
        shipengine: ShipEngineSettings | None = None,
    ):
        object.__setattr__(self, "database", database or DatabaseSettings())
        object.__setattr__(self, "workflow", workflow or WorkflowSettings())
        object.__setattr__(self, "outbox", outbox or OutboxSettings())
        object.__setattr__(self, "shipengine", shipengine or ShipEngineSettings())

    def __setattr__(self, name, value):
        raise AttributeError("AppSettings is read-only")


@lru_cache()
def get_app_settings() -> AppSettings:
    """Return cached global settings for the entire app."""
    return AppSettings()
