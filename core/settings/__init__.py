# Settings package
from core.settings.app import AppSettings, get_app_settings
from core.settings.sections import (
    DatabaseSettings,
    OutboxSettings,
    ShipEngineSettings,
    WorkflowSettings,
)

__all__ = [
    "AppSettings",
    "get_app_settings",
    "DatabaseSettings",
    "OutboxSettings",
    "ShipEngineSettings",
    "WorkflowSettings",
]
