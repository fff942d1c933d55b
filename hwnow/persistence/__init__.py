"""Relational persistence for dashboard pages, widgets and resource logs."""

from .repository import DashboardRepository, ResourceSample, SaveStrategy, WidgetRecord
from .resource_log import ResourceLogWriter

__all__ = [
    "DashboardRepository",
    "ResourceLogWriter",
    "ResourceSample",
    "SaveStrategy",
    "WidgetRecord",
]
