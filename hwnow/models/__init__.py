"""SQLAlchemy models package."""

from .base import Base
from .page import Page
from .widget_state import WidgetState
from .resource_log import ResourceLog

__all__ = ["Base", "Page", "WidgetState", "ResourceLog"]
