from .backends import DashboardBackend, HttpDashboardBackend, RepositoryBackend
from .debounce import Debouncer
from .fallback import FallbackCache
from .store import DashboardStore, create_dashboard_store
from .types import DashboardState, LayoutItem, Page, Widget, WidgetType

__all__ = [
    "DashboardBackend",
    "DashboardState",
    "DashboardStore",
    "Debouncer",
    "FallbackCache",
    "HttpDashboardBackend",
    "LayoutItem",
    "Page",
    "RepositoryBackend",
    "Widget",
    "WidgetType",
    "create_dashboard_store",
]
