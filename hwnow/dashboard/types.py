"""Immutable dashboard state types.

Mutations never edit these in place: the store builds new tuples and swaps
them in, so any previously published state stays a valid snapshot.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Optional


class WidgetType(str, Enum):
    CPU = "cpu"
    RAM = "ram"
    DISK_READ = "disk_read"
    DISK_WRITE = "disk_write"
    NET_SENT = "net_sent"
    NET_RECV = "net_recv"
    GPU = "gpu"
    GPU_PROCESS = "gpu_process"
    SYSTEM_UPTIME = "system_uptime"
    PROCESS_MONITOR = "process_monitor"
    BATTERY = "battery"
    DISK_SPACE = "disk_space"
    NETWORK_STATUS = "network_status"
    MEMORY_DETAIL = "memory_detail"
    SYSTEM_LOG = "system_log"


def _freeze(config: Optional[Mapping[str, Any]]) -> Mapping[str, Any]:
    return MappingProxyType(dict(config or {}))


@dataclass(frozen=True)
class Widget:
    """A dashboard tile. ``widget_type`` stays a plain string so unknown
    types stored by newer clients still load."""

    id: str
    widget_type: str
    config: Mapping[str, Any] = field(default_factory=dict, hash=False)

    def __post_init__(self):
        object.__setattr__(self, "config", _freeze(self.config))

    def with_config(self, partial: Mapping[str, Any]) -> "Widget":
        """Shallow-merge ``partial`` into the config."""
        return replace(self, config={**self.config, **partial})


@dataclass(frozen=True)
class LayoutItem:
    """Grid placement of one widget on the 12-column grid."""

    i: str
    x: int = 0
    y: int = 0
    w: int = 6
    h: int = 2

    def as_dict(self) -> dict:
        return {"x": self.x, "y": self.y, "w": self.w, "h": self.h}


@dataclass(frozen=True)
class Page:
    id: str
    name: str
    widgets: tuple[Widget, ...] = ()
    layouts: tuple[LayoutItem, ...] = ()

    def layout_for(self, widget_id: str) -> Optional[LayoutItem]:
        for item in self.layouts:
            if item.i == widget_id:
                return item
        return None

    def find_widget(self, widget_id: str) -> Optional[Widget]:
        for widget in self.widgets:
            if widget.id == widget_id:
                return widget
        return None


@dataclass(frozen=True)
class DashboardState:
    pages: tuple[Page, ...] = ()
    active_page_index: int = 0
    is_initialized: bool = False

    @property
    def active_page(self) -> Optional[Page]:
        if 0 <= self.active_page_index < len(self.pages):
            return self.pages[self.active_page_index]
        return None

    def page_index(self, page_id: str) -> int:
        for index, page in enumerate(self.pages):
            if page.id == page_id:
                return index
        return -1
