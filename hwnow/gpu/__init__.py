from .control import (
    PRIORITIES,
    PosixProcessController,
    ProcessController,
    WindowsProcessController,
    create_process_controller,
)
from .privileges import get_security_context
from .processes import GpuProcessSource
from .protection import ProcessProtection, ProtectionLevel

__all__ = [
    "PRIORITIES",
    "GpuProcessSource",
    "PosixProcessController",
    "ProcessController",
    "ProcessProtection",
    "ProtectionLevel",
    "WindowsProcessController",
    "create_process_controller",
    "get_security_context",
]
