"""GPU process control — kill, suspend, resume and reprioritise by PID.

Every operation resolves the PID with psutil, checks it against the
protection table, then acts. The platform-specific part is only how a
priority name maps onto the OS scheduler.
"""

from __future__ import annotations

import sys
from abc import ABC, abstractmethod
from typing import Callable, Optional

import psutil

from ..errors import ProcessControlError, ProcessNotFoundError, ValidationError
from ..utils.logging import get_logger
from .privileges import is_elevated
from .protection import ProcessProtection

logger = get_logger("gpu.control")

PRIORITIES = ("low", "below_normal", "normal", "above_normal", "high", "realtime")

_NICE_VALUES = {
    "realtime": -20,
    "high": -10,
    "above_normal": -5,
    "normal": 0,
    "below_normal": 5,
    "low": 10,
}

_ALIASES = {
    "rt": "realtime",
    "abovenormal": "above_normal",
    "belownormal": "below_normal",
    "idle": "low",
}


def normalize_priority(priority: str) -> str:
    key = (priority or "").strip().lower()
    key = _ALIASES.get(key, key)
    if key not in PRIORITIES:
        raise ValidationError(
            f"Invalid priority level: {priority}. Valid options: {', '.join(PRIORITIES)}"
        )
    return key


class ProcessController(ABC):
    """Capability interface for acting on processes."""

    def __init__(
        self,
        protection: Optional[ProcessProtection] = None,
        elevated: Optional[Callable[[], bool]] = None,
    ):
        self.protection = protection or ProcessProtection()
        self._elevated = elevated or is_elevated

    def _resolve(self, pid: int, operation: str) -> psutil.Process:
        try:
            proc = psutil.Process(pid)
            name = proc.name()
        except psutil.NoSuchProcess:
            raise ProcessNotFoundError(f"Process {pid} not found") from None
        except psutil.AccessDenied as e:
            raise ProcessControlError(f"Access denied reading process {pid}") from e
        self.protection.check_control(name, pid, operation)
        logger.info("process_control", operation=operation, pid=pid, name=name)
        return proc

    def _act(self, pid: int, operation: str, fn: Callable[[psutil.Process], None]) -> None:
        proc = self._resolve(pid, operation)
        try:
            fn(proc)
        except psutil.NoSuchProcess:
            raise ProcessNotFoundError(f"Process {pid} not found") from None
        except psutil.AccessDenied as e:
            logger.warning("process_control_denied", operation=operation, pid=pid)
            raise ProcessControlError(
                f"Permission denied: cannot {operation} process {pid}"
            ) from e

    def kill(self, pid: int) -> None:
        self._act(pid, "kill", lambda p: p.kill())

    def suspend(self, pid: int) -> None:
        self._act(pid, "suspend", lambda p: p.suspend())

    def resume(self, pid: int) -> None:
        self._act(pid, "resume", lambda p: p.resume())

    def set_priority(self, pid: int, priority: str) -> str:
        level = normalize_priority(priority)
        self._act(pid, "change priority of", lambda p: self._apply_priority(p, level))
        return level

    @abstractmethod
    def _apply_priority(self, proc: psutil.Process, level: str) -> None:
        ...


class PosixProcessController(ProcessController):
    """Maps priorities onto nice values. Lowering the nice value needs root."""

    def _apply_priority(self, proc: psutil.Process, level: str) -> None:
        target = _NICE_VALUES[level]
        if target < proc.nice() and not self._elevated():
            raise ProcessControlError(
                f"Raising priority to {level} requires root privileges"
            )
        proc.nice(target)


class WindowsProcessController(ProcessController):
    """Maps priorities onto Windows priority classes."""

    _CLASSES = {
        "low": "IDLE_PRIORITY_CLASS",
        "below_normal": "BELOW_NORMAL_PRIORITY_CLASS",
        "normal": "NORMAL_PRIORITY_CLASS",
        "above_normal": "ABOVE_NORMAL_PRIORITY_CLASS",
        "high": "HIGH_PRIORITY_CLASS",
        "realtime": "REALTIME_PRIORITY_CLASS",
    }

    def _apply_priority(self, proc: psutil.Process, level: str) -> None:
        if level == "realtime" and not self._elevated():
            raise ProcessControlError("Realtime priority requires administrator rights")
        proc.nice(getattr(psutil, self._CLASSES[level]))


def create_process_controller(
    protected: tuple[str, ...] | list[str] = (),
    platform: str | None = None,
) -> ProcessController:
    platform = platform or sys.platform
    protection = ProcessProtection(extra_protected=protected, platform=platform)
    if platform.startswith("win"):
        return WindowsProcessController(protection)
    return PosixProcessController(protection)
