"""Critical-process protection for GPU process control.

Processes are classified into protection levels. HIGH and CRITICAL processes
may not be killed, suspended, resumed or reprioritised; MEDIUM processes are
allowed with a warning.
"""

from __future__ import annotations

import sys
from dataclasses import dataclass
from enum import IntEnum
from typing import Iterable, Optional

from ..errors import ProtectedProcessError
from ..utils.logging import get_logger

logger = get_logger("gpu.protection")


class ProtectionLevel(IntEnum):
    NONE = 0
    LOW = 1
    MEDIUM = 2
    HIGH = 3
    CRITICAL = 4


@dataclass(frozen=True)
class ProtectedProcess:
    """One protection rule.

    ``name`` is matched case-insensitively against the process name; a leading
    ``^`` makes it a prefix match (``^ksoftirqd`` covers ``ksoftirqd/0``).
    ``pid_range`` restricts the rule to PIDs within the inclusive range.
    """

    name: str
    level: ProtectionLevel
    description: str
    pid_range: Optional[tuple[int, int]] = None

    def matches(self, process_name: str, pid: int) -> bool:
        if self.pid_range is not None and not self.pid_range[0] <= pid <= self.pid_range[1]:
            return False
        target = process_name.lower()
        pattern = self.name.lower()
        if pattern.startswith("^"):
            return target.startswith(pattern[1:])
        return target == pattern


_WINDOWS_RULES = (
    ProtectedProcess("System", ProtectionLevel.CRITICAL, "Windows kernel process"),
    ProtectedProcess("Registry", ProtectionLevel.CRITICAL, "Registry process"),
    ProtectedProcess("ntoskrnl.exe", ProtectionLevel.CRITICAL, "Windows kernel"),
    ProtectedProcess("smss.exe", ProtectionLevel.CRITICAL, "Session Manager"),
    ProtectedProcess("csrss.exe", ProtectionLevel.CRITICAL, "Client Server Runtime Process"),
    ProtectedProcess("wininit.exe", ProtectionLevel.CRITICAL, "Windows Initialization Process"),
    ProtectedProcess("winlogon.exe", ProtectionLevel.CRITICAL, "Windows logon process"),
    ProtectedProcess("services.exe", ProtectionLevel.CRITICAL, "Services Control Manager"),
    ProtectedProcess("lsass.exe", ProtectionLevel.CRITICAL, "Local Security Authority"),
    ProtectedProcess("dwm.exe", ProtectionLevel.HIGH, "Desktop Window Manager"),
    ProtectedProcess("svchost.exe", ProtectionLevel.HIGH, "Service Host"),
    ProtectedProcess("audiodg.exe", ProtectionLevel.HIGH, "Audio Device Graph Isolation"),
    ProtectedProcess("spoolsv.exe", ProtectionLevel.HIGH, "Print Spooler"),
    ProtectedProcess("nvcontainer.exe", ProtectionLevel.HIGH, "NVIDIA container runtime"),
    ProtectedProcess("nvdisplay.container.exe", ProtectionLevel.HIGH, "NVIDIA display container"),
    ProtectedProcess("nvidia-container.exe", ProtectionLevel.HIGH, "NVIDIA container"),
    ProtectedProcess("explorer.exe", ProtectionLevel.MEDIUM, "Windows Explorer"),
    ProtectedProcess("dllhost.exe", ProtectionLevel.MEDIUM, "COM+ surrogate"),
    ProtectedProcess("nvspcaps64.exe", ProtectionLevel.MEDIUM, "NVIDIA capture server proxy"),
)

_LINUX_RULES = (
    ProtectedProcess("init", ProtectionLevel.CRITICAL, "Init process"),
    ProtectedProcess("systemd", ProtectionLevel.CRITICAL, "systemd init", pid_range=(1, 1)),
    ProtectedProcess("kthreadd", ProtectionLevel.CRITICAL, "Kernel thread daemon"),
    ProtectedProcess("^ksoftirqd", ProtectionLevel.CRITICAL, "Software interrupt daemon"),
    ProtectedProcess("^migration", ProtectionLevel.CRITICAL, "CPU migration thread"),
    ProtectedProcess("^rcu_", ProtectionLevel.CRITICAL, "RCU thread"),
    ProtectedProcess("^watchdog", ProtectionLevel.CRITICAL, "Hardware watchdog"),
    ProtectedProcess("^kworker", ProtectionLevel.HIGH, "Kernel worker thread"),
    ProtectedProcess("systemd-journald", ProtectionLevel.HIGH, "Journal daemon"),
    ProtectedProcess("systemd-logind", ProtectionLevel.HIGH, "Login manager"),
    ProtectedProcess("dbus-daemon", ProtectionLevel.HIGH, "D-Bus message bus"),
    ProtectedProcess("Xorg", ProtectionLevel.HIGH, "X server"),
    ProtectedProcess("nvidia-persistenced", ProtectionLevel.HIGH, "NVIDIA persistence daemon"),
    ProtectedProcess("gnome-shell", ProtectionLevel.MEDIUM, "Desktop shell"),
    ProtectedProcess("kwin_x11", ProtectionLevel.MEDIUM, "KDE window manager"),
    ProtectedProcess("kwin_wayland", ProtectionLevel.MEDIUM, "KDE window manager"),
    ProtectedProcess("sshd", ProtectionLevel.MEDIUM, "SSH daemon"),
)

_DARWIN_RULES = (
    ProtectedProcess("launchd", ProtectionLevel.CRITICAL, "launchd"),
    ProtectedProcess("kernel_task", ProtectionLevel.CRITICAL, "Kernel"),
    ProtectedProcess("WindowServer", ProtectionLevel.HIGH, "Window server"),
    ProtectedProcess("loginwindow", ProtectionLevel.HIGH, "Login window"),
    ProtectedProcess("Finder", ProtectionLevel.MEDIUM, "Finder"),
)


def _rules_for(platform: str) -> tuple[ProtectedProcess, ...]:
    if platform.startswith("win"):
        return _WINDOWS_RULES
    if platform == "darwin":
        return _DARWIN_RULES
    return _LINUX_RULES


class ProcessProtection:
    """Looks up the protection level of a (name, pid) pair."""

    def __init__(self, extra_protected: Iterable[str] = (), platform: str | None = None):
        self.platform = platform or sys.platform
        configured = tuple(
            ProtectedProcess(name, ProtectionLevel.CRITICAL, "Configured protected process")
            for name in extra_protected
            if name
        )
        self._rules = configured + _rules_for(self.platform)

    def _dynamic_rule(self, pid: int) -> Optional[ProtectedProcess]:
        if pid <= 0:
            return ProtectedProcess("<kernel>", ProtectionLevel.CRITICAL, "Kernel or idle process")
        if self.platform.startswith("win"):
            if pid == 4:
                return ProtectedProcess("System", ProtectionLevel.CRITICAL, "Windows System process")
            return None
        if pid == 1:
            return ProtectedProcess("init", ProtectionLevel.CRITICAL, "PID 1 init process")
        if self.platform.startswith("linux") and 2 <= pid <= 10:
            return ProtectedProcess("<kthread>", ProtectionLevel.CRITICAL, "Early kernel thread")
        return None

    def classify(self, process_name: str, pid: int) -> Optional[ProtectedProcess]:
        """Return the strongest matching rule, or None for an unprotected process."""
        matches = [rule for rule in self._rules if rule.matches(process_name, pid)]
        dynamic = self._dynamic_rule(pid)
        if dynamic is not None:
            matches.append(dynamic)
        if not matches:
            return None
        return max(matches, key=lambda rule: rule.level)

    def level_of(self, process_name: str, pid: int) -> ProtectionLevel:
        rule = self.classify(process_name, pid)
        return rule.level if rule else ProtectionLevel.NONE

    def check_control(self, process_name: str, pid: int, operation: str) -> None:
        """Raise ``ProtectedProcessError`` when ``operation`` must be refused."""
        rule = self.classify(process_name, pid)
        if rule is None:
            return
        if rule.level >= ProtectionLevel.HIGH:
            logger.warning(
                "protected_process_refused",
                operation=operation,
                pid=pid,
                name=process_name,
                level=rule.level.name,
            )
            raise ProtectedProcessError(
                f"Refusing to {operation} protected process {process_name} "
                f"(PID {pid}): {rule.description}"
            )
        if rule.level == ProtectionLevel.MEDIUM:
            logger.warning(
                "protected_process_control",
                operation=operation,
                pid=pid,
                name=process_name,
                description=rule.description,
            )
