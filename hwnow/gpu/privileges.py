"""Elevation level of the running process."""

from __future__ import annotations

import ctypes
import os
import sys


_SUDO_GROUPS = ("sudo", "wheel", "admin")


def _windows_is_admin() -> bool:
    try:
        return bool(ctypes.windll.shell32.IsUserAnAdmin())
    except (AttributeError, OSError):
        return False


def _unix_groups() -> set[str]:
    import grp
    names = set()
    for gid in os.getgroups():
        try:
            names.add(grp.getgrgid(gid).gr_name)
        except KeyError:
            continue
    return names


def elevation_level(platform: str | None = None) -> str:
    """``admin``, ``root``, ``sudo`` or ``user``."""
    platform = platform or sys.platform
    if platform.startswith("win"):
        return "admin" if _windows_is_admin() else "user"
    if os.geteuid() == 0:
        return "root"
    if _unix_groups() & set(_SUDO_GROUPS):
        return "sudo"
    return "user"


def is_elevated(platform: str | None = None) -> bool:
    """True when the process itself runs with administrative rights.

    Membership of a sudo group does not count: the process still runs
    unprivileged.
    """
    return elevation_level(platform) in ("admin", "root")


def get_security_context() -> dict:
    level = elevation_level()
    elevated = level in ("admin", "root")
    recommendations = []
    if not elevated:
        if sys.platform.startswith("win"):
            recommendations.append("Run HWnow as administrator to control GPU processes.")
        else:
            recommendations.append("Run HWnow with sudo to control GPU processes of other users.")
    return {
        "platform": sys.platform,
        "elevation": level,
        "is_elevated": elevated,
        "can_control_processes": elevated,
        "recommendations": recommendations,
    }
