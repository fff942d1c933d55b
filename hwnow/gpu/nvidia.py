"""Thin wrapper around ``nvidia-smi`` CSV queries."""

from __future__ import annotations

import subprocess
import sys
from typing import Optional

from ..utils.logging import get_logger

logger = get_logger("gpu.nvidia")

_QUERY_TIMEOUT = 3


def run_query(args: list[str]) -> Optional[list[list[str]]]:
    """Run ``nvidia-smi`` with CSV output and split the rows.

    Returns None when the tool is missing, fails, or times out.
    """
    cmd = ["nvidia-smi", *args, "--format=csv,noheader,nounits"]
    kwargs = {}
    if sys.platform == "win32":
        kwargs["creationflags"] = subprocess.CREATE_NO_WINDOW
    try:
        result = subprocess.run(
            cmd, capture_output=True, text=True, timeout=_QUERY_TIMEOUT, **kwargs
        )
    except (FileNotFoundError, subprocess.TimeoutExpired, OSError) as e:
        logger.debug("nvidia_smi_unavailable", error=str(e))
        return None
    if result.returncode != 0:
        logger.debug("nvidia_smi_failed", returncode=result.returncode, stderr=result.stderr.strip())
        return None
    return [
        [part.strip() for part in line.split(",")]
        for line in result.stdout.strip().splitlines()
        if line.strip()
    ]


def _to_float(raw: str) -> Optional[float]:
    try:
        return float(raw)
    except ValueError:
        # "[N/A]", "[Not Supported]"
        return None


def query_gpu_summary() -> Optional[dict]:
    """Utilisation, memory, temperature and power of the first GPU."""
    rows = run_query([
        "--query-gpu=utilization.gpu,memory.used,memory.total,temperature.gpu,power.draw,name",
    ])
    if not rows or len(rows[0]) < 6:
        return None
    util, mem_used, mem_total, temp, power, name = rows[0][:6]
    return {
        "gpu": _to_float(util),
        "gpu_memory_used": _to_float(mem_used),
        "gpu_memory_total": _to_float(mem_total),
        "gpu_temperature": _to_float(temp),
        "gpu_power": _to_float(power),
        "gpu_name": name,
    }


def parse_compute_apps(rows: list[list[str]]) -> list[dict]:
    """Parse ``--query-compute-apps=pid,process_name,used_memory`` rows."""
    processes = []
    for row in rows:
        if len(row) < 3:
            continue
        try:
            pid = int(row[0])
        except ValueError:
            continue
        processes.append({
            "pid": pid,
            "name": row[1].replace("\\", "/").rsplit("/", 1)[-1],
            "command": row[1],
            "gpu_memory_mb": _to_float(row[2]) or 0.0,
        })
    return processes


def query_compute_apps() -> Optional[list[dict]]:
    rows = run_query(["--query-compute-apps=pid,process_name,used_memory"])
    if rows is None:
        return None
    return parse_compute_apps(rows)
