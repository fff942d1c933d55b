"""GPU process routes — listing, security context and process control."""

import asyncio

from fastapi import APIRouter, Depends

from ...dependencies import get_gpu_process_source, get_process_controller
from ...gpu.control import ProcessController
from ...gpu.privileges import get_security_context
from ...gpu.processes import GpuProcessSource
from ..schemas import PriorityRequest

router = APIRouter(prefix="/gpu", tags=["gpu"])


async def _run(fn, *args):
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, fn, *args)


@router.get("/processes")
async def list_gpu_processes(source: GpuProcessSource = Depends(get_gpu_process_source)):
    return await source.list_processes()


@router.get("/security")
async def security_context():
    return await _run(get_security_context)


@router.post("/processes/{pid}/kill")
async def kill_process(
    pid: int,
    controller: ProcessController = Depends(get_process_controller),
    source: GpuProcessSource = Depends(get_gpu_process_source),
):
    await _run(controller.kill, pid)
    source.invalidate()
    return {"success": True, "message": f"Successfully killed process with PID {pid}", "pid": pid}


@router.post("/processes/{pid}/suspend")
async def suspend_process(
    pid: int,
    controller: ProcessController = Depends(get_process_controller),
    source: GpuProcessSource = Depends(get_gpu_process_source),
):
    await _run(controller.suspend, pid)
    source.invalidate()
    return {"success": True, "message": f"Successfully suspended process with PID {pid}", "pid": pid}


@router.post("/processes/{pid}/resume")
async def resume_process(
    pid: int,
    controller: ProcessController = Depends(get_process_controller),
    source: GpuProcessSource = Depends(get_gpu_process_source),
):
    await _run(controller.resume, pid)
    source.invalidate()
    return {"success": True, "message": f"Successfully resumed process with PID {pid}", "pid": pid}


@router.post("/processes/{pid}/priority")
async def set_process_priority(
    pid: int,
    body: PriorityRequest,
    controller: ProcessController = Depends(get_process_controller),
):
    level = await _run(controller.set_priority, pid, body.priority)
    return {
        "success": True,
        "message": f"Successfully set priority of process {pid} to {level}",
        "pid": pid,
        "priority": level,
    }
