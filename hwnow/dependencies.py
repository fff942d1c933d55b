"""FastAPI dependency injection providers."""

from .config import HWnowConfig, get_config
from .database import get_session_factory
from .utils.logging import get_logger

_dep_logger = get_logger("dependencies")

_config_instance: HWnowConfig | None = None
_repository = None
_resource_monitor = None
_resource_log_writer = None
_gpu_process_source = None
_process_controller = None


def get_app_config() -> HWnowConfig:
    """Get the application config singleton."""
    global _config_instance
    if _config_instance is None:
        _config_instance = get_config()
    return _config_instance


def get_repository():
    """Get the dashboard repository singleton."""
    global _repository
    if _repository is None:
        from .persistence.repository import DashboardRepository
        config = get_app_config()
        _repository = DashboardRepository(
            get_session_factory(config),
            save_strategy=config.widget_save_strategy,
        )
    return _repository


def get_resource_monitor():
    """Get the Resource Monitor module singleton."""
    global _resource_monitor
    if _resource_monitor is None:
        from .modules.resource_monitor import ResourceMonitor
        config = get_app_config()
        _resource_monitor = ResourceMonitor(config={
            "poll_interval": config.monitoring_interval_seconds,
            "history_size": config.monitoring_history_size,
            "enable_cpu": config.enable_cpu_monitoring,
            "enable_memory": config.enable_memory_monitoring,
            "enable_disk": config.enable_disk_monitoring,
            "enable_network": config.enable_network_monitoring,
            "enable_gpu": config.enable_gpu_monitoring,
        })
    return _resource_monitor


def get_resource_log_writer():
    """Get the resource log writer singleton."""
    global _resource_log_writer
    if _resource_log_writer is None:
        from .persistence.resource_log import ResourceLogWriter
        config = get_app_config()
        _resource_log_writer = ResourceLogWriter(
            get_repository(),
            flush_interval=config.resource_log_flush_seconds,
            max_buffer=config.resource_log_buffer_size,
        )
    return _resource_log_writer


def get_gpu_process_source():
    """Get the GPU process listing singleton."""
    global _gpu_process_source
    if _gpu_process_source is None:
        from .gpu.processes import GpuProcessSource
        from .gpu.protection import ProcessProtection
        config = get_app_config()
        _gpu_process_source = GpuProcessSource(
            cache_seconds=config.gpu_info_cache_seconds,
            protection=ProcessProtection(extra_protected=config.gpu_protected_processes),
        )
    return _gpu_process_source


def get_process_controller():
    """Get the platform process controller singleton."""
    global _process_controller
    if _process_controller is None:
        from .gpu.control import create_process_controller
        config = get_app_config()
        _process_controller = create_process_controller(config.gpu_protected_processes)
        _dep_logger.info("process_controller_created", kind=type(_process_controller).__name__)
    return _process_controller
