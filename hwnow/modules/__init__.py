from .base_module import BaseModule
from .metric_source import MetricSource, PsutilMetricSource
from .resource_monitor import ResourceMonitor

__all__ = ["BaseModule", "MetricSource", "PsutilMetricSource", "ResourceMonitor"]
