"""HWnow — hardware resource monitor with a persistent widget dashboard."""

__version__ = "0.9.0"
