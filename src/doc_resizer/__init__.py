"""Resize images embedded in remote structured documents."""

from .config import AppConfig, load_config
from .core import ResizeError, ResizeService
from .models import ExecutionResult, ResizeOptions, ResizeResult

__all__ = [
    "AppConfig",
    "load_config",
    "ExecutionResult",
    "ResizeError",
    "ResizeOptions",
    "ResizeResult",
    "ResizeService",
]
