"""Core application configuration and utilities.

This package contains core functionality including:
- Configuration management (config.py)
- Logging setup (logging.py)
- Application-wide exceptions (exceptions.py)
"""

from flowdrop.core.config import settings
from flowdrop.core.exceptions import AppError, FlowDropError

__all__ = [
    "AppError",
    "FlowDropError",
    "settings",
]
