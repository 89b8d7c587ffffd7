"""Node processor framework.

Exports the processor base class, the registry and the built-in processors.
"""

from flowdrop.services.workflow.processors.base import BaseProcessor, ProcessorSettings
from flowdrop.services.workflow.processors.builtin import register_builtin_processors
from flowdrop.services.workflow.processors.errors import (
    ProcessorConfigurationError,
    ProcessorError,
    ProcessorNotFoundError,
    ProcessorValidationError,
)
from flowdrop.services.workflow.processors.metrics import MetricsCollector, ProcessorMetrics
from flowdrop.services.workflow.processors.registry import ProcessorRegistry, get_registry

__all__ = [
    "BaseProcessor",
    "MetricsCollector",
    "ProcessorConfigurationError",
    "ProcessorError",
    "ProcessorMetrics",
    "ProcessorNotFoundError",
    "ProcessorRegistry",
    "ProcessorSettings",
    "ProcessorValidationError",
    "get_registry",
    "register_builtin_processors",
]
