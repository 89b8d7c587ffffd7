"""Processor registry.

Maps processor type keys to factories. Registration is an explicit step run
at process startup (``register_builtin_processors``); the compiler and the
node runtime only ever talk to the registry.
"""

import logging
from collections.abc import Callable
from typing import Any

from flowdrop.services.workflow.processors.base import BaseProcessor
from flowdrop.services.workflow.processors.errors import ProcessorNotFoundError

logger = logging.getLogger(__name__)

ProcessorFactory = Callable[[], BaseProcessor[Any, Any]]


class ProcessorRegistry:
    """Registry for processor lookup and instantiation.

    A factory is any zero-argument callable returning a processor; a
    processor class qualifies.

    Example:
        registry = ProcessorRegistry()
        registry.register("text_input", TextInputProcessor)
        processor = registry.create("text_input")
        output = await processor.execute(inputs, config)
    """

    def __init__(self) -> None:
        self._factories: dict[str, ProcessorFactory] = {}

    def register(self, processor_type: str, factory: ProcessorFactory) -> None:
        """Register a factory for a processor type.

        Args:
            processor_type: The processor type key (e.g. "text_input")
            factory: Callable producing a processor instance

        Note:
            Registering an existing key replaces the previous factory.
        """
        if not processor_type:
            raise ValueError("processor_type is required")
        if processor_type in self._factories:
            logger.debug("Replacing processor factory for %s", processor_type)
        self._factories[processor_type] = factory

    def unregister(self, processor_type: str) -> bool:
        """Remove a processor type. Returns True if it was registered."""
        return self._factories.pop(processor_type, None) is not None

    def has(self, processor_type: str) -> bool:
        return processor_type in self._factories

    def get(self, processor_type: str) -> ProcessorFactory:
        """Get the factory for a processor type.

        Raises:
            ProcessorNotFoundError: If nothing is registered for the key
        """
        if processor_type not in self._factories:
            raise ProcessorNotFoundError(processor_type)
        return self._factories[processor_type]

    def create(self, processor_type: str) -> BaseProcessor[Any, Any]:
        """Create a processor instance.

        Raises:
            ProcessorNotFoundError: If nothing is registered for the key
        """
        return self.get(processor_type)()

    def list_registered(self) -> list[str]:
        """List registered processor types in registration order."""
        return list(self._factories.keys())

    def __contains__(self, processor_type: object) -> bool:
        return processor_type in self._factories

    def __len__(self) -> int:
        return len(self._factories)


# Module-level singleton for convenience
_registry: ProcessorRegistry | None = None


def get_registry() -> ProcessorRegistry:
    """Get the global processor registry, populated with the built-ins.

    Returns:
        The global ProcessorRegistry instance (creates on first call)
    """
    global _registry
    if _registry is None:
        from flowdrop.services.workflow.processors.builtin import (
            register_builtin_processors,
        )

        _registry = ProcessorRegistry()
        register_builtin_processors(_registry)
    return _registry
