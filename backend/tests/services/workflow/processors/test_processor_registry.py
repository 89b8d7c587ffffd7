"""Tests for ProcessorRegistry, the processor base class and processor errors."""

from typing import Any

import pytest
from pydantic import BaseModel

from flowdrop.services.workflow.processors import (
    BaseProcessor,
    ProcessorConfigurationError,
    ProcessorMetrics,
    ProcessorNotFoundError,
    ProcessorRegistry,
    ProcessorSettings,
    ProcessorValidationError,
    get_registry,
    register_builtin_processors,
)


class GreetInput(BaseModel):
    name: str


class GreetOutput(BaseModel):
    greeting: str


class GreetConfig(ProcessorSettings):
    punctuation: str = "!"
    repeat: int = 1


class GreetProcessor(BaseProcessor[GreetInput, GreetOutput]):
    """Processor used to exercise the base class lifecycle."""

    processor_type = "greet"
    input_schema = GreetInput
    output_schema = GreetOutput
    config_schema = GreetConfig

    async def process(self, validated_input: GreetInput, config: GreetConfig) -> GreetOutput:
        return GreetOutput(greeting=f"Hello {validated_input.name}{config.punctuation}" * config.repeat)


class SloppyProcessor(GreetProcessor):
    """Returns a plain dict instead of the output model."""

    processor_type = "sloppy"

    async def process(self, validated_input: GreetInput, config: GreetConfig) -> Any:
        return {"unexpected": True}


class TestProcessorRegistry:
    """Test registration and lookup."""

    def test_register_and_create(self):
        """Test a registered class is instantiated by create."""
        registry = ProcessorRegistry()
        registry.register("greet", GreetProcessor)

        processor = registry.create("greet")

        assert isinstance(processor, GreetProcessor)
        assert registry.has("greet")
        assert "greet" in registry
        assert len(registry) == 1

    def test_factory_callable(self):
        """Test any zero-argument callable works as a factory."""
        registry = ProcessorRegistry()
        created = []

        def factory() -> GreetProcessor:
            processor = GreetProcessor()
            created.append(processor)
            return processor

        registry.register("greet", factory)

        assert registry.create("greet") is created[0]

    def test_register_replaces_existing(self):
        """Test re-registering a key replaces the factory."""
        registry = ProcessorRegistry()
        registry.register("greet", GreetProcessor)
        registry.register("greet", SloppyProcessor)

        assert isinstance(registry.create("greet"), SloppyProcessor)
        assert len(registry) == 1

    def test_register_empty_type_rejected(self):
        """Test an empty processor type is rejected."""
        with pytest.raises(ValueError, match="processor_type is required"):
            ProcessorRegistry().register("", GreetProcessor)

    def test_unknown_type_raises(self):
        """Test lookups of unknown types raise ProcessorNotFoundError."""
        registry = ProcessorRegistry()

        with pytest.raises(ProcessorNotFoundError) as exc_info:
            registry.create("missing")

        assert exc_info.value.processor_type == "missing"
        assert str(exc_info.value) == "Processor type 'missing' not found in registry"

    def test_unregister(self):
        """Test unregister reports whether the type existed."""
        registry = ProcessorRegistry()
        registry.register("greet", GreetProcessor)

        assert registry.unregister("greet") is True
        assert registry.unregister("greet") is False
        assert "greet" not in registry

    def test_list_registered_in_order(self):
        """Test registration order is preserved."""
        registry = ProcessorRegistry()
        registry.register("b", GreetProcessor)
        registry.register("a", GreetProcessor)

        assert registry.list_registered() == ["b", "a"]

    def test_builtin_registration(self):
        """Test the built-in processors register under their type keys."""
        registry = register_builtin_processors(ProcessorRegistry())

        assert registry.list_registered() == [
            "text_input",
            "text_transform",
            "if_else",
            "text_output",
        ]

    def test_global_registry_is_singleton(self):
        """Test get_registry returns one populated instance."""
        registry = get_registry()

        assert registry is get_registry()
        assert "text_input" in registry


class TestBaseProcessor:
    """Test the processor lifecycle."""

    @pytest.mark.asyncio
    async def test_execute_runs_lifecycle(self):
        """Test execute validates, processes and serializes."""
        output = await GreetProcessor().execute({"name": "Ada"}, {"punctuation": "?"})

        assert output == {"greeting": "Hello Ada?"}

    @pytest.mark.asyncio
    async def test_execute_fills_metrics(self):
        """Test per-phase timings and payload sizes are recorded."""
        metrics = ProcessorMetrics(processor_type="greet", node_id="n1", execution_id="p1")

        await GreetProcessor().execute({"name": "Ada"}, {}, metrics)

        assert metrics.input_size_bytes > 0
        assert metrics.output_size_bytes > 0
        assert metrics.process_duration_ms >= 0

    @pytest.mark.asyncio
    async def test_invalid_input_raises_validation_error(self):
        """Test missing required input fields raise ProcessorValidationError."""
        with pytest.raises(ProcessorValidationError) as exc_info:
            await GreetProcessor().execute({})

        assert exc_info.value.processor == "greet"
        assert exc_info.value.errors[0]["loc"] == ["name"]

    @pytest.mark.asyncio
    async def test_invalid_config_raises_configuration_error(self):
        """Test a config that fails the schema raises ProcessorConfigurationError."""
        with pytest.raises(ProcessorConfigurationError) as exc_info:
            await GreetProcessor().execute({"name": "Ada"}, {"repeat": "many"})

        assert exc_info.value.detail.startswith("repeat:")
        assert str(exc_info.value).startswith("Invalid configuration for greet: repeat:")

    @pytest.mark.asyncio
    async def test_engine_config_keys_pass_through(self):
        """Test engine keys in the node config do not break validation."""
        output = await GreetProcessor().execute({"name": "Ada"}, {"timeout": 5, "priority": 1})

        assert output == {"greeting": "Hello Ada!"}

    @pytest.mark.asyncio
    async def test_bad_output_raises_validation_error(self):
        """Test an output that is not the output model is rejected."""
        with pytest.raises(ProcessorValidationError):
            await SloppyProcessor().execute({"name": "Ada"})

    def test_validate_inputs(self):
        """Test validate_inputs reports without raising."""
        processor = GreetProcessor()

        assert processor.validate_inputs({"name": "Ada"}) is True
        assert processor.validate_inputs({"name": None}) is False

    def test_schemas(self):
        """Test JSON schemas are exported from the pydantic models."""
        processor = GreetProcessor()

        assert processor.get_input_schema()["required"] == ["name"]
        assert "greeting" in processor.get_output_schema()["properties"]
        assert "punctuation" in processor.get_config_schema()["properties"]
        assert processor.name == "greet"
