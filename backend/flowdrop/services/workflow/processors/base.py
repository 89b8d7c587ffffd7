"""Base processor abstract class.

A processor is the executable unit behind a node type. It declares pydantic
models for its inputs, outputs and configuration and implements ``process``.
The node runtime never inspects a processor beyond this contract.
"""

import time
from abc import ABC, abstractmethod
from typing import Any, ClassVar, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, ValidationError

from .errors import ProcessorConfigurationError, ProcessorValidationError
from .metrics import ProcessorMetrics, payload_size

InputT = TypeVar("InputT", bound=BaseModel)
OutputT = TypeVar("OutputT", bound=BaseModel)


class ProcessorSettings(BaseModel):
    """Base configuration model.

    Node configuration also carries engine keys (``timeout``, ``priority``,
    ``max_retries``), so unknown keys are kept as passthrough extras.
    """

    model_config = ConfigDict(extra="allow")


def _error_dicts(error: ValidationError) -> list[dict[str, Any]]:
    return [
        {"loc": list(err["loc"]), "msg": err["msg"], "type": err["type"]}
        for err in error.errors()
    ]


class BaseProcessor(ABC, Generic[InputT, OutputT]):
    """Abstract base class for all node processors.

    Provides:
    - Lifecycle (pre_process, process, post_process) driven by ``execute``
    - Input, output and config validation against pydantic schemas
    - JSON schema export for authoring tools

    Type Parameters:
        InputT: Input Pydantic model type
        OutputT: Output Pydantic model type
    """

    processor_type: ClassVar[str] = ""
    is_gateway: ClassVar[bool] = False

    # Subclasses must define these
    input_schema: type[InputT]
    output_schema: type[OutputT]
    config_schema: type[ProcessorSettings] = ProcessorSettings

    @property
    def name(self) -> str:
        return self.processor_type or self.__class__.__name__

    def validate_inputs(self, inputs: dict[str, Any]) -> bool:
        """Check inputs against the input schema without raising."""
        try:
            self.input_schema.model_validate(inputs)
        except ValidationError:
            return False
        return True

    def get_input_schema(self) -> dict[str, Any]:
        return self.input_schema.model_json_schema()

    def get_output_schema(self) -> dict[str, Any]:
        return self.output_schema.model_json_schema()

    def get_config_schema(self) -> dict[str, Any]:
        return self.config_schema.model_json_schema()

    async def execute(
        self,
        raw_inputs: dict[str, Any],
        config: dict[str, Any] | None = None,
        metrics: ProcessorMetrics | None = None,
    ) -> dict[str, Any]:
        """Run the full processing lifecycle.

        Args:
            raw_inputs: Inputs assembled from the pipeline data and upstream outputs
            config: Node configuration
            metrics: Optional metrics entry filled with per-phase timings

        Returns:
            Serialized output dictionary for downstream nodes

        Raises:
            ProcessorValidationError: If input or output validation fails
            ProcessorConfigurationError: If the configuration is invalid
        """
        start = time.perf_counter()
        validated_input = self.pre_process(raw_inputs)
        settings = self.parse_config(config or {})
        if metrics is not None:
            metrics.validation_duration_ms = (time.perf_counter() - start) * 1000
            metrics.input_size_bytes = payload_size(raw_inputs)

        start = time.perf_counter()
        result = await self.process(validated_input, settings)
        if metrics is not None:
            metrics.process_duration_ms = (time.perf_counter() - start) * 1000

        start = time.perf_counter()
        output = self.post_process(result)
        if metrics is not None:
            metrics.serialization_duration_ms = (time.perf_counter() - start) * 1000
            metrics.output_size_bytes = payload_size(output)

        return output

    def pre_process(self, inputs: dict[str, Any]) -> InputT:
        """Validate raw inputs into the typed input model.

        Raises:
            ProcessorValidationError: If validation fails
        """
        try:
            return self.input_schema.model_validate(inputs)
        except ValidationError as e:
            raise ProcessorValidationError(
                processor=self.name,
                errors=_error_dicts(e),
            ) from e

    def parse_config(self, config: dict[str, Any]) -> ProcessorSettings:
        """Validate the node configuration into the config model.

        Raises:
            ProcessorConfigurationError: If validation fails
        """
        try:
            return self.config_schema.model_validate(config)
        except ValidationError as e:
            raise ProcessorConfigurationError(
                processor=self.name,
                detail="; ".join(
                    f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
                    for err in e.errors()
                ),
            ) from e

    @abstractmethod
    async def process(self, validated_input: InputT, config: Any) -> OutputT:
        """Execute the core processing logic.

        Args:
            validated_input: Validated input model from pre_process
            config: Validated config model (an instance of ``config_schema``)

        Returns:
            Output model
        """

    def post_process(self, output: OutputT) -> dict[str, Any]:
        """Serialize the output model for downstream nodes.

        Raises:
            ProcessorValidationError: If the output is not an ``output_schema``
        """
        if not isinstance(output, self.output_schema):
            try:
                output = self.output_schema.model_validate(output)
            except ValidationError as e:
                raise ProcessorValidationError(
                    processor=self.name,
                    errors=_error_dicts(e),
                ) from e
        return output.model_dump(mode="json")
