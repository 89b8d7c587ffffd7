"""Built-in processors.

Plain text processors and the if/else gateway. They exercise the engine end
to end without external services.
"""

import json
import logging
import re
from collections.abc import Callable
from typing import Any

from flowdrop.schemas.processors import (
    IfElseConfig,
    IfElseInput,
    IfElseOutput,
    TextInputConfig,
    TextInputInput,
    TextInputOutput,
    TextOutputConfig,
    TextOutputInput,
    TextOutputOutput,
    TextTransformConfig,
    TextTransformInput,
    TextTransformOutput,
)
from flowdrop.services.workflow.processors.base import BaseProcessor
from flowdrop.services.workflow.processors.registry import ProcessorRegistry

logger = logging.getLogger(__name__)

_TRANSFORMATIONS: dict[str, Callable[[str], str]] = {
    "uppercase": str.upper,
    "lowercase": str.lower,
    "titlecase": str.title,
    "reverse": lambda text: text[::-1],
    "strip": str.strip,
}


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return str(value)


class TextInputProcessor(BaseProcessor[TextInputInput, TextInputOutput]):
    """Emits the run's ``data`` input, or the configured default text."""

    processor_type = "text_input"
    input_schema = TextInputInput
    output_schema = TextInputOutput
    config_schema = TextInputConfig

    async def process(
        self, validated_input: TextInputInput, config: TextInputConfig
    ) -> TextInputOutput:
        text = config.default_value
        if validated_input.data is not None:
            text = _as_text(validated_input.data)
        return TextInputOutput(text=text)


class TextTransformProcessor(BaseProcessor[TextTransformInput, TextTransformOutput]):
    """Applies a string transformation, then the configured prefix and suffix."""

    processor_type = "text_transform"
    input_schema = TextTransformInput
    output_schema = TextTransformOutput
    config_schema = TextTransformConfig

    async def process(
        self, validated_input: TextTransformInput, config: TextTransformConfig
    ) -> TextTransformOutput:
        original = validated_input.data
        if original is None:
            original = validated_input.text
        text = _as_text(original)

        text = _TRANSFORMATIONS[config.transformation_type](text)

        result = f"{config.prefix}{text}{config.suffix}"
        return TextTransformOutput(
            text=result,
            transformed_data=result,
            original_data=original,
            transformation_applied=config.transformation_type,
        )


class IfElseProcessor(BaseProcessor[IfElseInput, IfElseOutput]):
    """Boolean gateway comparing its input against ``match_text``.

    The taken branch is reported in ``active_branches`` as ``"true"`` or
    ``"false"``; orchestrators use it to gate trigger edges.
    """

    processor_type = "if_else"
    is_gateway = True
    input_schema = IfElseInput
    output_schema = IfElseOutput
    config_schema = IfElseConfig

    async def process(self, validated_input: IfElseInput, config: IfElseConfig) -> IfElseOutput:
        value = validated_input.data
        if value is None:
            value = validated_input.text
        result = self.evaluate(_as_text(value), config)
        active_branch = "true" if result else "false"

        logger.debug(
            "If/else evaluated %s %r vs %r -> %s",
            config.operator,
            value,
            config.match_text,
            active_branch,
        )

        return IfElseOutput(
            active_branches=active_branch,
            result=result,
            input_value=value,
            execution_metadata={"gateway_type": "branch", "flow_control": True},
        )

    @staticmethod
    def evaluate(text: str, config: IfElseConfig) -> bool:
        """Compare ``text`` with the configured match text."""
        if config.operator == "regex":
            flags = 0 if config.case_sensitive else re.IGNORECASE
            try:
                return re.search(config.match_text, text, flags) is not None
            except re.error as e:
                raise ValueError(f"Invalid regex pattern '{config.match_text}': {e}") from e

        match_text = config.match_text
        if not config.case_sensitive:
            text = text.lower()
            match_text = match_text.lower()

        if config.operator == "equals":
            return text == match_text
        if config.operator == "not_equals":
            return text != match_text
        if config.operator == "contains":
            return match_text in text
        if config.operator == "starts_with":
            return text.startswith(match_text)
        if config.operator == "ends_with":
            return text.endswith(match_text)
        raise ValueError(f"Unknown operator: {config.operator}")


class TextOutputProcessor(BaseProcessor[TextOutputInput, TextOutputOutput]):
    """Renders its ``text`` input (or the first input) as a bounded string."""

    processor_type = "text_output"
    input_schema = TextOutputInput
    output_schema = TextOutputOutput
    config_schema = TextOutputConfig

    async def process(
        self, validated_input: TextOutputInput, config: TextOutputConfig
    ) -> TextOutputOutput:
        value = validated_input.text
        if value in (None, "") and validated_input.model_extra:
            value = next(iter(validated_input.model_extra.values()))

        text = _as_text(value)
        if len(text) > config.max_length:
            text = text[: config.max_length] + "..."
        return TextOutputOutput(output=text, length=len(text))


BUILTIN_PROCESSORS: tuple[type[BaseProcessor[Any, Any]], ...] = (
    TextInputProcessor,
    TextTransformProcessor,
    IfElseProcessor,
    TextOutputProcessor,
)


def register_builtin_processors(registry: ProcessorRegistry) -> ProcessorRegistry:
    """Register the built-in processors into ``registry``.

    Returns:
        The same registry, for chaining.
    """
    for processor_class in BUILTIN_PROCESSORS:
        registry.register(processor_class.processor_type, processor_class)
    return registry
