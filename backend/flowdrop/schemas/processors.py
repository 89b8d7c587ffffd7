"""Processor schemas.

Input, output and config schemas of the built-in processors. Inputs accept
extra keys because a node receives the pipeline data merged with every
upstream output; configs accept the camelCase names used by authoring tools.
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from flowdrop.services.workflow.processors.base import ProcessorSettings


class ProcessorInput(BaseModel):
    """Base input schema: known ports plus passthrough data."""

    model_config = ConfigDict(extra="allow")


class ProcessorConfigBase(ProcessorSettings):
    """Base config schema accepting aliases and engine passthrough keys."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)


# ============================================================================
# Text Input
# ============================================================================


class TextInputInput(ProcessorInput):
    """Input schema for text input nodes.

    Attributes:
        data: Text supplied with the pipeline run, overrides the default
    """

    data: Any = None


class TextInputConfig(ProcessorConfigBase):
    default_value: str = Field(default="", alias="defaultValue")


class TextInputOutput(BaseModel):
    text: str


# ============================================================================
# Text Transform
# ============================================================================

TransformationType = Literal["uppercase", "lowercase", "titlecase", "reverse", "strip"]


class TextTransformInput(ProcessorInput):
    """Input schema for text transform nodes.

    Attributes:
        data: Value to transform
        text: Used when ``data`` is absent (output of a text input node)
    """

    data: Any = None
    text: str | None = None


class TextTransformConfig(ProcessorConfigBase):
    transformation_type: TransformationType = Field(
        default="uppercase",
        alias="transformationType",
    )
    prefix: str = ""
    suffix: str = ""


class TextTransformOutput(BaseModel):
    """Output schema for text transform nodes.

    Attributes:
        text: Transformed text, for chaining into other text nodes
        transformed_data: Same as ``text``
        original_data: The value before transformation
        transformation_applied: Transformation type that was used
    """

    text: str
    transformed_data: str
    original_data: Any = None
    transformation_applied: str


# ============================================================================
# If/Else gateway
# ============================================================================

ComparisonOperator = Literal[
    "equals",
    "not_equals",
    "contains",
    "starts_with",
    "ends_with",
    "regex",
]


class IfElseInput(ProcessorInput):
    data: Any = None
    text: str | None = None


class IfElseConfig(ProcessorConfigBase):
    match_text: str = Field(default="", alias="matchText")
    operator: ComparisonOperator = "equals"
    case_sensitive: bool = Field(default=False, alias="caseSensitive")


class IfElseOutput(BaseModel):
    """Output schema for the if/else gateway.

    Attributes:
        active_branches: Comma separated branch names that were taken
            (``"true"`` or ``"false"``)
        result: Boolean outcome of the comparison
        input_value: The compared value
        execution_metadata: Gateway bookkeeping for the status API
    """

    active_branches: str
    result: bool
    input_value: Any = None
    execution_metadata: dict[str, Any] = Field(default_factory=dict)


# ============================================================================
# Text Output
# ============================================================================


class TextOutputInput(ProcessorInput):
    text: Any = None


class TextOutputConfig(ProcessorConfigBase):
    max_length: int = Field(default=1000, ge=1, alias="maxLength")


class TextOutputOutput(BaseModel):
    output: str
    length: int
