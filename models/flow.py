"""Pydantic models describing an authored flow.

This module defines the question catalogue, sections, settings and the top-level
flow (onboarding flow or questionnaire). Question types are modelled as a
discriminated union on ``type`` so that flow content loaded from JSON is
validated at the deserialisation boundary.

JSON keys are camelCase (``isOptional``, ``conditionalLogic``); attributes are
snake_case. Both forms are accepted on input.
"""

import re
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

TEXT_TYPES = ("text", "long_text", "email")
CHOICE_TYPES = ("multiple_choice", "select", "radio", "checkbox", "ranking")
MULTI_VALUE_TYPES = ("multiple_choice", "checkbox", "ranking")
QUESTION_TYPES = (*TEXT_TYPES, *CHOICE_TYPES, "slider")

CONDITION_OPERATORS = ("equals", "not_equals", "greater_than", "less_than", "contains")

ConditionValue = Union[bool, int, float, str]


class FlowModel(BaseModel):
    """Base model using camelCase aliases for JSON content."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ValidationRules(FlowModel):
    """Validation rules attached to a question.

    Attributes:
        required (bool): Whether an answer must be given.
        min_length (Optional[int]): Minimum text length.
        max_length (Optional[int]): Maximum text length.
        min_value (Optional[float]): Minimum numeric value (slider).
        max_value (Optional[float]): Maximum numeric value (slider).
        step (Optional[float]): Numeric step size (slider).
        min_selected (Optional[int]): Minimum number of selected options.
        pattern (Optional[str]): Regular expression the text must match.
    """

    required: bool = Field(False, description="Answer must be given")
    min_length: Optional[int] = Field(None, ge=0, description="Minimum text length")
    max_length: Optional[int] = Field(None, ge=0, description="Maximum text length")
    min_value: Optional[float] = Field(
        None, allow_inf_nan=False, description="Minimum numeric value"
    )
    max_value: Optional[float] = Field(
        None, allow_inf_nan=False, description="Maximum numeric value"
    )
    step: Optional[float] = Field(
        None, gt=0, allow_inf_nan=False, description="Numeric step size"
    )
    min_selected: Optional[int] = Field(
        None, ge=0, description="Minimum number of selected options"
    )
    pattern: Optional[str] = Field(None, description="Regex the text must match")

    @field_validator("pattern")
    @classmethod
    def check_pattern(cls, pattern: Optional[str]) -> Optional[str]:
        """Rejects patterns that are not valid regular expressions."""
        if pattern is not None:
            try:
                re.compile(pattern)
            except re.error as err:
                raise ValueError(f"Invalid pattern {pattern!r}: {err}") from err
        return pattern


class QuestionOption(FlowModel):
    """A selectable option for choice and ranking questions."""

    id: str = Field(..., description="Option identifier")
    text: str = Field(..., min_length=1, description="Option label")
    value: str = Field(..., description="Value stored when selected")
    description: Optional[str] = Field(None, description="Option help text")


class ConditionalLogic(FlowModel):
    """Display rule tying a question to an earlier answer.

    The operator is kept as a plain string so that content written with an
    unrecognised operator still loads; the evaluator hides such questions.
    """

    question_id: str = Field(..., description="Question whose answer is tested")
    operator: str = Field(..., description="Comparison operator")
    value: ConditionValue = Field(..., description="Value compared against")


class BaseQuestion(FlowModel):
    """Fields shared by every question type."""

    id: str = Field(..., min_length=1, description="Question identifier")
    text: str = Field(..., min_length=1, description="Question prompt")
    description: Optional[str] = Field(None, description="Help text")
    validation: ValidationRules = Field(default_factory=ValidationRules)
    conditional_logic: Optional[ConditionalLogic] = Field(
        None, description="Display condition"
    )


class TextQuestion(BaseQuestion):
    """Short text, long text or email question."""

    type: Literal["text", "long_text", "email"]
    placeholder: Optional[str] = Field(None, description="Input placeholder")


class ChoiceQuestion(BaseQuestion):
    """Question answered by picking from, or ordering, a list of options."""

    type: Literal["multiple_choice", "select", "radio", "checkbox", "ranking"]
    options: list[QuestionOption] = Field(..., min_length=1)

    @property
    def is_multi_value(self) -> bool:
        """True when the answer is a list of option values."""
        return self.type in MULTI_VALUE_TYPES

    def option_values(self) -> list[str]:
        """Returns the stored values of all options."""
        return [option.value for option in self.options]


class SliderQuestion(BaseQuestion):
    """Numeric question bounded by ``min_value``/``max_value``."""

    type: Literal["slider"]


Question = Annotated[
    Union[TextQuestion, ChoiceQuestion, SliderQuestion], Field(discriminator="type")
]


class Section(FlowModel):
    """Ordered group of questions within a flow."""

    id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1)
    description: str = ""
    order: int = Field(..., description="Position in the navigation sequence")
    is_optional: bool = Field(False, description="Section may be skipped")
    questions: list[Question] = Field(default_factory=list)


class FlowSettings(FlowModel):
    """Behavioural settings of a flow."""

    allow_skip_sections: bool = False
    require_all_sections: bool = False
    show_progress_bar: bool = True
    shuffle_sections: bool = False
    allow_save_progress: bool = True
    completion_message: str = "Thank you for completing this form."
    time_limit: Optional[int] = Field(None, ge=0, description="Minutes allowed")
    passing_score: Optional[float] = Field(None, description="Questionnaire pass mark")


class FlowMetadata(FlowModel):
    """Authoring metadata."""

    category: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    created_by: Optional[str] = None
    last_modified_by: Optional[str] = None


class Flow(FlowModel):
    """An onboarding flow or questionnaire template.

    Attributes:
        id (str): Flow identifier.
        title (str): Display title.
        description (str): Introductory text.
        version (str): Authoring version.
        type (str): ``onboarding`` or ``questionnaire``.
        status (str): ``draft``, ``published`` or ``archived``.
        is_default (bool): Whether this is the default flow for its type.
        sections (list[Section]): Sections in storage order.
        settings (FlowSettings): Behavioural settings.
        metadata (Optional[FlowMetadata]): Authoring metadata.
    """

    id: str = Field(
        ..., min_length=1, pattern=r"^[^:]+$", description="Flow identifier (no colons)"
    )
    title: str = Field(..., min_length=1)
    description: str = ""
    version: str = "1.0.0"
    type: Literal["onboarding", "questionnaire"]
    status: Literal["draft", "published", "archived"] = "draft"
    is_default: bool = False
    sections: list[Section] = Field(default_factory=list)
    settings: FlowSettings = Field(default_factory=FlowSettings)
    metadata: Optional[FlowMetadata] = None

    def ordered_sections(self) -> list[Section]:
        """Returns sections in navigation order."""
        return sorted(self.sections, key=lambda section: section.order)

    def all_questions(self) -> list[Question]:
        """Returns every question in navigation order."""
        return [
            question
            for section in self.ordered_sections()
            for question in section.questions
        ]

    def find_question(self, question_id: str) -> Optional[Question]:
        """Returns the question with the given id, if any."""
        for question in self.all_questions():
            if question.id == question_id:
                return question
        return None

    def find_section(self, section_id: str) -> Optional[Section]:
        """Returns the section with the given id, if any."""
        for section in self.sections:
            if section.id == section_id:
                return section
        return None

    @model_validator(mode="after")
    def check_structure(self) -> "Flow":
        """Checks id uniqueness, order uniqueness and condition references."""
        section_ids = [section.id for section in self.sections]
        if len(section_ids) != len(set(section_ids)):
            raise ValueError("Section ids must be unique within a flow")

        orders = [section.order for section in self.sections]
        if len(orders) != len(set(orders)):
            raise ValueError("Section order values must be unique within a flow")

        seen: set[str] = set()
        for question in self.all_questions():
            if question.id in seen:
                raise ValueError(f"Duplicate question id '{question.id}'")
            logic = question.conditional_logic
            if logic is not None and logic.question_id not in seen:
                raise ValueError(
                    f"Question '{question.id}' depends on '{logic.question_id}', "
                    "which does not appear earlier in the flow"
                )
            seen.add(question.id)

        return self
