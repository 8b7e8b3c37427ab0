"""Answer and flow validation.

Provides per-question rule checks used while a flow is filled in, the
whole-response check run on questionnaire submission, and parsing of flow
content into the typed ``Flow`` model.
"""

import math
import re
from collections.abc import Collection, Mapping
from typing import Any, Optional

from pydantic import ValidationError as PydanticValidationError
from survey_assist_utils.logging import get_logger

from models.flow import ChoiceQuestion, Flow, SliderQuestion, TextQuestion
from models.progress import Answer
from utils.conditional_utils import get_visible_questions
from utils.errors import ValidationError
from utils.progress_utils import REQUIRED_MESSAGE, has_value, is_answered

logger = get_logger(__name__, level="INFO")

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
EMAIL_MESSAGE = "Please enter a valid email address"
STEP_TOLERANCE = 1e-9


def validate_email(email: str) -> tuple[bool, Optional[str]]:
    """Checks an email address.

    Args:
        email (str): The address to check.

    Returns:
        tuple[bool, Optional[str]]: Validity and the error message, if any.
    """
    if EMAIL_RE.fullmatch(email.strip()):
        return True, None
    return False, EMAIL_MESSAGE


def _validate_text(question: TextQuestion, value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return "Please enter text"

    rules = question.validation
    length = len(value.strip())
    if rules.min_length is not None and length < rules.min_length:
        return f"Please enter at least {rules.min_length} characters"
    if rules.max_length is not None and length > rules.max_length:
        return f"Please enter no more than {rules.max_length} characters"
    if rules.pattern and not re.fullmatch(rules.pattern, value):
        return "Please enter a value in the expected format"
    if question.type == "email":
        _, error = validate_email(value)
        return error
    return None


def _validate_slider(question: SliderQuestion, value: Any) -> Optional[str]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return "Please choose a number"
    try:
        finite = math.isfinite(value)
    except OverflowError:
        finite = False
    if not finite:
        return "Please choose a number"

    rules = question.validation
    if rules.min_value is not None and value < rules.min_value:
        return f"Please choose a value of at least {rules.min_value:g}"
    if rules.max_value is not None and value > rules.max_value:
        return f"Please choose a value of no more than {rules.max_value:g}"
    if rules.step is not None:
        base = rules.min_value or 0
        steps = (value - base) / rules.step
        if abs(steps - round(steps)) > STEP_TOLERANCE:
            return f"Please choose a value in steps of {rules.step:g}"
    return None


def _validate_choice(question: ChoiceQuestion, value: Any) -> Optional[str]:
    allowed = set(question.option_values())

    if not question.is_multi_value:
        if not isinstance(value, str):
            return "Please choose one option"
        if value not in allowed:
            return "Please choose one of the listed options"
        return None

    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        return "Please choose from the listed options"
    if any(item not in allowed for item in value):
        return "Please choose from the listed options"
    if len(set(value)) != len(value):
        return "Each option can only be chosen once"

    if question.type == "ranking":
        if len(value) != len(allowed):
            return "Please rank every option"
        return None

    min_selected = question.validation.min_selected
    if min_selected is not None and len(value) < min_selected:
        return f"Please select at least {min_selected} options"
    return None


def validate_answer(question: Any, value: Any) -> Optional[str]:
    """Checks an answer value against its question's type and rules.

    Empty values are not checked here; whether they are allowed depends on
    ``required`` and is reported by the required checks.

    Args:
        question: The question answered.
        value: The submitted value.

    Returns:
        Optional[str]: An error message, or None when the value is valid.
    """
    if not has_value(value):
        return None
    if isinstance(question, TextQuestion):
        return _validate_text(question, value)
    if isinstance(question, SliderQuestion):
        return _validate_slider(question, value)
    if isinstance(question, ChoiceQuestion):
        return _validate_choice(question, value)
    return None


def validate_questions(
    questions: list[Any], answers: Mapping[str, Answer]
) -> dict[str, str]:
    """Returns required and rule errors for the visible questions given.

    Args:
        questions (list): Questions to check (hidden ones are ignored).
        answers (Mapping[str, Answer]): Answers keyed by question id.

    Returns:
        dict[str, str]: Error messages keyed by question id.
    """
    errors: dict[str, str] = {}
    for question in get_visible_questions(questions, answers):
        answer = answers.get(question.id)
        if not is_answered(answer):
            if question.validation.required:
                errors[question.id] = REQUIRED_MESSAGE
            continue
        error = validate_answer(question, answer.value)  # type: ignore[union-attr]
        if error:
            errors[question.id] = error
    return errors


def validate_response(
    flow: Flow,
    answers: Mapping[str, Answer],
    skipped_section_ids: Collection[str] = (),
) -> dict[str, str]:
    """Validates a whole response before submission.

    Args:
        flow (Flow): The flow answered.
        answers (Mapping[str, Answer]): Answers keyed by question id.
        skipped_section_ids (Collection[str]): Sections left out of the check.

    Returns:
        dict[str, str]: Error messages keyed by question id.
    """
    errors: dict[str, str] = {}
    for section in flow.ordered_sections():
        if section.id in skipped_section_ids:
            continue
        errors.update(validate_questions(section.questions, answers))
    return errors


def validate_flow(data: Mapping[str, Any] | str) -> Flow:
    """Parses flow content into a ``Flow``.

    Args:
        data: A JSON string or a mapping of flow content.

    Returns:
        Flow: The validated flow.

    Raises:
        ValidationError: If the content is not valid JSON or fails the schema.
    """
    try:
        if isinstance(data, str):
            return Flow.model_validate_json(data)
        return Flow.model_validate(data)
    except PydanticValidationError as err:
        logger.warning(f"Flow content failed validation: {err.error_count()} errors")
        raise ValidationError(f"Invalid flow content: {err}", cause=err) from err
