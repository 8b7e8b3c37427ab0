"""Conditional display of questions.

A question with ``conditional_logic`` is shown only when the answer to the
referenced question satisfies the rule. A missing referenced answer always
hides the question, whatever the operator, and unknown operators hide it too.
"""

from collections.abc import Iterable, Mapping
from typing import Any, Optional, TypeVar

from models.flow import BaseQuestion, ConditionalLogic
from models.progress import Answer

Q = TypeVar("Q", bound=BaseQuestion)


def _to_number(value: Any) -> Optional[float]:
    """Numeric coercion; returns None when the value is not numeric."""
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def _to_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    return None


def _to_text(value: Any) -> str:
    """String form of an answer; whole floats drop the trailing ``.0``."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _coerce_like(value: Any, expected: Any) -> Any:
    """Coerces ``value`` to the type of ``expected``; None if impossible."""
    if isinstance(expected, bool):
        return _to_bool(value)
    if isinstance(expected, (int, float)):
        return _to_number(value)
    if isinstance(value, list):
        return None
    return _to_text(value)


def _values_equal(value: Any, expected: Any) -> bool:
    coerced = _coerce_like(value, expected)
    if coerced is None:
        return False
    if isinstance(expected, (int, float)) and not isinstance(expected, bool):
        return coerced == float(expected)
    return coerced == expected


def _contains(value: Any, expected: Any) -> bool:
    needle = _to_text(expected).lower()
    if isinstance(value, list):
        return any(needle in _to_text(item).lower() for item in value)
    return needle in _to_text(value).lower()


def evaluate_condition(
    logic: ConditionalLogic, answers: Mapping[str, Answer]
) -> bool:
    """Evaluates a display rule against the current answers.

    Args:
        logic (ConditionalLogic): The rule to evaluate.
        answers (Mapping[str, Answer]): Answers keyed by question id.

    Returns:
        bool: True if the rule is satisfied.
    """
    answer = answers.get(logic.question_id)
    if answer is None or answer.value is None:
        return False

    value = answer.value
    operator = logic.operator

    if operator == "equals":
        return _values_equal(value, logic.value)
    if operator == "not_equals":
        return not _values_equal(value, logic.value)
    if operator in ("greater_than", "less_than"):
        left = _to_number(value)
        right = _to_number(logic.value)
        if left is None or right is None:
            return False
        return left > right if operator == "greater_than" else left < right
    if operator == "contains":
        return _contains(value, logic.value)

    return False


def should_show_question(question: BaseQuestion, answers: Mapping[str, Answer]) -> bool:
    """Returns True if the question is currently displayed."""
    if question.conditional_logic is None:
        return True
    return evaluate_condition(question.conditional_logic, answers)


def get_visible_questions(
    questions: Iterable[Q], answers: Mapping[str, Answer]
) -> list[Q]:
    """Filters questions down to those currently displayed."""
    return [question for question in questions if should_show_question(question, answers)]
