"""Section completion and overall progress for a flow.

Only questions currently visible (see ``utils.conditional_utils``) count, and
skipped sections are left out of the totals. An answer counts only when it has
a non-empty value: empty strings, whitespace-only strings and empty lists are
treated the same as a missing answer.
"""

import math
from collections.abc import Collection, Iterable, Mapping
from typing import Any, Optional

from models.flow import Section
from models.progress import Answer, ProgressStats
from utils.conditional_utils import get_visible_questions

REQUIRED_MESSAGE = "This question is required"


def has_value(value: Any) -> bool:
    """Returns False for None, blank strings and empty lists."""
    if value is None:
        return False
    if isinstance(value, str):
        return value.strip() != ""
    if isinstance(value, list):
        return len(value) > 0
    return True


def is_answered(answer: Optional[Answer]) -> bool:
    """Returns True if the answer holds a non-empty value.

    Args:
        answer (Optional[Answer]): The answer, or None when absent.

    Returns:
        bool: False for missing answers, None, blank strings and empty lists.
    """
    return answer is not None and has_value(answer.value)


def get_missing_required(
    section: Section, answers: Mapping[str, Answer]
) -> dict[str, str]:
    """Maps each visible, required, unanswered question id to an error message."""
    return {
        question.id: REQUIRED_MESSAGE
        for question in get_visible_questions(section.questions, answers)
        if question.validation.required and not is_answered(answers.get(question.id))
    }


def is_section_complete(
    section: Optional[Section],
    answers: Mapping[str, Answer],
    skipped_section_ids: Collection[str] = (),
) -> bool:
    """Returns True if every visible required question in the section is answered.

    Skipped sections are complete without being evaluated. A missing section or
    one with no questions at all is not complete.

    Args:
        section (Optional[Section]): The section to check.
        answers (Mapping[str, Answer]): Answers keyed by question id.
        skipped_section_ids (Collection[str]): Ids of skipped sections.

    Returns:
        bool: Whether the section is complete.
    """
    if section is None:
        return False
    if section.id in skipped_section_ids:
        return True
    if not section.questions:
        return False
    return not get_missing_required(section, answers)


def _round_percentage(completed: int, total: int) -> float:
    # Half-up to two decimals
    return math.floor(completed / total * 10000 + 0.5) / 100


def calculate_progress(
    sections: Optional[Iterable[Section]],
    answers: Mapping[str, Answer],
    skipped_section_ids: Collection[str] = (),
) -> ProgressStats:
    """Counts answered versus visible questions over non-skipped sections.

    Args:
        sections (Optional[Iterable[Section]]): Sections of the flow.
        answers (Mapping[str, Answer]): Answers keyed by question id.
        skipped_section_ids (Collection[str]): Ids of skipped sections.

    Returns:
        ProgressStats: Completed and total counts with the percentage rounded
        to two decimals, or zeros when there is nothing to answer.
    """
    completed = 0
    total = 0

    for section in sections or []:
        if section.id in skipped_section_ids:
            continue
        visible = get_visible_questions(section.questions, answers)
        total += len(visible)
        completed += sum(1 for question in visible if is_answered(answers.get(question.id)))

    percentage = _round_percentage(completed, total) if total > 0 else 0
    return ProgressStats(
        completed_questions=completed,
        total_questions=total,
        percentage=percentage,
    )
