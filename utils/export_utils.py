"""Export of stored responses to JSON and CSV.

Answers are labelled with their question text where the template is known,
falling back to "Unknown Template" / "Unknown Question".
"""

import csv
import io
import json
from collections.abc import Iterable, Mapping
from typing import Any, Optional

from survey_assist_utils.logging import get_logger

from models.flow import Flow
from models.records import ResponseRecord
from utils.errors import ValidationError
from utils.repository_utils import answers_from_json

logger = get_logger(__name__, level="INFO")

UNKNOWN_TEMPLATE = "Unknown Template"
UNKNOWN_QUESTION = "Unknown Question"
UNKNOWN_DATE = "Unknown Date"
CSV_HEADER = ["Template", "Submission Date", "Question", "Answer"]


def format_answer_value(value: Any) -> str:
    """Formats an answer value for display; lists are comma separated."""
    if value is None:
        return ""
    if isinstance(value, list):
        return ", ".join(str(item) for item in value)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _question_text(flow: Optional[Flow], question_id: str) -> str:
    if flow is None:
        return UNKNOWN_QUESTION
    question = flow.find_question(question_id)
    return question.text if question else UNKNOWN_QUESTION


def _safe_answers(response: ResponseRecord) -> dict[str, Any]:
    try:
        return {key: answer.value for key, answer in answers_from_json(response.answers).items()}
    except ValidationError as err:
        logger.warning(f"Skipping malformed answers of response {response.id}: {err}")
        return {}


def _rows(
    responses: Iterable[ResponseRecord], flows: Mapping[str, Flow]
) -> list[dict[str, Any]]:
    rows = []
    for response in responses:
        flow = flows.get(response.template_id)
        rows.append(
            {
                "templateTitle": flow.title if flow else UNKNOWN_TEMPLATE,
                "templateId": response.template_id,
                "userId": response.user_id,
                "submittedAt": (
                    response.completed_at.isoformat() if response.completed_at else None
                ),
                "answers": [
                    {
                        "questionId": question_id,
                        "question": _question_text(flow, question_id),
                        "answer": value,
                    }
                    for question_id, value in _safe_answers(response).items()
                ],
            }
        )
    return rows


def export_responses_to_json(
    responses: Iterable[ResponseRecord], flows: Mapping[str, Flow]
) -> str:
    """Exports responses as an indented JSON array.

    Args:
        responses (Iterable[ResponseRecord]): Responses to export.
        flows (Mapping[str, Flow]): Flows keyed by template id.

    Returns:
        str: The JSON document.
    """
    return json.dumps(_rows(responses, flows), indent=2)


def export_responses_to_csv(
    responses: Iterable[ResponseRecord], flows: Mapping[str, Flow]
) -> str:
    """Exports responses as CSV with one row per answer.

    Args:
        responses (Iterable[ResponseRecord]): Responses to export.
        flows (Mapping[str, Flow]): Flows keyed by template id.

    Returns:
        str: The CSV document, every cell quoted.
    """
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for row in _rows(responses, flows):
        for answer in row["answers"]:
            writer.writerow(
                [
                    row["templateTitle"],
                    row["submittedAt"] or UNKNOWN_DATE,
                    answer["question"],
                    format_answer_value(answer["answer"]),
                ]
            )
    return buffer.getvalue()
