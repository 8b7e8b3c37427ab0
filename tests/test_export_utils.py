"""Unit tests for exporting responses to JSON and CSV."""

import csv
import io
import json
from datetime import datetime, timezone

import pytest

from models.progress import Answer
from models.records import ResponseRecord
from utils import export_utils
from utils.export_utils import (
    CSV_HEADER,
    UNKNOWN_DATE,
    UNKNOWN_QUESTION,
    UNKNOWN_TEMPLATE,
    export_responses_to_csv,
    export_responses_to_json,
    format_answer_value,
)
from utils.repository_utils import answers_to_json

# pylint: disable=unused-argument, disable=redefined-outer-name

SUBMITTED = datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc)


def _record(template_id: str, answers: str, completed: bool = True) -> ResponseRecord:
    return ResponseRecord(
        id=f"r-{template_id}",
        template_id=template_id,
        user_id="u1",
        answers=answers,
        started_at=SUBMITTED,
        completed_at=SUBMITTED if completed else None,
        last_updated=SUBMITTED,
    )


@pytest.fixture
def responses() -> list[ResponseRecord]:
    """One response to the sample flow and one to a deleted template."""
    known = answers_to_json(
        [
            Answer(question_id="q1", value="yes"),
            Answer(question_id="q4", value=7.0),
            Answer(question_id="old", value=["a", "b"]),
        ]
    )
    unknown = answers_to_json([Answer(question_id="x", value="text")])
    return [_record("sample-flow", known), _record("deleted", unknown, completed=False)]


@pytest.mark.utils
@pytest.mark.parametrize(
    "value,expected",
    [(None, ""), ("text", "text"), (["a", "b"], "a, b"), (7.0, "7"), (2.5, "2.5"), (3, "3")],
)
def test_format_answer_value(value, expected):
    """Lists are comma separated and whole floats lose their decimals."""
    assert format_answer_value(value) == expected


@pytest.mark.utils
def test_export_json(responses, sample_flow):
    """JSON export labels answers with template title and question text."""
    rows = json.loads(export_responses_to_json(responses, {sample_flow.id: sample_flow}))

    assert rows[0]["templateTitle"] == "Sample Flow"
    assert rows[0]["submittedAt"] == SUBMITTED.isoformat()
    questions = {answer["questionId"]: answer["question"] for answer in rows[0]["answers"]}
    assert questions == {
        "q1": "Do you read?",
        "q4": "How much do you enjoy it?",
        "old": UNKNOWN_QUESTION,
    }

    assert rows[1]["templateTitle"] == UNKNOWN_TEMPLATE
    assert rows[1]["submittedAt"] is None
    assert rows[1]["answers"][0]["question"] == UNKNOWN_QUESTION


@pytest.mark.utils
def test_export_csv(responses, sample_flow):
    """CSV export writes one quoted row per answer under a fixed header."""
    content = export_responses_to_csv(responses, {sample_flow.id: sample_flow})

    assert content.splitlines()[0] == ",".join(f'"{name}"' for name in CSV_HEADER)
    rows = list(csv.reader(io.StringIO(content)))
    assert rows[0] == CSV_HEADER
    assert len(rows) == 5  # noqa: PLR2004
    assert ["Sample Flow", SUBMITTED.isoformat(), "Do you read?", "yes"] in rows
    assert ["Sample Flow", SUBMITTED.isoformat(), "How much do you enjoy it?", "7"] in rows
    assert ["Sample Flow", SUBMITTED.isoformat(), UNKNOWN_QUESTION, "a, b"] in rows
    assert [UNKNOWN_TEMPLATE, UNKNOWN_DATE, UNKNOWN_QUESTION, "text"] in rows


@pytest.mark.utils
def test_export_skips_malformed_answers(log_capture, patch_module_logger):
    """Responses with unreadable answers are exported without answers."""
    patch_module_logger(export_utils, log_capture)
    content = export_responses_to_csv([_record("t", "not json")], {})

    assert content.splitlines() == [",".join(f'"{name}"' for name in CSV_HEADER)]
    assert any("r-t" in msg for msg in log_capture.warnings)


@pytest.mark.utils
def test_export_empty():
    """No responses give an empty array or just the header."""
    assert json.loads(export_responses_to_json([], {})) == []
    assert export_responses_to_csv([], {}).count("\n") == 1
