"""Pytest configuration and fixtures for Flow Builder UI tests.

This module provides fixtures for creating and configuring a Flask application
instance, sample flows and in-memory repositories for use in unit and
integration tests.
"""

from types import ModuleType
from typing import Any, Callable

import pytest
from flask import Flask

from flow_builder_ui import create_app
from models.flow import Flow
from models.progress import Answer
from utils.repository_utils import (
    InMemoryRecordStore,
    ResponseRepository,
    TemplateRepository,
)

# pylint cannot differentiate the use of fixtures in the test functions
# pylint: disable=unused-argument, disable=redefined-outer-name


# This fixture creates a Flask application instance for testing purposes.
@pytest.fixture
def app() -> Flask:
    """Creates and configures a Flask application instance for testing.

    The app uses the in-memory record store seeded with the default flows.

    Returns:
        Flask: A configured Flask application instance with testing enabled.
    """
    test_app = create_app()
    test_app.config.update(
        {
            "TESTING": True,
        }
    )
    return test_app


@pytest.fixture
def sample_flow_data() -> dict[str, Any]:
    """Provides a three section flow as stored content (camelCase keys).

    - ``about``: two required questions, the second shown only when the first
      is "yes".
    - ``extras``: optional section with one optional question.
    - ``rating``: one required slider.
    """
    return {
        "id": "sample-flow",
        "title": "Sample Flow",
        "description": "A flow used in tests",
        "type": "onboarding",
        "status": "published",
        "sections": [
            {
                "id": "about",
                "title": "About you",
                "order": 0,
                "questions": [
                    {
                        "id": "q1",
                        "type": "radio",
                        "text": "Do you read?",
                        "options": [
                            {"id": "yes", "text": "Yes", "value": "yes"},
                            {"id": "no", "text": "No", "value": "no"},
                        ],
                        "validation": {"required": True},
                    },
                    {
                        "id": "q2",
                        "type": "text",
                        "text": "What do you read?",
                        "validation": {"required": True, "minLength": 2},
                        "conditionalLogic": {
                            "questionId": "q1",
                            "operator": "equals",
                            "value": "yes",
                        },
                    },
                ],
            },
            {
                "id": "extras",
                "title": "Extras",
                "order": 1,
                "isOptional": True,
                "questions": [
                    {
                        "id": "q3",
                        "type": "long_text",
                        "text": "Anything else?",
                    }
                ],
            },
            {
                "id": "rating",
                "title": "Rating",
                "order": 2,
                "questions": [
                    {
                        "id": "q4",
                        "type": "slider",
                        "text": "How much do you enjoy it?",
                        "validation": {
                            "required": True,
                            "minValue": 0,
                            "maxValue": 10,
                            "step": 1,
                        },
                    }
                ],
            },
        ],
        "settings": {"allowSkipSections": True, "allowSaveProgress": True},
    }


@pytest.fixture
def sample_flow(sample_flow_data) -> Flow:
    """Provides the sample flow as a validated ``Flow``."""
    return Flow.model_validate(sample_flow_data)


@pytest.fixture
def make_answers() -> Callable[..., dict[str, Answer]]:
    """Returns a helper building an answer map from keyword values."""

    def _make(**values: Any) -> dict[str, Answer]:
        return {
            question_id: Answer(question_id=question_id, value=value)
            for question_id, value in values.items()
        }

    return _make


@pytest.fixture
def memory_store() -> InMemoryRecordStore:
    """Provides an empty in-memory record store."""
    return InMemoryRecordStore()


@pytest.fixture
def template_repository(memory_store) -> TemplateRepository:
    """Provides a template repository over the in-memory store."""
    return TemplateRepository(memory_store)


@pytest.fixture
def response_repository(memory_store) -> ResponseRepository:
    """Provides a response repository over the in-memory store."""
    return ResponseRepository(memory_store)


class LogCapture:
    """Lightweight logger double for tests.

    Captures messages by level and supports %-style formatting to mirror the
    stdlib logging API. Accepts *args and **kwargs so calls with 'extra' work.
    """

    # pylint: disable=too-few-public-methods
    def __init__(self) -> None:
        self.infos: list[str] = []
        self.debugs: list[str] = []
        self.warnings: list[str] = []
        self.errors: list[str] = []

    def info(self, msg: str, *args: Any, **kwargs: Any) -> None:
        """Capture info logs."""
        self.infos.append(_fmt(msg, *args))

    def debug(self, msg: str, *args: Any, **kwargs: Any) -> None:
        """Capture debug logs."""
        self.debugs.append(_fmt(msg, *args))

    def warning(self, msg: str, *args: Any, **kwargs: Any) -> None:
        """Capture warning logs."""
        self.warnings.append(_fmt(msg, *args))

    def error(self, msg: str, *args: Any, **kwargs: Any) -> None:
        """Capture error logs."""
        self.errors.append(_fmt(msg, *args))


def _fmt(msg: str, *args: Any) -> str:
    """Format like logging.Logger using %-style, falling back safely."""
    if args:
        try:
            return msg % args
        except (TypeError, ValueError):
            return str(msg)
    return str(msg)


@pytest.fixture
def log_capture() -> LogCapture:
    """Provide a fresh LogCapture for each test."""
    return LogCapture()


@pytest.fixture
def patch_module_logger(
    monkeypatch: pytest.MonkeyPatch,
) -> Callable[[ModuleType, LogCapture], LogCapture]:
    """Return a helper that patches `module.logger` with a LogCapture.

    Args:
        monkeypatch: Built-in pytest fixture for safe attribute patching.

    Returns:
        A callable that takes (module, log_capture) and applies the patch.
    """

    def _apply(module: ModuleType, stub: LogCapture) -> LogCapture:
        monkeypatch.setattr(module, "logger", stub, raising=True)
        return stub

    return _apply
