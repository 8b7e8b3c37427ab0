"""Unit tests for session utility functions in Flow Builder UI.

This module contains tests for keeping models and flow progress in the session,
datetime conversion, and the session debug and route logging decorators.
"""

from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest
from flask import session

from models.progress import Answer, Progress, ProgressSnapshot
from utils import session_utils
from utils.session_utils import (
    _convert_datetimes,
    flow_session_key,
    get_encoded_session_size,
    get_user_id,
    load_flow_progress,
    load_model_from_session,
    log_route,
    print_session_info,
    remove_model_from_session,
    save_flow_progress,
    save_model_to_session,
    session_debug,
)

# pylint cannot differentiate the use of fixtures in the test functions
# pylint: disable=unused-argument, disable=redefined-outer-name


@pytest.fixture
def snapshot() -> ProgressSnapshot:
    """A snapshot part way through the sample flow."""
    return ProgressSnapshot(
        user_id="user-1",
        flow_id="sample-flow",
        progress=Progress(completed_sections=["about"], current_section_id="extras"),
        answers=[Answer(question_id="q1", value="yes")],
    )


@pytest.mark.asyncio
async def test_session_debug_decorator_calls_view_and_prints(app):
    """Tests that session_debug awaits the view and prints session info."""
    mock_response = MagicMock(name="Response")

    async def test_view():
        return mock_response

    with patch("utils.session_utils.print_session_info") as mock_print:
        decorated = session_debug(test_view)
        with app.test_request_context("/"):
            result = await decorated()

    assert result == mock_response
    mock_print.assert_called_once()


@pytest.mark.asyncio
async def test_session_debug_decorator_sync_view(app):
    """Tests that session_debug also wraps plain functions."""
    with patch("utils.session_utils.print_session_info"):
        decorated = session_debug(lambda: "ok")
        with app.test_request_context("/"):
            assert await decorated() == "ok"


@pytest.mark.asyncio
async def test_log_route_logs_method_path_and_user(app, log_capture, patch_module_logger):
    """Tests that log_route logs the request and the session participant."""
    patch_module_logger(session_utils, log_capture)

    async def view():
        return "done"

    with app.test_request_context("/flows/f1/next", method="POST"):
        session["user_id"] = "user-9"
        assert await log_route()(view)() == "done"
        assert await log_route("override")(view)() == "done"

    assert log_capture.infos == [
        "POST /flows/f1/next - user:user-9",
        "POST /flows/f1/next - user:override",
    ]


@pytest.mark.utils
def test_get_user_id_is_stable(app):
    """Tests that the user id is created once per session."""
    with app.test_request_context("/"):
        user_id = get_user_id()
        assert user_id
        assert get_user_id() == user_id
        assert session["user_id"] == user_id


@pytest.mark.utils
def test_model_session_round_trip(app, snapshot):
    """Tests saving, loading and removing a model in the session."""
    with app.test_request_context("/"):
        save_model_to_session("progress", snapshot)
        assert session["progress"]["flowId"] == "sample-flow"

        loaded = load_model_from_session("progress", ProgressSnapshot)
        assert loaded == snapshot

        remove_model_from_session("progress")
        assert "progress" not in session
        remove_model_from_session("progress")


@pytest.mark.utils
def test_flow_progress_in_session(app, snapshot):
    """Tests that flow progress is kept per flow."""
    with app.test_request_context("/"):
        assert load_flow_progress("sample-flow") is None

        save_flow_progress(snapshot)

        assert flow_session_key("sample-flow") in session
        loaded = load_flow_progress("sample-flow")
        assert loaded.progress.current_section_id == "extras"
        assert loaded.answer_map()["q1"].value == "yes"
        assert load_flow_progress("other-flow") is None


@pytest.mark.utils
def test_convert_datetimes_nested():
    """Tests that datetimes in nested dicts and lists become ISO strings."""
    dt = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
    data = {"a": dt, "b": [dt, {"c": dt}], "d": 1}
    assert _convert_datetimes(data) == {
        "a": dt.isoformat(),
        "b": [dt.isoformat(), {"c": dt.isoformat()}],
        "d": 1,
    }
    assert _convert_datetimes("plain") == "plain"


@pytest.mark.utils
def test_get_encoded_session_size(app):
    """Tests that the encoded session size is positive for a non-empty session."""
    with app.test_request_context("/"):
        assert get_encoded_session_size({"key": "value"}) > 0


@pytest.mark.utils
def test_print_session_info_disabled(app, log_capture, patch_module_logger):
    """Tests that nothing is logged unless SESSION_DEBUG is set."""
    patch_module_logger(session_utils, log_capture)
    app.config["SESSION_DEBUG"] = False
    with app.test_request_context("/"):
        print_session_info()
    assert log_capture.debugs == []


@pytest.mark.utils
def test_print_session_info_enabled(app, log_capture, patch_module_logger):
    """Tests that the session size and, with JSON_DEBUG, content are logged."""
    patch_module_logger(session_utils, log_capture)
    app.config["SESSION_DEBUG"] = True
    app.config["JSON_DEBUG"] = False
    with app.test_request_context("/"):
        session["user_id"] = "user-1"
        print_session_info()
        assert any("Session size" in msg for msg in log_capture.debugs)
        assert "Session content:" not in log_capture.debugs

        app.config["JSON_DEBUG"] = True
        print_session_info()
        assert "Session content:" in log_capture.debugs
