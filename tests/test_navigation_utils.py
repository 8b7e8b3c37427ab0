"""Unit tests for the section navigator.

This module covers answering, moving between sections, skipping, completion
and restoring a navigator from a saved snapshot.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from models.flow import Flow
from models.progress import Progress, ProgressSnapshot, SaveStatus, TransitionStatus
from utils import navigation_utils
from utils.autosave_utils import AutosaveController
from utils.navigation_utils import FlowNavigator
from utils.progress_utils import REQUIRED_MESSAGE

# pylint: disable=unused-argument, disable=redefined-outer-name


@pytest.fixture
def store() -> MagicMock:
    """Progress store double."""
    store = MagicMock()
    store.save = AsyncMock(return_value=None)
    store.load = AsyncMock(return_value=None)
    return store


@pytest.fixture
def navigator(sample_flow, store) -> FlowNavigator:
    """Navigator over the sample flow with autosave attached."""
    nav = FlowNavigator(sample_flow, "user-1")
    nav.autosave = AutosaveController(store, nav.snapshot, key="user-1:sample-flow")
    return nav


@pytest.mark.utils
def test_starts_at_first_section(navigator):
    """A new navigator is at the first section with nothing answered."""
    state = navigator.state()
    assert state.section_index == 0
    assert state.section_id == "about"
    assert state.section_count == 3  # noqa: PLR2004
    assert state.is_completed is False
    assert state.progress.current_section_id == "about"
    assert state.answers == {}
    assert state.save_status == SaveStatus.SAVED


@pytest.mark.utils
def test_latest_answer_wins(navigator):
    """Answering the same question twice keeps the second value."""
    navigator.answer("q1", "a")
    navigator.answer("q1", "b")
    assert navigator.answers["q1"].value == "b"


@pytest.mark.utils
def test_answer_marks_autosave_pending(navigator):
    """Recording an answer leaves changes pending for autosave."""
    result = navigator.answer("q1", "yes")
    assert result.status == TransitionStatus.RECORDED
    assert navigator.autosave.pending is True


@pytest.mark.utils
def test_answer_returns_rule_error_but_stores_value(navigator):
    """Rule failures are reported while the value is kept."""
    result = navigator.answer("q4", 42)
    assert result.status == TransitionStatus.RECORDED
    assert result.errors == {"q4": "Please choose a value of no more than 10"}
    assert navigator.answers["q4"].value == 42  # noqa: PLR2004


@pytest.mark.utils
def test_answer_infinite_slider_value_reported(sample_flow_data):
    """An infinite number on an unbounded slider is a rule error, not a crash."""
    del sample_flow_data["sections"][2]["questions"][0]["validation"]["maxValue"]
    navigator = FlowNavigator(Flow.model_validate(sample_flow_data), "user-1")

    result = navigator.answer("q4", float("inf"))

    assert result.status == TransitionStatus.RECORDED
    assert result.errors == {"q4": "Please choose a number"}


@pytest.mark.utils
def test_unknown_question_ignored(navigator, log_capture, patch_module_logger):
    """Answers to questions outside the flow are ignored and logged."""
    patch_module_logger(navigation_utils, log_capture)
    result = navigator.answer("nope", "x")

    assert result.status == TransitionStatus.IGNORED
    assert "nope" not in navigator.answers
    assert any("unknown question 'nope'" in msg for msg in log_capture.warnings)


@pytest.mark.asyncio
async def test_next_blocked_until_required_answered(navigator):
    """next() is blocked with per-question errors until the section is done."""
    result = await navigator.next()
    assert result.status == TransitionStatus.BLOCKED
    assert result.errors == {"q1": REQUIRED_MESSAGE}
    assert navigator.state().errors == {"q1": REQUIRED_MESSAGE}

    navigator.answer("q1", "yes")
    result = await navigator.next()
    assert result.errors == {"q2": REQUIRED_MESSAGE}

    navigator.answer("q2", "novels")
    result = await navigator.next()
    assert result.status == TransitionStatus.ADVANCED
    assert navigator.current_section.id == "extras"
    assert navigator.progress.completed_sections == ["about"]
    assert navigator.state().errors == {}


@pytest.mark.asyncio
async def test_next_blocked_by_rule_error(navigator):
    """Answered questions that break their rules also block."""
    navigator.answer("q1", "yes")
    navigator.answer("q2", "x")
    result = await navigator.next()
    assert result.status == TransitionStatus.BLOCKED
    assert result.errors == {"q2": "Please enter at least 2 characters"}


@pytest.mark.asyncio
async def test_no_duplicate_completed_sections(navigator):
    """Re-completing a section after going back does not duplicate it."""
    navigator.answer("q1", "no")
    await navigator.next()
    navigator.back()
    await navigator.next()

    assert navigator.progress.completed_sections == ["about"]
    assert navigator.current_section.id == "extras"


@pytest.mark.asyncio
async def test_back_keeps_progress(navigator):
    """back() moves one section and leaves completed/skipped unchanged."""
    assert navigator.back().status == TransitionStatus.IGNORED

    navigator.answer("q1", "no")
    await navigator.next()
    result = navigator.back()

    assert result.status == TransitionStatus.MOVED_BACK
    assert navigator.section_index == 0
    assert navigator.progress.current_section_id == "about"
    assert navigator.progress.completed_sections == ["about"]


@pytest.mark.asyncio
async def test_skip_required_section_ignored(navigator):
    """Required sections are never added to the skipped list."""
    result = await navigator.skip_section("about")
    assert result.status == TransitionStatus.IGNORED
    assert navigator.progress.skipped_sections == []
    assert navigator.section_index == 0


@pytest.mark.asyncio
async def test_skip_unknown_section_ignored(navigator):
    """Unknown section ids are ignored."""
    result = await navigator.skip_section("missing")
    assert result.status == TransitionStatus.IGNORED
    assert navigator.progress.skipped_sections == []


@pytest.mark.asyncio
async def test_skip_other_optional_section(navigator):
    """Skipping an optional section elsewhere records it without moving."""
    result = await navigator.skip_section("extras")
    assert result.status == TransitionStatus.SKIPPED
    assert navigator.progress.skipped_sections == ["extras"]
    assert navigator.section_index == 0


@pytest.mark.asyncio
async def test_skip_current_section_advances(navigator):
    """Skipping the current optional section moves on without answers."""
    navigator.answer("q1", "no")
    await navigator.next()

    result = await navigator.skip_section("extras")
    assert result.status == TransitionStatus.ADVANCED
    assert navigator.current_section.id == "rating"
    assert navigator.progress.skipped_sections == ["extras"]
    assert navigator.stats().total_questions == 2  # noqa: PLR2004


@pytest.mark.asyncio
async def test_optional_section_skippable_whatever_the_setting(sample_flow_data):
    """allowSkipSections does not stop an optional section being skipped."""
    del sample_flow_data["settings"]["allowSkipSections"]
    flow = Flow.model_validate(sample_flow_data)
    assert flow.settings.allow_skip_sections is False
    navigator = FlowNavigator(flow, "user-1")

    assert navigator.can_skip("extras") is True
    assert navigator.can_skip("about") is False
    result = await navigator.skip_section("extras")
    assert result.status == TransitionStatus.SKIPPED
    assert navigator.progress.skipped_sections == ["extras"]


@pytest.mark.asyncio
async def test_completion_flushes_snapshot(navigator, store):
    """next() at the last section completes and saves immediately."""
    navigator.answer("q1", "no")
    await navigator.next()
    await navigator.next()
    navigator.answer("q4", 7)
    result = await navigator.next()

    assert result.status == TransitionStatus.COMPLETED
    assert navigator.is_completed is True
    assert navigator.progress.completed_sections == ["about", "extras", "rating"]
    store.save.assert_awaited_once()
    saved = store.save.await_args.args[0]
    assert saved.metadata.completed_at is not None
    assert saved.answer_map()["q4"].value == 7  # noqa: PLR2004
    assert navigator.save_status == SaveStatus.SAVED


@pytest.mark.asyncio
async def test_transitions_ignored_after_completion(navigator):
    """A completed navigator ignores further transitions."""
    await navigator.complete()

    assert navigator.answer("q1", "yes").status == TransitionStatus.IGNORED
    assert (await navigator.next()).status == TransitionStatus.IGNORED
    assert navigator.back().status == TransitionStatus.IGNORED
    assert (await navigator.skip_section("extras")).status == TransitionStatus.IGNORED
    assert (await navigator.complete()).status == TransitionStatus.IGNORED


@pytest.mark.asyncio
async def test_section_without_questions_needs_skip(sample_flow_data):
    """An empty section blocks next() and can only be skipped."""
    sample_flow_data["sections"][1]["questions"] = []
    navigator = FlowNavigator(Flow.model_validate(sample_flow_data), "user-1")
    navigator.answer("q1", "no")
    await navigator.next()

    blocked = await navigator.next()
    assert blocked.status == TransitionStatus.BLOCKED
    assert "extras" in blocked.errors
    assert (await navigator.skip_section("extras")).status == TransitionStatus.ADVANCED


@pytest.mark.asyncio
async def test_empty_flow(sample_flow_data):
    """A flow without sections has no current section and ignores next()."""
    sample_flow_data["sections"] = []
    navigator = FlowNavigator(Flow.model_validate(sample_flow_data), "user-1")

    assert navigator.current_section is None
    assert navigator.state().section_id is None
    assert (await navigator.next()).status == TransitionStatus.IGNORED


@pytest.mark.utils
def test_shuffle_is_seeded(sample_flow_data):
    """Shuffled order is stable for a seed and covers every section."""
    sample_flow_data["settings"]["shuffleSections"] = True
    flow = Flow.model_validate(sample_flow_data)

    first = [s.id for s in FlowNavigator(flow, "u", seed=7).sections]
    second = [s.id for s in FlowNavigator(flow, "u", seed=7).sections]
    assert first == second
    assert sorted(first) == ["about", "extras", "rating"]


@pytest.mark.utils
def test_restore_from_snapshot(sample_flow, make_answers):
    """A snapshot restores answers, progress and the current section."""
    snapshot = ProgressSnapshot(
        user_id="user-2",
        flow_id=sample_flow.id,
        progress=Progress(
            completed_sections=["about"],
            skipped_sections=["extras"],
            current_section_id="rating",
        ),
        answers=list(make_answers(q1="no").values()),
    )
    navigator = FlowNavigator.from_snapshot(sample_flow, snapshot)

    assert navigator.user_id == "user-2"
    assert navigator.section_index == 2  # noqa: PLR2004
    assert navigator.answers["q1"].value == "no"
    assert navigator.progress.skipped_sections == ["extras"]
    assert navigator.is_completed is False


@pytest.mark.utils
def test_restore_unknown_section_falls_back(sample_flow):
    """An unknown current section id restarts at the first section."""
    snapshot = ProgressSnapshot(
        user_id="user-2",
        flow_id=sample_flow.id,
        progress=Progress(current_section_id="gone"),
    )
    navigator = FlowNavigator.from_snapshot(sample_flow, snapshot)
    assert navigator.section_index == 0
    assert navigator.progress.current_section_id == "about"


@pytest.mark.utils
def test_snapshot_is_a_copy(navigator):
    """Changing the navigator after a snapshot leaves the snapshot unchanged."""
    navigator.answer("q1", "yes")
    snapshot = navigator.snapshot()
    navigator.answer("q1", "no")

    assert snapshot.answer_map()["q1"].value == "yes"


@pytest.mark.asyncio
async def test_reset_clears_answers_and_cache(navigator):
    """reset() returns to the first section and drops the cached progress."""
    navigator.answer("q1", "no")
    await navigator.next()
    navigator.autosave.cache.set("progress", "user-1:sample-flow", navigator.snapshot())

    navigator.reset()

    assert navigator.section_index == 0
    assert navigator.answers == {}
    assert navigator.progress.completed_sections == []
    assert navigator.autosave.cache.get("progress", "user-1:sample-flow") is None
    assert navigator.autosave.pending is True
