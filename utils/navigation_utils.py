"""Section-by-section navigation through a flow.

``FlowNavigator`` owns the live answers and progress for one user's pass through
one flow. Illegal transitions never raise: they return a ``TransitionResult``
with status ``blocked`` (with per-question errors) or ``ignored``.
"""

import random
from datetime import datetime, timezone
from typing import Any, Optional

from survey_assist_utils.logging import get_logger

from models.flow import Flow, Section
from models.progress import (
    Answer,
    NavigatorState,
    Progress,
    ProgressMetadata,
    ProgressSnapshot,
    ProgressStats,
    SaveStatus,
    TransitionResult,
    TransitionStatus,
)
from utils.autosave_utils import AutosaveController
from utils.progress_utils import calculate_progress, is_section_complete
from utils.validation_utils import validate_answer, validate_questions

logger = get_logger(__name__, level="INFO")

FIRST_SECTION = 0


# pylint: disable=too-many-instance-attributes
class FlowNavigator:
    """State machine for filling in a flow.

    States are ``AtSection(i)`` for each section index and the terminal
    ``Completed``. The navigator starts at the first section.

    Attributes:
        flow (Flow): The flow being filled in.
        user_id (str): The respondent.
        sections (list[Section]): Sections in navigation order.
        autosave (Optional[AutosaveController]): Persists progress when set.
        section_index (int): Index of the current section.
        answers (dict[str, Answer]): Answers keyed by question id.
        progress (Progress): Completed/skipped sections and current section.
        errors (dict[str, str]): Errors from the latest transition.
    """

    def __init__(
        self,
        flow: Flow,
        user_id: str,
        autosave: Optional[AutosaveController] = None,
        seed: Optional[int] = None,
    ):
        self.flow = flow
        self.user_id = user_id
        self.autosave = autosave
        self.sections = self._navigation_order(flow, seed)
        self.metadata = ProgressMetadata()
        self._reset_state()

    @staticmethod
    def _navigation_order(flow: Flow, seed: Optional[int]) -> list[Section]:
        sections = flow.ordered_sections()
        if flow.settings.shuffle_sections:
            random.Random(seed).shuffle(sections)  # nosec B311
        return sections

    def _reset_state(self) -> None:
        self.section_index = FIRST_SECTION
        self.answers: dict[str, Answer] = {}
        self.errors: dict[str, str] = {}
        self.is_completed = False
        self.progress = Progress(
            current_section_id=self.sections[0].id if self.sections else None
        )

    @classmethod
    def from_snapshot(
        cls,
        flow: Flow,
        snapshot: ProgressSnapshot,
        autosave: Optional[AutosaveController] = None,
        seed: Optional[int] = None,
    ) -> "FlowNavigator":
        """Restores a navigator from a saved snapshot.

        The current section is taken from ``progress.current_section_id``; an
        unknown id falls back to the first section.

        Args:
            flow (Flow): The flow the snapshot belongs to.
            snapshot (ProgressSnapshot): The saved progress.
            autosave (Optional[AutosaveController]): Autosave to attach.
            seed (Optional[int]): Seed used when sections are shuffled.

        Returns:
            FlowNavigator: A navigator in the saved state.
        """
        navigator = cls(flow, snapshot.user_id, autosave=autosave, seed=seed)
        navigator.answers = snapshot.answer_map()
        navigator.progress = snapshot.progress.model_copy(deep=True)
        navigator.metadata = snapshot.metadata.model_copy()
        navigator.is_completed = snapshot.metadata.completed_at is not None

        section_ids = [section.id for section in navigator.sections]
        current_id = snapshot.progress.current_section_id
        if current_id in section_ids:
            navigator.section_index = section_ids.index(current_id)
        else:
            navigator.progress.current_section_id = (
                section_ids[0] if section_ids else None
            )
        return navigator

    @property
    def current_section(self) -> Optional[Section]:
        """The section currently displayed, or None for an empty flow."""
        if not self.sections:
            return None
        return self.sections[self.section_index]

    @property
    def is_last_section(self) -> bool:
        """True when the current section is the final one."""
        return self.section_index >= len(self.sections) - 1

    @property
    def can_go_back(self) -> bool:
        """True if ``back()`` would move."""
        return not self.is_completed and self.section_index > FIRST_SECTION

    @property
    def save_status(self) -> SaveStatus:
        """Status of the latest save, ``saved`` when autosave is not attached."""
        return self.autosave.status if self.autosave else SaveStatus.SAVED

    def can_skip(self, section_id: str) -> bool:
        """True if the section is optional.

        ``settings.allow_skip_sections`` only tells a presentation layer whether
        to offer a skip control; it does not gate the transition.
        """
        section = self.flow.find_section(section_id)
        return section is not None and section.is_optional

    def stats(self) -> ProgressStats:
        """Overall progress over non-skipped sections."""
        return calculate_progress(
            self.sections, self.answers, self.progress.skipped_sections
        )

    def _touch(self) -> None:
        now = datetime.now(timezone.utc)
        self.progress.last_updated = now
        self.metadata.last_updated = now
        if self.autosave is not None:
            self.autosave.mark_pending()

    def _ignored(self, reason: str) -> TransitionResult:
        logger.warning(f"Ignored transition for {self.user_id}: {reason}")
        return TransitionResult(status=TransitionStatus.IGNORED, reason=reason)

    def answer(self, question_id: str, value: Any) -> TransitionResult:
        """Records an answer; the latest call for a question wins.

        The answer is stored even if it fails its rules; the rule error is
        returned for display.

        Args:
            question_id (str): The question answered.
            value: String, list of strings or number.

        Returns:
            TransitionResult: ``recorded`` with any rule error, or ``ignored``.
        """
        if self.is_completed:
            return self._ignored("flow already completed")

        question = self.flow.find_question(question_id)
        if question is None:
            return self._ignored(f"unknown question '{question_id}'")

        self.answers[question_id] = Answer(question_id=question_id, value=value)
        self.errors.pop(question_id, None)
        self._touch()

        error = validate_answer(question, value)
        errors = {question_id: error} if error else {}
        return TransitionResult(status=TransitionStatus.RECORDED, errors=errors)

    def _section_errors(self, section: Section) -> dict[str, str]:
        if section.id in self.progress.skipped_sections:
            return {}
        errors = validate_questions(section.questions, self.answers)
        if not errors and not is_section_complete(
            section, self.answers, self.progress.skipped_sections
        ):
            # A section without questions can only be left by skipping it
            return {section.id: "This section has no questions to answer"}
        return errors

    async def _advance(self, section: Section) -> TransitionResult:
        if section.id not in self.progress.completed_sections:
            self.progress.completed_sections.append(section.id)
        self.errors = {}

        if self.is_last_section:
            return await self.complete()

        self.section_index += 1
        self.progress.current_section_id = self.sections[self.section_index].id
        self._touch()
        logger.debug(
            f"{self.user_id} advanced to section {self.progress.current_section_id}"
        )
        return TransitionResult(status=TransitionStatus.ADVANCED)

    async def next(self) -> TransitionResult:
        """Moves to the next section if the current one is complete or skipped.

        At the last section this completes the flow.

        Returns:
            TransitionResult: ``advanced``, ``completed``, ``blocked`` with the
            per-question errors, or ``ignored``.
        """
        if self.is_completed:
            return self._ignored("flow already completed")

        section = self.current_section
        if section is None:
            return self._ignored("flow has no sections")

        errors = self._section_errors(section)
        if errors:
            self.errors = errors
            logger.debug(f"{self.user_id} blocked on section {section.id}: {errors}")
            return TransitionResult(status=TransitionStatus.BLOCKED, errors=errors)

        return await self._advance(section)

    def back(self) -> TransitionResult:
        """Returns to the previous section without changing completed/skipped."""
        if not self.can_go_back:
            return self._ignored("already at the first section")

        self.section_index -= 1
        self.progress.current_section_id = self.sections[self.section_index].id
        self.errors = {}
        self.progress.last_updated = datetime.now(timezone.utc)
        return TransitionResult(status=TransitionStatus.MOVED_BACK)

    async def skip_section(self, section_id: str) -> TransitionResult:
        """Skips an optional section; skipping a required one does nothing.

        If the skipped section is the current one, moves on as ``next()`` would,
        without requiring completion.

        Args:
            section_id (str): The section to skip.

        Returns:
            TransitionResult: ``skipped``, ``advanced``, ``completed`` or ``ignored``.
        """
        if self.is_completed:
            return self._ignored("flow already completed")
        if not self.can_skip(section_id):
            return self._ignored(f"section '{section_id}' cannot be skipped")

        if section_id not in self.progress.skipped_sections:
            self.progress.skipped_sections.append(section_id)
        self._touch()

        current = self.current_section
        if current is not None and current.id == section_id:
            return await self._advance(current)
        return TransitionResult(status=TransitionStatus.SKIPPED)

    def snapshot(self) -> ProgressSnapshot:
        """Returns a copy of the current progress for persistence."""
        return ProgressSnapshot(
            user_id=self.user_id,
            flow_id=self.flow.id,
            progress=self.progress.model_copy(deep=True),
            answers=[answer.model_copy(deep=True) for answer in self.answers.values()],
            metadata=self.metadata.model_copy(),
        )

    async def complete(self) -> TransitionResult:
        """Finishes the flow and saves the final snapshot immediately.

        Returns:
            TransitionResult: ``completed``, or ``ignored`` if already completed.
        """
        if self.is_completed:
            return self._ignored("flow already completed")

        now = datetime.now(timezone.utc)
        self.metadata.completed_at = now
        self.metadata.last_updated = now
        self.progress.last_updated = now
        self.is_completed = True
        self.errors = {}

        if self.autosave is not None:
            await self.autosave.flush(self.snapshot())

        logger.info(f"{self.user_id} completed flow {self.flow.id}")
        return TransitionResult(status=TransitionStatus.COMPLETED)

    def reset(self) -> None:
        """Starts over from the first section with no answers."""
        self._reset_state()
        self.metadata = ProgressMetadata()
        if self.autosave is not None:
            self.autosave.cache.invalidate(self.autosave.entity_type, self.autosave.key)
            self.autosave.mark_pending()
        logger.info(f"{self.user_id} restarted flow {self.flow.id}")

    def state(self) -> NavigatorState:
        """Read-only view for a presentation layer."""
        current = self.current_section
        return NavigatorState(
            section_index=self.section_index,
            section_id=current.id if current else None,
            section_count=len(self.sections),
            is_completed=self.is_completed,
            progress=self.progress.model_copy(deep=True),
            answers={key: value.model_copy() for key, value in self.answers.items()},
            save_status=self.save_status,
            stats=self.stats(),
            errors=dict(self.errors),
        )
