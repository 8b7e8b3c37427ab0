"""Pydantic models for a user's pass through a flow.

Defines answers, progress, the persisted progress snapshot, progress statistics
and the result returned by navigation transitions.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, Field

from models.flow import FlowModel

AnswerValue = Union[float, int, str, list[str]]


def utc_now() -> datetime:
    """Returns the current UTC time."""
    return datetime.now(timezone.utc)


class Answer(FlowModel):
    """A single answer.

    Attributes:
        question_id (str): The question answered.
        value (AnswerValue): String, list of strings or number.
        timestamp (datetime): When the answer was recorded.
    """

    question_id: str = Field(..., description="Question identifier")
    value: Optional[AnswerValue] = Field(..., description="Answer value")
    timestamp: datetime = Field(default_factory=utc_now)


class Progress(FlowModel):
    """Completed/skipped sections and the current section."""

    completed_sections: list[str] = Field(default_factory=list)
    skipped_sections: list[str] = Field(default_factory=list)
    current_section_id: Optional[str] = None
    last_updated: datetime = Field(default_factory=utc_now)


class ProgressMetadata(FlowModel):
    """Timing and client information for a pass through a flow."""

    started_at: datetime = Field(default_factory=utc_now)
    last_updated: datetime = Field(default_factory=utc_now)
    completed_at: Optional[datetime] = None
    device_info: Optional[str] = None
    user_agent: Optional[str] = None


class ProgressSnapshot(FlowModel):
    """Point-in-time copy of a user's progress, as persisted by autosave."""

    user_id: str = Field(..., description="User filling in the flow")
    flow_id: str = Field(..., description="Flow being filled in")
    progress: Progress = Field(default_factory=Progress)
    answers: list[Answer] = Field(default_factory=list)
    metadata: ProgressMetadata = Field(default_factory=ProgressMetadata)

    @property
    def key(self) -> str:
        """Storage key for this snapshot."""
        return progress_key(self.user_id, self.flow_id)

    def answer_map(self) -> dict[str, Answer]:
        """Returns the answers keyed by question id."""
        return {answer.question_id: answer for answer in self.answers}


def progress_key(user_id: str, flow_id: str) -> str:
    """Builds the storage key for a user's progress through a flow."""
    return f"{user_id}:{flow_id}"


class ProgressStats(BaseModel):
    """Answered versus total visible questions."""

    completed_questions: int = 0
    total_questions: int = 0
    percentage: float = 0


class SaveStatus(str, Enum):
    """Outcome of the most recent save."""

    SAVING = "saving"
    SAVED = "saved"
    ERROR = "error"


class TransitionStatus(str, Enum):
    """Outcome of a navigation transition."""

    RECORDED = "recorded"
    ADVANCED = "advanced"
    MOVED_BACK = "moved_back"
    SKIPPED = "skipped"
    COMPLETED = "completed"
    BLOCKED = "blocked"
    IGNORED = "ignored"


class TransitionResult(BaseModel):
    """Result of a navigation transition.

    ``errors`` maps question ids to messages for inline display.
    """

    status: TransitionStatus
    errors: dict[str, str] = Field(default_factory=dict)
    reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        """True when the transition changed state."""
        return self.status not in (TransitionStatus.BLOCKED, TransitionStatus.IGNORED)


class NavigatorState(BaseModel):
    """Read-only view of a navigator for a presentation layer."""

    section_index: int
    section_id: Optional[str]
    section_count: int
    is_completed: bool
    progress: Progress
    answers: dict[str, Answer]
    save_status: SaveStatus
    stats: ProgressStats
    errors: dict[str, str]
