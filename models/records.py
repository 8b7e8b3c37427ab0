"""Pydantic models for stored template and response records.

Records mirror the two tables of the backing store. ``content``, ``answers``
and ``metadata`` are JSON strings; converting them to and from the flow and
progress models happens in the repositories.
"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

TEMPLATES_TABLE = "templates"
RESPONSES_TABLE = "responses"


class TemplateRecord(BaseModel):
    """A stored flow template."""

    id: str = Field(..., description="Template identifier")
    title: str = Field(..., description="Template title")
    type: Literal["onboarding", "questionnaire"]
    content: str = Field(..., description="Flow content as JSON")
    is_default: bool = False
    status: Literal["draft", "published", "archived"] = "draft"
    version: str = "1.0.0"
    created_at: datetime
    updated_at: datetime


class ResponseRecord(BaseModel):
    """A stored response to a template."""

    id: str = Field(..., description="Response identifier")
    template_id: str = Field(..., description="Template answered")
    user_id: str = Field(..., description="Respondent")
    answers: str = Field("{}", description="Answers as JSON")
    started_at: datetime
    completed_at: Optional[datetime] = None
    last_updated: datetime
    metadata: str = Field("{}", description="Progress and client data as JSON")
