"""Async repositories for templates and responses.

Repositories sit on a ``RecordStore`` (in-memory here, or the HTTP backend in
``utils.api_utils``) and convert every store failure into the error types of
``utils.errors``. Flow content and answers are stored as JSON strings and are
validated when read back.
"""

import json
import uuid
from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Any, Optional, Protocol

from pydantic import ValidationError as PydanticValidationError
from survey_assist_utils.logging import get_logger

from models.flow import Flow
from models.progress import (
    Answer,
    Progress,
    ProgressMetadata,
    ProgressSnapshot,
)
from models.records import (
    RESPONSES_TABLE,
    TEMPLATES_TABLE,
    ResponseRecord,
    TemplateRecord,
)
from utils.errors import DatabaseError, NotFoundError, RepositoryError, ValidationError
from utils.validation_utils import validate_flow

logger = get_logger(__name__, level="INFO")

FLOW_TYPES = ("onboarding", "questionnaire")
FLOW_STATUSES = ("draft", "published", "archived")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class RecordStore(Protocol):
    """Async CRUD over named tables of JSON-compatible records."""

    async def insert(self, table: str, record: dict[str, Any]) -> dict[str, Any]:
        """Inserts a record and returns it as stored."""

    async def select(self, table: str, **filters: Any) -> list[dict[str, Any]]:
        """Returns records whose fields equal every filter value."""

    async def update(
        self, table: str, record_id: str, changes: dict[str, Any]
    ) -> Optional[dict[str, Any]]:
        """Applies changes to a record; returns None if it does not exist."""

    async def delete(self, table: str, record_id: str) -> bool:
        """Deletes a record; returns False if it does not exist."""


class InMemoryRecordStore:
    """Record store kept in process memory, used for local runs and tests."""

    def __init__(self) -> None:
        self._tables: dict[str, dict[str, dict[str, Any]]] = {}

    def _table(self, table: str) -> dict[str, dict[str, Any]]:
        return self._tables.setdefault(table, {})

    async def insert(self, table: str, record: dict[str, Any]) -> dict[str, Any]:
        """Inserts a record, generating an id if it has none."""
        rows = self._table(table)
        stored = dict(record)
        stored.setdefault("id", str(uuid.uuid4()))
        if stored["id"] in rows:
            raise KeyError(f"Duplicate id {stored['id']} in {table}")
        rows[stored["id"]] = stored
        return dict(stored)

    async def select(self, table: str, **filters: Any) -> list[dict[str, Any]]:
        """Returns copies of the matching records."""
        return [
            dict(row)
            for row in self._table(table).values()
            if all(row.get(field) == value for field, value in filters.items())
        ]

    async def update(
        self, table: str, record_id: str, changes: dict[str, Any]
    ) -> Optional[dict[str, Any]]:
        """Merges changes into a record."""
        row = self._table(table).get(record_id)
        if row is None:
            return None
        row.update({key: value for key, value in changes.items() if key != "id"})
        return dict(row)

    async def delete(self, table: str, record_id: str) -> bool:
        """Removes a record."""
        return self._table(table).pop(record_id, None) is not None


def _require(value: Any, field_name: str) -> None:
    if value is None or value == "":
        raise ValidationError(f"{field_name} is required")


def _require_choice(value: Any, allowed: Iterable[str], field_name: str) -> None:
    allowed = tuple(allowed)
    if value not in allowed:
        raise ValidationError(f"{field_name} must be one of: {', '.join(allowed)}")


class _Repository:
    """Shared store access with error wrapping."""

    entity = "Record"
    table = ""

    def __init__(self, store: RecordStore):
        self.store = store

    async def _call(self, description: str, operation) -> Any:
        try:
            return await operation
        except RepositoryError:
            raise
        except Exception as err:  # pylint: disable=broad-exception-caught
            logger.error(f"Failed to {description}: {err}")
            raise DatabaseError(f"Failed to {description}", cause=err) from err

    def _parse(self, row: dict[str, Any], model: Any) -> Any:
        try:
            return model.model_validate(row)
        except PydanticValidationError as err:
            raise ValidationError(
                f"Malformed {self.entity.lower()} record: {err}", cause=err
            ) from err

    async def _find_by_id(self, record_id: str, model: Any) -> Optional[Any]:
        _require(record_id, f"{self.entity} ID")
        rows = await self._call(
            f"fetch {self.entity.lower()}", self.store.select(self.table, id=record_id)
        )
        return self._parse(rows[0], model) if rows else None

    async def _update(self, record_id: str, changes: dict[str, Any], model: Any) -> Any:
        _require(record_id, f"{self.entity} ID")
        row = await self._call(
            f"update {self.entity.lower()}",
            self.store.update(self.table, record_id, changes),
        )
        if row is None:
            raise NotFoundError(self.entity, record_id)
        return self._parse(row, model)

    async def delete(self, record_id: str) -> None:
        """Deletes a record.

        Raises:
            NotFoundError: If the record does not exist.
            DatabaseError: If the store fails.
        """
        _require(record_id, f"{self.entity} ID")
        deleted = await self._call(
            f"delete {self.entity.lower()}", self.store.delete(self.table, record_id)
        )
        if not deleted:
            raise NotFoundError(self.entity, record_id)


class TemplateRepository(_Repository):
    """Stores flow templates; at most one default per flow type."""

    entity = "Template"
    table = TEMPLATES_TABLE

    async def find_by_id(self, template_id: str) -> Optional[TemplateRecord]:
        """Returns the template, or None if it does not exist."""
        return await self._find_by_id(template_id, TemplateRecord)

    async def get(self, template_id: str) -> TemplateRecord:
        """Returns the template.

        Raises:
            NotFoundError: If the template does not exist.
        """
        record = await self.find_by_id(template_id)
        if record is None:
            raise NotFoundError(self.entity, template_id)
        return record

    async def find_all(self) -> list[TemplateRecord]:
        """Returns every template."""
        rows = await self._call("fetch templates", self.store.select(self.table))
        return [self._parse(row, TemplateRecord) for row in rows]

    async def find_by_type(self, flow_type: str) -> list[TemplateRecord]:
        """Returns templates of one flow type."""
        _require_choice(flow_type, FLOW_TYPES, "Template type")
        rows = await self._call(
            "fetch templates", self.store.select(self.table, type=flow_type)
        )
        return [self._parse(row, TemplateRecord) for row in rows]

    async def get_default(self, flow_type: str) -> Optional[TemplateRecord]:
        """Returns the default template of a flow type, if one is set."""
        _require_choice(flow_type, FLOW_TYPES, "Template type")
        rows = await self._call(
            "fetch default template",
            self.store.select(self.table, type=flow_type, is_default=True),
        )
        return self._parse(rows[0], TemplateRecord) if rows else None

    async def create(self, template: dict[str, Any]) -> TemplateRecord:
        """Creates a template from a partial record.

        Raises:
            ValidationError: If title, type or content are missing or invalid.
        """
        _require(template.get("title"), "Title")
        _require(template.get("content"), "Content")
        _require_choice(template.get("type"), FLOW_TYPES, "Template type")
        _require_choice(template.get("status", "draft"), FLOW_STATUSES, "Status")

        now = _now()
        record = {
            "is_default": False,
            "status": "draft",
            "version": "1.0.0",
            **template,
            "created_at": now,
            "updated_at": now,
        }
        record.setdefault("id", str(uuid.uuid4()))
        row = await self._call("create template", self.store.insert(self.table, record))
        created = self._parse(row, TemplateRecord)
        logger.info(f"Created template {created.id} ({created.type})")
        return created

    async def update(self, template_id: str, changes: dict[str, Any]) -> TemplateRecord:
        """Updates a template.

        Raises:
            NotFoundError: If the template does not exist.
            ValidationError: If type or status are invalid.
        """
        if "type" in changes:
            _require_choice(changes["type"], FLOW_TYPES, "Template type")
        if "status" in changes:
            _require_choice(changes["status"], FLOW_STATUSES, "Status")
        return await self._update(
            template_id, {**changes, "updated_at": _now()}, TemplateRecord
        )

    async def set_default(self, template_id: str) -> TemplateRecord:
        """Makes a template the default for its type, clearing the previous one.

        Raises:
            NotFoundError: If the template does not exist.
        """
        template = await self.get(template_id)
        for other in await self.find_by_type(template.type):
            if other.is_default and other.id != template_id:
                await self.update(other.id, {"is_default": False})
        updated = await self.update(template_id, {"is_default": True})
        logger.info(f"Template {template_id} is now the default {template.type}")
        return updated

    async def load_flow(self, template_id: str) -> Flow:
        """Loads and validates the flow stored in a template.

        Raises:
            NotFoundError: If the template does not exist.
            ValidationError: If the stored content is not a valid flow.
        """
        template = await self.get(template_id)
        return validate_flow(template.content)

    async def save_flow(self, flow: Flow) -> TemplateRecord:
        """Creates or updates the template holding a flow."""
        record = {
            "title": flow.title,
            "type": flow.type,
            "content": flow.model_dump_json(by_alias=True),
            "status": flow.status,
            "version": flow.version,
        }
        if await self.find_by_id(flow.id) is None:
            created = await self.create({"id": flow.id, **record})
            if flow.is_default:
                return await self.set_default(created.id)
            return created
        updated = await self.update(flow.id, record)
        if flow.is_default and not updated.is_default:
            return await self.set_default(flow.id)
        return updated


class ResponseRepository(_Repository):
    """Stores responses to templates."""

    entity = "Response"
    table = RESPONSES_TABLE

    async def find_by_id(self, response_id: str) -> Optional[ResponseRecord]:
        """Returns the response, or None if it does not exist."""
        return await self._find_by_id(response_id, ResponseRecord)

    async def get(self, response_id: str) -> ResponseRecord:
        """Returns the response.

        Raises:
            NotFoundError: If the response does not exist.
        """
        record = await self.find_by_id(response_id)
        if record is None:
            raise NotFoundError(self.entity, response_id)
        return record

    async def _select(self, description: str, **filters: Any) -> list[ResponseRecord]:
        rows = await self._call(description, self.store.select(self.table, **filters))
        return [self._parse(row, ResponseRecord) for row in rows]

    async def find_all(self) -> list[ResponseRecord]:
        """Returns every response."""
        return await self._select("fetch all responses")

    async def find_by_template(self, template_id: str) -> list[ResponseRecord]:
        """Returns responses to one template."""
        _require(template_id, "Template ID")
        return await self._select(
            "fetch responses by template", template_id=template_id
        )

    async def find_by_user(self, user_id: str) -> list[ResponseRecord]:
        """Returns responses by one user."""
        _require(user_id, "User ID")
        return await self._select("fetch responses by user", user_id=user_id)

    async def find_by_user_and_template(
        self, user_id: str, template_id: str
    ) -> Optional[ResponseRecord]:
        """Returns the most recently updated response by a user to a template."""
        _require(user_id, "User ID")
        _require(template_id, "Template ID")
        records = await self._select(
            "fetch response", user_id=user_id, template_id=template_id
        )
        if not records:
            return None
        return max(records, key=lambda record: record.last_updated)

    async def create(self, response: dict[str, Any]) -> ResponseRecord:
        """Creates a response from a partial record.

        Raises:
            ValidationError: If the template or user id is missing.
        """
        _require(response.get("template_id"), "Template ID")
        _require(response.get("user_id"), "User ID")

        now = _now()
        record = {
            "answers": "{}",
            "metadata": "{}",
            "completed_at": None,
            **response,
            "started_at": response.get("started_at") or now,
            "last_updated": now,
        }
        row = await self._call("create response", self.store.insert(self.table, record))
        return self._parse(row, ResponseRecord)

    async def update(self, response_id: str, changes: dict[str, Any]) -> ResponseRecord:
        """Updates a response.

        Raises:
            NotFoundError: If the response does not exist.
        """
        return await self._update(
            response_id, {**changes, "last_updated": _now()}, ResponseRecord
        )

    async def delete_many(self, response_ids: Iterable[str]) -> int:
        """Deletes several responses, returning how many were removed."""
        removed = 0
        for response_id in response_ids:
            try:
                await self.delete(response_id)
            except NotFoundError:
                logger.warning(f"Response {response_id} already deleted")
                continue
            removed += 1
        return removed


def answers_to_json(answers: Iterable[Answer]) -> str:
    """Serialises answers as a JSON object keyed by question id."""
    return json.dumps(
        {
            answer.question_id: answer.model_dump(mode="json", by_alias=True)
            for answer in answers
        }
    )


def answers_from_json(content: str) -> dict[str, Answer]:
    """Parses stored answers back into ``Answer`` models.

    Raises:
        ValidationError: If the content is not a JSON object of answers.
    """
    try:
        data = json.loads(content or "{}")
        if not isinstance(data, dict):
            raise ValueError("answers must be a JSON object")
        return {key: Answer.model_validate(value) for key, value in data.items()}
    except (ValueError, PydanticValidationError) as err:
        raise ValidationError(f"Malformed stored answers: {err}", cause=err) from err


def snapshot_to_record(snapshot: ProgressSnapshot) -> dict[str, Any]:
    """Converts a progress snapshot into response record fields."""
    metadata = {
        "progress": snapshot.progress.model_dump(mode="json", by_alias=True),
        **snapshot.metadata.model_dump(mode="json", by_alias=True),
    }
    return {
        "template_id": snapshot.flow_id,
        "user_id": snapshot.user_id,
        "answers": answers_to_json(snapshot.answers),
        "started_at": snapshot.metadata.started_at.isoformat(),
        "completed_at": (
            snapshot.metadata.completed_at.isoformat()
            if snapshot.metadata.completed_at
            else None
        ),
        "metadata": json.dumps(metadata),
    }


def record_to_snapshot(record: ResponseRecord) -> ProgressSnapshot:
    """Rebuilds a progress snapshot from a response record.

    Raises:
        ValidationError: If the stored answers or metadata are malformed.
    """
    answers = answers_from_json(record.answers)
    try:
        metadata = json.loads(record.metadata or "{}")
        progress = Progress.model_validate(metadata.pop("progress", {}))
        progress_metadata = ProgressMetadata.model_validate(
            {
                **metadata,
                "startedAt": record.started_at,
                "completedAt": record.completed_at,
            }
        )
    except (ValueError, AttributeError, PydanticValidationError) as err:
        raise ValidationError(f"Malformed stored metadata: {err}", cause=err) from err

    return ProgressSnapshot(
        user_id=record.user_id,
        flow_id=record.template_id,
        progress=progress,
        answers=list(answers.values()),
        metadata=progress_metadata,
    )


class ResponseProgressStore:
    """Progress store for autosave backed by the responses table.

    Keys are ``"{user_id}:{flow_id}"``.
    """

    def __init__(self, responses: ResponseRepository):
        self.responses = responses

    async def save(self, snapshot: ProgressSnapshot) -> None:
        """Creates or updates the user's response with the snapshot."""
        fields = snapshot_to_record(snapshot)
        existing = await self.responses.find_by_user_and_template(
            snapshot.user_id, snapshot.flow_id
        )
        if existing is None:
            await self.responses.create(fields)
        else:
            await self.responses.update(existing.id, fields)

    async def load(self, key: str) -> Optional[ProgressSnapshot]:
        """Loads the snapshot saved under a key, if any."""
        # User ids may contain colons; flow ids do not
        user_id, _, flow_id = key.rpartition(":")
        record = await self.responses.find_by_user_and_template(user_id, flow_id)
        return record_to_snapshot(record) if record else None
