"""Routes for filling in a flow section by section.

The navigator is rebuilt on every request from the progress held in the
session. Progress is saved to the responses table after each change when the
flow allows saving progress; completion is always saved.
"""

import zlib
from http import HTTPStatus
from typing import Any, Optional, cast

from flask import Blueprint, current_app, jsonify, request
from survey_assist_utils.logging import get_logger

from models.progress import TransitionResult, TransitionStatus, progress_key
from utils.app_types import FlowBuilderFlask, ResponseType
from utils.autosave_utils import AutosaveController
from utils.errors import ValidationError
from utils.navigation_utils import FlowNavigator
from utils.repository_utils import ResponseProgressStore
from utils.session_utils import (
    get_user_id,
    load_flow_progress,
    log_route,
    save_flow_progress,
    session_debug,
)
from utils.validation_utils import validate_response

flow_blueprint = Blueprint("flow", __name__, url_prefix="/flows")

logger = get_logger(__name__, level="INFO")


def _shuffle_seed(user_id: str) -> int:
    """Seed keeping a shuffled section order stable for one respondent."""
    return zlib.crc32(user_id.encode("utf-8"))


async def _load_navigator(flow_id: str) -> FlowNavigator:
    """Builds the navigator for the session user, resuming saved progress.

    Progress in the session wins; otherwise progress saved in the responses
    table is resumed when the flow allows saving progress.
    """
    app = cast(FlowBuilderFlask, current_app)
    flow = await app.templates.load_flow(flow_id)
    user_id = get_user_id()
    seed = _shuffle_seed(user_id)

    controller = AutosaveController(
        ResponseProgressStore(app.responses),
        snapshot_fn=lambda: navigator.snapshot(),  # pylint: disable=unnecessary-lambda
        key=progress_key(user_id, flow_id),
    )

    snapshot = load_flow_progress(flow_id)
    if snapshot is None and flow.settings.allow_save_progress:
        snapshot = await controller.load()

    if snapshot is not None and snapshot.user_id == user_id:
        navigator = FlowNavigator.from_snapshot(flow, snapshot, controller, seed)
    else:
        navigator = FlowNavigator(flow, user_id, controller, seed)
    return navigator


async def _respond(
    navigator: FlowNavigator,
    result: Optional[TransitionResult] = None,
    status: int = HTTPStatus.OK,
) -> ResponseType:
    """Stores progress in the session, saves it if allowed and renders the state."""
    save_flow_progress(navigator.snapshot())
    autosave = navigator.autosave
    if (
        autosave is not None
        and autosave.pending
        and navigator.flow.settings.allow_save_progress
    ):
        await autosave.flush()

    body: dict[str, Any] = {
        "state": navigator.state().model_dump(mode="json", by_alias=True)
    }
    if result is not None:
        body["result"] = result.model_dump(mode="json")
    return jsonify(body), status


def _json_body() -> dict[str, Any]:
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    return body


@flow_blueprint.route("/<flow_id>/start", methods=["POST"])
@session_debug
@log_route()
async def start(flow_id: str) -> ResponseType:
    """Starts or resumes a flow for the session user."""
    navigator = await _load_navigator(flow_id)
    logger.info(f"Flow {flow_id} opened at section {navigator.section_index}")
    return await _respond(navigator)


@flow_blueprint.route("/<flow_id>/state", methods=["GET"])
@log_route()
async def state(flow_id: str) -> ResponseType:
    """Returns the current state without changing it."""
    navigator = await _load_navigator(flow_id)
    return await _respond(navigator)


@flow_blueprint.route("/<flow_id>/answer", methods=["POST"])
@session_debug
@log_route()
async def answer(flow_id: str) -> ResponseType:
    """Records an answer from ``{"questionId": ..., "value": ...}``."""
    body = _json_body()
    question_id = body.get("questionId")
    if not question_id:
        raise ValidationError("questionId is required")

    navigator = await _load_navigator(flow_id)
    result = navigator.answer(question_id, body.get("value"))
    return await _respond(navigator, result)


@flow_blueprint.route("/<flow_id>/next", methods=["POST"])
@session_debug
@log_route()
async def next_section(flow_id: str) -> ResponseType:
    """Moves to the next section, or completes the flow at the last one."""
    navigator = await _load_navigator(flow_id)
    result = await navigator.next()
    return await _respond(navigator, result)


@flow_blueprint.route("/<flow_id>/back", methods=["POST"])
@session_debug
@log_route()
async def back(flow_id: str) -> ResponseType:
    """Returns to the previous section."""
    navigator = await _load_navigator(flow_id)
    result = navigator.back()
    return await _respond(navigator, result)


@flow_blueprint.route("/<flow_id>/skip", methods=["POST"])
@session_debug
@log_route()
async def skip(flow_id: str) -> ResponseType:
    """Skips an optional section from ``{"sectionId": ...}``.

    Without a body the current section is skipped.
    """
    body = request.get_json(silent=True) or {}
    navigator = await _load_navigator(flow_id)
    section_id = body.get("sectionId")
    if not section_id and navigator.current_section is not None:
        section_id = navigator.current_section.id
    result = await navigator.skip_section(section_id or "")
    return await _respond(navigator, result)


@flow_blueprint.route("/<flow_id>/complete", methods=["POST"])
@session_debug
@log_route()
async def complete(flow_id: str) -> ResponseType:
    """Submits the flow once every visible required question is answered."""
    navigator = await _load_navigator(flow_id)
    errors = validate_response(
        navigator.flow, navigator.answers, navigator.progress.skipped_sections
    )
    if errors:
        navigator.errors = errors
        logger.info(f"Submission of {flow_id} rejected: {len(errors)} errors")
        return await _respond(
            navigator,
            TransitionResult(status=TransitionStatus.BLOCKED, errors=errors),
            HTTPStatus.UNPROCESSABLE_ENTITY,
        )

    result = await navigator.complete()
    return await _respond(navigator, result)


@flow_blueprint.route("/<flow_id>/reset", methods=["POST"])
@session_debug
@log_route()
async def reset(flow_id: str) -> ResponseType:
    """Starts the flow over with no answers."""
    navigator = await _load_navigator(flow_id)
    navigator.reset()
    return await _respond(navigator)
