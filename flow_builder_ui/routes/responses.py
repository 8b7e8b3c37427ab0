"""Routes for reviewing, editing and exporting responses."""

from datetime import datetime, timezone
from http import HTTPStatus
from typing import Any, cast

from flask import Blueprint, Response, current_app, jsonify, request
from survey_assist_utils.logging import get_logger

from models.flow import Flow
from models.progress import Answer
from models.records import ResponseRecord
from utils.app_types import FlowBuilderFlask, ResponseType
from utils.errors import NotFoundError, ValidationError
from utils.export_utils import export_responses_to_csv, export_responses_to_json
from utils.repository_utils import answers_from_json, answers_to_json
from utils.session_utils import log_route
from utils.validation_utils import validate_answer, validate_flow

responses_blueprint = Blueprint("responses", __name__, url_prefix="/responses")

logger = get_logger(__name__, level="INFO")

EXPORT_FORMATS = {
    "csv": ("text/csv", export_responses_to_csv),
    "json": ("application/json", export_responses_to_json),
}


def _render(record: ResponseRecord) -> dict[str, Any]:
    answers = answers_from_json(record.answers)
    return {
        **record.model_dump(mode="json", exclude={"answers"}),
        "answers": {
            key: answer.model_dump(mode="json", by_alias=True)
            for key, answer in answers.items()
        },
    }


async def _filtered_responses() -> list[ResponseRecord]:
    app = cast(FlowBuilderFlask, current_app)
    template_id = request.args.get("template_id")
    user_id = request.args.get("user_id")
    if template_id:
        records = await app.responses.find_by_template(template_id)
    elif user_id:
        records = await app.responses.find_by_user(user_id)
    else:
        records = await app.responses.find_all()
    if template_id and user_id:
        records = [record for record in records if record.user_id == user_id]
    return records


async def _flows_for(records: list[ResponseRecord]) -> dict[str, Flow]:
    """Loads the flows answered, leaving out templates that no longer exist."""
    app = cast(FlowBuilderFlask, current_app)
    flows: dict[str, Flow] = {}
    for template_id in {record.template_id for record in records}:
        try:
            flows[template_id] = await app.templates.load_flow(template_id)
        except (NotFoundError, ValidationError) as err:
            logger.warning(f"Exporting without template {template_id}: {err}")
    return flows


@responses_blueprint.route("", methods=["GET"])
@log_route()
async def list_responses() -> ResponseType:
    """Lists responses, filtered with ``?template_id=`` and ``?user_id=``."""
    records = await _filtered_responses()
    return jsonify([_render(record) for record in records])


@responses_blueprint.route("/export", methods=["GET"])
@log_route()
async def export_responses() -> ResponseType:
    """Downloads responses as ``?format=csv`` (default) or ``json``."""
    export_format = request.args.get("format", "csv").lower()
    if export_format not in EXPORT_FORMATS:
        raise ValidationError(
            f"format must be one of: {', '.join(sorted(EXPORT_FORMATS))}"
        )
    mimetype, exporter = EXPORT_FORMATS[export_format]

    records = await _filtered_responses()
    content = exporter(records, await _flows_for(records))
    stamp = datetime.now(timezone.utc).strftime("%Y-%m-%d")
    logger.info(f"Exported {len(records)} responses as {export_format}")
    return Response(
        content,
        mimetype=mimetype,
        headers={
            "Content-Disposition": (
                f"attachment; filename=responses-{stamp}.{export_format}"
            )
        },
    )


@responses_blueprint.route("/<response_id>", methods=["GET"])
@log_route()
async def get_response(response_id: str) -> ResponseType:
    """Returns one response with parsed answers."""
    app = cast(FlowBuilderFlask, current_app)
    record = await app.responses.get(response_id)
    return jsonify(_render(record))


@responses_blueprint.route("/<response_id>", methods=["PUT"])
@log_route()
async def update_response(response_id: str) -> ResponseType:
    """Edits answers of a submission from ``{"answers": {questionId: value}}``.

    Answers are checked against their question's rules; unknown questions are
    rejected.
    """
    app = cast(FlowBuilderFlask, current_app)
    body = request.get_json(silent=True)
    if not isinstance(body, dict) or not isinstance(body.get("answers"), dict):
        raise ValidationError("Request body must hold an answers object")

    record = await app.responses.get(response_id)
    template = await app.templates.get(record.template_id)
    flow = validate_flow(template.content)
    answers = answers_from_json(record.answers)

    errors: dict[str, str] = {}
    for question_id, value in body["answers"].items():
        question = flow.find_question(question_id)
        if question is None:
            errors[question_id] = "Unknown question"
            continue
        error = validate_answer(question, value)
        if error:
            errors[question_id] = error
            continue
        answers[question_id] = Answer(question_id=question_id, value=value)

    if errors:
        return jsonify({"error": "Invalid answers", "errors": errors}), (
            HTTPStatus.BAD_REQUEST
        )

    updated = await app.responses.update(
        response_id, {"answers": answers_to_json(answers.values())}
    )
    logger.info(f"Edited {len(body['answers'])} answers of response {response_id}")
    return jsonify(_render(updated))


@responses_blueprint.route("/<response_id>", methods=["DELETE"])
@log_route()
async def delete_response(response_id: str) -> ResponseType:
    """Deletes a response."""
    app = cast(FlowBuilderFlask, current_app)
    await app.responses.delete(response_id)
    return "", HTTPStatus.NO_CONTENT


@responses_blueprint.route("/delete", methods=["POST"])
@log_route()
async def delete_responses() -> ResponseType:
    """Deletes several responses from ``{"ids": [...]}``."""
    app = cast(FlowBuilderFlask, current_app)
    body = request.get_json(silent=True) or {}
    ids = body.get("ids")
    if not isinstance(ids, list) or not ids:
        raise ValidationError("ids must be a non-empty list")
    removed = await app.responses.delete_many(ids)
    return jsonify({"deleted": removed})
