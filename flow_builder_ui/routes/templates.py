"""Routes for managing flow templates."""

import uuid
from http import HTTPStatus
from typing import Any, cast

from flask import Blueprint, current_app, jsonify, request
from survey_assist_utils.logging import get_logger

from models.records import TemplateRecord
from utils.app_types import FlowBuilderFlask, ResponseType
from utils.errors import ValidationError
from utils.session_utils import log_route
from utils.template_utils import duplicate_template
from utils.validation_utils import validate_flow

templates_blueprint = Blueprint("templates", __name__, url_prefix="/templates")

logger = get_logger(__name__, level="INFO")


def _summary(record: TemplateRecord) -> dict[str, Any]:
    return record.model_dump(mode="json", exclude={"content"})


def _flow_body() -> dict[str, Any]:
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    return body


@templates_blueprint.route("", methods=["GET"])
@log_route()
async def list_templates() -> ResponseType:
    """Lists templates, optionally filtered with ``?type=``."""
    app = cast(FlowBuilderFlask, current_app)
    flow_type = request.args.get("type")
    if flow_type:
        records = await app.templates.find_by_type(flow_type)
    else:
        records = await app.templates.find_all()
    return jsonify([_summary(record) for record in records])


@templates_blueprint.route("/<template_id>", methods=["GET"])
@log_route()
async def get_template(template_id: str) -> ResponseType:
    """Returns a template with its parsed flow."""
    app = cast(FlowBuilderFlask, current_app)
    record = await app.templates.get(template_id)
    flow = validate_flow(record.content)
    return jsonify(
        {**_summary(record), "flow": flow.model_dump(mode="json", by_alias=True)}
    )


@templates_blueprint.route("", methods=["POST"])
@log_route()
async def create_template() -> ResponseType:
    """Creates a template from a flow document; an id is generated if absent."""
    app = cast(FlowBuilderFlask, current_app)
    body = _flow_body()
    body.setdefault("id", str(uuid.uuid4()))
    flow = validate_flow(body)
    if await app.templates.find_by_id(flow.id) is not None:
        raise ValidationError(f"Template with id {flow.id} already exists")
    record = await app.templates.save_flow(flow)
    return jsonify(_summary(record)), HTTPStatus.CREATED


@templates_blueprint.route("/<template_id>", methods=["PUT"])
@log_route()
async def update_template(template_id: str) -> ResponseType:
    """Replaces the flow held by an existing template."""
    app = cast(FlowBuilderFlask, current_app)
    await app.templates.get(template_id)
    flow = validate_flow({**_flow_body(), "id": template_id})
    record = await app.templates.save_flow(flow)
    return jsonify(_summary(record))


@templates_blueprint.route("/<template_id>", methods=["DELETE"])
@log_route()
async def delete_template(template_id: str) -> ResponseType:
    """Deletes a template."""
    app = cast(FlowBuilderFlask, current_app)
    await app.templates.delete(template_id)
    logger.info(f"Deleted template {template_id}")
    return "", HTTPStatus.NO_CONTENT


@templates_blueprint.route("/<template_id>/default", methods=["POST"])
@log_route()
async def make_default(template_id: str) -> ResponseType:
    """Makes a template the default for its flow type."""
    app = cast(FlowBuilderFlask, current_app)
    record = await app.templates.set_default(template_id)
    return jsonify(_summary(record))


@templates_blueprint.route("/<template_id>/duplicate", methods=["POST"])
@log_route()
async def duplicate(template_id: str) -> ResponseType:
    """Copies a template; the title defaults to "<title> (Copy)"."""
    app = cast(FlowBuilderFlask, current_app)
    body = request.get_json(silent=True) or {}
    title = body.get("title")
    if not title:
        source = await app.templates.get(template_id)
        title = f"{source.title} (Copy)"
    record = await duplicate_template(app.templates, template_id, title)
    return jsonify(_summary(record)), HTTPStatus.CREATED
