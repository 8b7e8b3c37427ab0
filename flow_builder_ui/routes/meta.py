"""Health and build information for the Flow Builder UI."""

from typing import cast

from flask import Blueprint, current_app, jsonify

from flow_builder_ui.versioning import get_build_info
from utils.app_types import FlowBuilderFlask

meta_blueprint = Blueprint("meta", __name__)


@meta_blueprint.route("/__meta", methods=["GET"])
def meta():
    """Returns the build details, the record store in use and the seed count."""
    app = cast(FlowBuilderFlask, current_app)
    return jsonify(
        {
            **get_build_info(),
            "record_store": "http" if app.store_url else "memory",
            "flows_loaded": len(app.flow_definitions),
        }
    )
