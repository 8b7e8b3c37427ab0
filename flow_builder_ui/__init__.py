"""Flask application setup for the Flow Builder UI.

This module initialises the Flask application, selects the record store,
creates the repositories and seeds the default flows.
"""

import asyncio
import os
from pathlib import Path

from survey_assist_utils.logging import get_logger

from flow_builder_ui.routes import register_blueprints
from utils.api_utils import APIClient, HttpRecordStore
from utils.app_types import FlowBuilderFlask
from utils.app_utils import load_flow_definitions, seed_flows
from utils.errors import DatabaseError
from utils.repository_utils import (
    InMemoryRecordStore,
    ResponseRepository,
    TemplateRepository,
)

from .versioning import get_app_version, get_build_info

logger = get_logger(__name__)

DEFAULT_FLOW_DEFINITIONS = Path(__file__).parent / "flows" / "default_flows.json"


def create_app(test_config: dict | None = None) -> FlowBuilderFlask:
    """Initialises and configures the Flow Builder Flask application.

    This function sets up the Flask app, loads configuration and flow definitions,
    initialises the record store and repositories, registers blueprints, and
    applies test overrides.

    Args:
        test_config (dict | None): Optional dictionary of test configuration overrides.

    Returns:
        FlowBuilderFlask: The initialised and configured Flask application instance.
    """
    flask_app = FlowBuilderFlask(__name__)
    flask_app.secret_key = os.getenv("FLASK_SECRET_KEY", os.urandom(24))
    flask_app.store_url = os.getenv("RECORD_STORE_URL", "")

    flask_app.config["SESSION_DEBUG"] = (
        os.getenv("SESSION_DEBUG", "false").lower() == "true"
    )
    flask_app.config["JSON_DEBUG"] = os.getenv("JSON_DEBUG", "false").lower() == "true"
    flask_app.config["FLOW_DEFINITIONS"] = os.getenv(
        "FLOW_DEFINITIONS", str(DEFAULT_FLOW_DEFINITIONS)
    )
    flask_app.config["SEED_FLOWS"] = True

    # Allow test overrides
    if test_config:
        flask_app.config.update(test_config)

    if flask_app.store_url:
        api_client = APIClient(
            base_url=flask_app.store_url,
            token=os.getenv("RECORD_STORE_TOKEN", ""),
            logger_handle=logger,
        )
        flask_app.record_store = HttpRecordStore(api_client)
        logger.info(f"Using HTTP record store at {flask_app.store_url}")
    else:
        flask_app.record_store = InMemoryRecordStore()
        logger.info("Using in-memory record store")

    flask_app.templates = TemplateRepository(flask_app.record_store)
    flask_app.responses = ResponseRepository(flask_app.record_store)

    load_flow_definitions(flask_app, flask_app.config["FLOW_DEFINITIONS"])
    if flask_app.config["SEED_FLOWS"]:
        try:
            stored = asyncio.run(
                seed_flows(flask_app.templates, flask_app.flow_definitions)
            )
            logger.info(f"Seeded {stored} flows")
        except DatabaseError as err:
            logger.error(f"Could not seed flows: {err}")

    register_blueprints(flask_app)

    @flask_app.after_request
    def add_version_header(resp):
        """Tags every response with the deployed version and revision."""
        build = get_build_info()
        resp.headers["X-App-Version"] = build["app_version"]
        resp.headers["X-App-Revision"] = build["git_sha"]
        return resp

    logger.info(f"Flow Builder UI initialised - version {get_app_version()}")

    return flask_app
