"""Flask application utility functions.

This module provides helper functions setting up the Flask application.
"""

import json
from pathlib import Path
from typing import Any

from survey_assist_utils.logging import get_logger

from utils.repository_utils import TemplateRepository
from utils.validation_utils import validate_flow

logger = get_logger(__name__)


def read_flow_definitions(file_path: str | Path) -> list[dict[str, Any]]:
    """Reads seed flow definitions from JSON.

    The file holds ``{"flows": [...]}``; each flow is validated on load.

    Args:
        file_path: Path to the flow definitions JSON file.

    Returns:
        list[dict[str, Any]]: The flow definitions.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValidationError: If a flow definition is invalid.
    """
    file_path = Path(file_path)

    if not file_path.exists():
        raise FileNotFoundError(f"Flow definitions file not found: {file_path}")

    with file_path.open(encoding="utf-8") as file:
        definitions = json.load(file)

    flows = definitions.get("flows", [])
    for flow in flows:
        validate_flow(flow)

    logger.info(f"Loaded {len(flows)} flow definitions from {file_path}")
    return flows


def load_flow_definitions(flask_app: Any, file_path: str | Path) -> None:
    """Load seed flow definitions and set them on the Flask app.

    Args:
        flask_app: The Flask app instance.
        file_path: Path to the flow definitions JSON file.
    """
    flask_app.flow_definitions = read_flow_definitions(file_path)


async def seed_flows(repository: TemplateRepository, flows: list[dict[str, Any]]) -> int:
    """Stores seed flows that are not already present.

    Args:
        repository: Template storage.
        flows: Flow definitions.

    Returns:
        int: Number of flows stored.
    """
    stored = 0
    for definition in flows:
        flow = validate_flow(definition)
        if await repository.find_by_id(flow.id) is not None:
            continue
        await repository.save_flow(flow)
        stored += 1
    return stored
