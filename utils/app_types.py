"""Type definitions and custom Flask app class for the Flow Builder UI.

This module provides type aliases and a custom Flask app class with additional attributes
for use in the Flow Builder UI application.
"""

from typing import Any, Union

from flask import Flask
from flask import Response as FlaskResponse
from werkzeug.wrappers import Response as WerkzeugResponse

# Type alias for the response type used in the application
ResponseType = Union[FlaskResponse, WerkzeugResponse]


class FlowBuilderFlask(Flask):
    """Custom Flask app class with additional attributes for the Flow Builder.

    Attributes:
        record_store (Any): Backing store shared by the repositories.
        templates (Any): TemplateRepository instance.
        responses (Any): ResponseRepository instance.
        store_url (str): Base URL of the HTTP record store, empty for in-memory.
        flow_definitions (list[dict[str, Any]]): Seed flows loaded at start-up.
    """

    record_store: Any
    templates: Any
    responses: Any
    store_url: str
    flow_definitions: list[dict[str, Any]]
