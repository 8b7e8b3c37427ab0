"""Blueprints of the Flow Builder UI.

Templates and responses are managed under ``/templates`` and ``/responses``;
respondents move through a flow under ``/flows``.
"""

from .error import error_blueprint
from .flow import flow_blueprint
from .meta import meta_blueprint
from .responses import responses_blueprint
from .templates import templates_blueprint

BLUEPRINTS = (
    meta_blueprint,
    error_blueprint,
    templates_blueprint,
    responses_blueprint,
    flow_blueprint,
)


def register_blueprints(app):
    """Registers every blueprint with the application."""
    for blueprint in BLUEPRINTS:
        app.register_blueprint(blueprint)
