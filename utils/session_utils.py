"""Flask session helpers for the Flow Builder UI.

Pydantic models, such as progress through a flow, are kept in the session as
JSON-ready dicts. Decorators here log route calls and, when SESSION_DEBUG is
set, the session size and content.
"""

import uuid
from collections.abc import Callable
from datetime import datetime
from functools import wraps
from typing import Any, Optional, TypeVar

from flask import current_app, request, session
from flask.sessions import SecureCookieSessionInterface
from pydantic import BaseModel
from survey_assist_utils.logging import get_logger

from models.progress import ProgressSnapshot

T = TypeVar("T", bound=BaseModel)

FLOW_SESSION_PREFIX = "flow_progress"

logger = get_logger(__name__, level="DEBUG")


async def _call_view(f: Callable, *args, **kwargs):
    response = f(*args, **kwargs)
    if hasattr(response, "__await__"):
        response = await response
    return response


def session_debug(f: Callable) -> Callable:
    """Logs the session once the wrapped view has returned.

    The view may be a coroutine function or a plain function.
    """

    @wraps(f)
    async def decorated_function(*args, **kwargs):
        response = await _call_view(f, *args, **kwargs)
        print_session_info()
        return response

    return decorated_function


def log_route(participant_override: Optional[str] = None) -> Callable:
    """Decorator factory logging each call to a route with the participant.

    Args:
        participant_override (Optional[str]): Logged instead of the session user.

    Returns:
        Callable: The decorator.
    """

    def decorator(f: Callable) -> Callable:
        @wraps(f)
        async def decorated_function(*args, **kwargs):
            participant = participant_override or session.get("user_id", "unknown")
            logger.info(f"{request.method} {request.path} - user:{participant}")
            return await _call_view(f, *args, **kwargs)

        return decorated_function

    return decorator


def get_user_id() -> str:
    """Returns the respondent id for this session, creating one if needed."""
    if "user_id" not in session:
        session["user_id"] = str(uuid.uuid4())
        session.modified = True
    return session["user_id"]


def _convert_datetimes(obj: Any) -> Any:
    """Replaces datetimes nested in dicts and lists with ISO 8601 strings."""
    if isinstance(obj, dict):
        return {key: _convert_datetimes(value) for key, value in obj.items()}
    if isinstance(obj, list):
        return [_convert_datetimes(item) for item in obj]
    if isinstance(obj, datetime):
        return obj.isoformat()
    return obj


def get_encoded_session_size(session_obj: dict) -> int:
    """Size in bytes of the signed session cookie for ``session_obj``."""
    serializer = SecureCookieSessionInterface().get_signing_serializer(current_app)
    if serializer is None:
        return 0
    return len(serializer.dumps(session_obj).encode("utf-8"))


def print_session_info() -> None:
    """Logs the session size, and its content when JSON_DEBUG is set.

    Does nothing unless SESSION_DEBUG is set.
    """
    if not current_app.config.get("SESSION_DEBUG", False):
        return

    try:
        session_data = dict(session)
        logger.debug("\n=== Session Debug Info ===")
        logger.debug(f"Session size: {get_encoded_session_size(session_data)} bytes")
        if current_app.config.get("JSON_DEBUG", False):
            logger.debug("Session content:")
            logger.debug(_convert_datetimes(session_data))
    except (KeyError, TypeError, ValueError) as err:
        logger.error(f"Error printing session debug info: {err}")


def save_model_to_session(key: str, model: BaseModel) -> None:
    """Stores a model in the session under ``key`` with camelCase keys."""
    session[key] = model.model_dump(mode="json", by_alias=True)
    session.modified = True


def load_model_from_session(key: str, model_class: type[T]) -> T:
    """Rebuilds the model stored under ``key``; raises KeyError if absent."""
    return model_class.model_validate(session[key])


def remove_model_from_session(key: str) -> None:
    """Drops ``key`` from the session; a missing key is ignored."""
    session.pop(key, None)
    session.modified = True


def flow_session_key(flow_id: str) -> str:
    """Session key holding the progress through a flow."""
    return f"{FLOW_SESSION_PREFIX}:{flow_id}"


def load_flow_progress(flow_id: str) -> Optional[ProgressSnapshot]:
    """Returns the progress through a flow stored in the session, if any."""
    key = flow_session_key(flow_id)
    if key not in session:
        return None
    return load_model_from_session(key, ProgressSnapshot)


def save_flow_progress(snapshot: ProgressSnapshot) -> None:
    """Stores the progress through a flow in the session."""
    save_model_to_session(flow_session_key(snapshot.flow_id), snapshot)
