"""Helpers for managing flow templates."""

import uuid

from survey_assist_utils.logging import get_logger

from models.records import TemplateRecord
from utils.errors import NotFoundError
from utils.repository_utils import TemplateRepository
from utils.validation_utils import validate_flow

logger = get_logger(__name__, level="INFO")


async def duplicate_template(
    repository: TemplateRepository, template_id: str, new_title: str
) -> TemplateRecord:
    """Copies a template under a new id and title.

    The copy is published and never the default.

    Args:
        repository (TemplateRepository): Template storage.
        template_id (str): Template to copy.
        new_title (str): Title of the copy.

    Returns:
        TemplateRecord: The new template.

    Raises:
        NotFoundError: If the source template does not exist.
        ValidationError: If the source content is not a valid flow.
    """
    source = await repository.get(template_id)
    flow = validate_flow(source.content)
    new_id = str(uuid.uuid4())
    copy = flow.model_copy(
        update={"id": new_id, "title": new_title, "is_default": False, "status": "published"}
    )

    created = await repository.create(
        {
            "id": new_id,
            "title": new_title,
            "type": source.type,
            "content": copy.model_dump_json(by_alias=True),
            "status": "published",
            "version": source.version,
        }
    )
    logger.info(f"Duplicated template {template_id} as {created.id}")
    return created


async def ensure_default_template(
    repository: TemplateRepository, flow_type: str
) -> TemplateRecord:
    """Returns the default template of a type, promoting one if none is set.

    Raises:
        NotFoundError: If there are no templates of the type.
    """
    default = await repository.get_default(flow_type)
    if default is not None:
        return default

    templates = await repository.find_by_type(flow_type)
    if not templates:
        raise NotFoundError("Default template", flow_type)

    logger.info(f"No default {flow_type} template, promoting {templates[0].id}")
    return await repository.set_default(templates[0].id)
