"""Unit tests for template duplication and default selection."""

import pytest

from utils.errors import NotFoundError
from utils.template_utils import duplicate_template, ensure_default_template
from utils.validation_utils import validate_flow

# pylint: disable=unused-argument, disable=redefined-outer-name


@pytest.mark.asyncio
async def test_duplicate_template(template_repository, sample_flow):
    """The copy has a new id and title, is published and not the default."""
    await template_repository.save_flow(sample_flow.model_copy(update={"is_default": True}))

    copy = await duplicate_template(template_repository, sample_flow.id, "Copy of sample")

    assert copy.id != sample_flow.id
    assert copy.title == "Copy of sample"
    assert copy.status == "published"
    assert copy.is_default is False

    flow = validate_flow(copy.content)
    assert flow.id == copy.id
    assert flow.title == "Copy of sample"
    assert flow.is_default is False
    assert [s.id for s in flow.sections] == [s.id for s in sample_flow.sections]
    assert (await template_repository.get_default("onboarding")).id == sample_flow.id


@pytest.mark.asyncio
async def test_duplicate_missing_template(template_repository):
    """Duplicating an unknown template raises NotFoundError."""
    with pytest.raises(NotFoundError):
        await duplicate_template(template_repository, "missing", "Copy")


@pytest.mark.asyncio
async def test_ensure_default_returns_existing(template_repository, sample_flow):
    """An existing default is returned unchanged."""
    await template_repository.save_flow(sample_flow.model_copy(update={"is_default": True}))
    default = await ensure_default_template(template_repository, "onboarding")
    assert default.id == sample_flow.id


@pytest.mark.asyncio
async def test_ensure_default_promotes_template(template_repository, sample_flow):
    """Without a default, a template of the type is promoted."""
    await template_repository.save_flow(sample_flow)

    default = await ensure_default_template(template_repository, "onboarding")

    assert default.id == sample_flow.id
    assert default.is_default is True


@pytest.mark.asyncio
async def test_ensure_default_without_templates(template_repository):
    """No templates of the type raises NotFoundError."""
    with pytest.raises(NotFoundError, match="Default template with id questionnaire"):
        await ensure_default_template(template_repository, "questionnaire")
