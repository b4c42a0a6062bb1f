"""Template catalog endpoints."""
import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query

from ppo_core import schemas
from ppo_core.templates import TemplateNotFoundError, get_template, list_templates

logger = logging.getLogger("ppo-core.api.templates")

router = APIRouter(tags=["templates"])


@router.get("/", response_model=schemas.TemplateListResponse)
def get_templates(
    category: Optional[str] = Query(None, description="standard, enterprise, quickstart or all"),
):
    """List available project templates."""
    templates = list_templates(category)
    return schemas.TemplateListResponse(templates=templates, total_count=len(templates))


@router.get("/{template_name}", response_model=schemas.TemplateDetails)
def get_template_details(template_name: str):
    """Full template, including phases, requirements and its PRD skeleton."""
    try:
        return get_template(template_name)
    except TemplateNotFoundError as e:
        logger.debug(f"Template lookup failed: {e}")
        raise HTTPException(status_code=404, detail=str(e))
