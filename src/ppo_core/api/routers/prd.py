"""PRD validation and work breakdown preview endpoints."""
import logging

from fastapi import APIRouter, HTTPException

from ppo_core import schemas
from ppo_core.prd_parser import PrdParseError, parse_prd, validate_prd, validate_prd_content
from ppo_core.templates import TemplateNotFoundError, get_template
from ppo_core.work_breakdown import generate_work_breakdown

logger = logging.getLogger("ppo-core.api.prd")

router = APIRouter(tags=["prd"])


@router.post("/validate", response_model=schemas.ValidationResult)
def validate(request: schemas.ValidatePrdRequest):
    """
    Parse and validate a PRD, reporting every violation at once.

    - **prd**: JSON/YAML/markdown text or an already-structured object
    - **templateName**: Optional template the PRD is meant for
    """
    result = validate_prd_content(request.prd)
    if request.template_name:
        try:
            get_template(request.template_name)
        except TemplateNotFoundError as e:
            result = schemas.ValidationResult(valid=False, errors=[*result.errors, f"templateName: {e}"])
    return result


@router.post("/work-breakdown", response_model=schemas.WorkBreakdownStructure)
def preview_work_breakdown(request: schemas.ValidatePrdRequest):
    """Generate the work breakdown a run would create, without creating anything."""
    try:
        prd = parse_prd(request.prd)
    except PrdParseError as e:
        raise HTTPException(status_code=422, detail={"message": "PRD could not be parsed", "errors": [str(e)]})

    validation = validate_prd(prd)
    if not validation.valid:
        raise HTTPException(status_code=422, detail={"message": "PRD validation failed", "errors": validation.errors})
    return generate_work_breakdown(prd)
