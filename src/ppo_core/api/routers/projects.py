"""Project creation endpoint."""
import logging

from fastapi import APIRouter, Depends, HTTPException

from ppo_core import schemas
from ppo_core.operations import OperationService, PrdRejectedError
from ppo_core.prd_sources import PrdSourceError
from ppo_core.templates import TemplateNotFoundError

from ..dependencies import get_operation_service

logger = logging.getLogger("ppo-core.api.projects")

router = APIRouter(tags=["projects"])


@router.post("/", response_model=schemas.CreateProjectResponse, status_code=202)
async def create_project(
    request: schemas.CreateProjectRequest,
    service: OperationService = Depends(get_operation_service),
):
    """
    Start a project bootstrap run in the background.

    - **projectName**: Name of the project to create
    - **templateName**: Template used when no PRD is given (default: standard-project)
    - **description**: Optional project description (template answer)
    - **customization**: Extra template answers; `region` also selects the environment region
    - **prd**: Optional explicit PRD source; validated before the run is scheduled
    - **options**: dryRun, skipAppRegistration, skipAzureDevOps, skipPowerPlatform

    Returns the operation id immediately; poll `/operations/{id}` for progress.
    """
    try:
        result = await service.create_project(request)
    except TemplateNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PrdSourceError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except PrdRejectedError as e:
        logger.info(f"Rejected PRD for project '{request.project_name}': {e.errors}")
        raise HTTPException(status_code=422, detail={"message": "PRD validation failed", "errors": e.errors})

    mode = " (dry run)" if request.options.dry_run else ""
    return schemas.CreateProjectResponse(
        operation_id=result.execution_id,
        status=result.status,
        message=f"Project creation started for '{request.project_name}'{mode}",
    )
