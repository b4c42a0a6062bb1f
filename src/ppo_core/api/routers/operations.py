"""Operation status and cancel endpoints."""
import logging

from fastapi import APIRouter, Depends, HTTPException

from ppo_core import schemas
from ppo_core.operations import OperationNotFoundError, OperationService

from ..dependencies import get_operation_service

logger = logging.getLogger("ppo-core.api.operations")

router = APIRouter(tags=["operations"])


@router.get("/{operation_id}", response_model=schemas.OperationStatusResponse)
def get_operation_status(
    operation_id: str,
    service: OperationService = Depends(get_operation_service),
):
    """Current state, phase log and execution record of a run."""
    try:
        return service.status(operation_id)
    except OperationNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/{operation_id}/cancel", response_model=schemas.OperationStatusResponse)
def cancel_operation(
    operation_id: str,
    service: OperationService = Depends(get_operation_service),
):
    """
    Request cancellation of a run.

    Only a flag is recorded: the run is not interrupted mid-phase and
    finished runs are left untouched.
    """
    try:
        service.cancel(operation_id)
        return service.status(operation_id)
    except OperationNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
