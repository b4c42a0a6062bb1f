"""Background orchestration runs and their status.

``create_project`` resolves and checks the PRD synchronously, then schedules
the run with ``asyncio.create_task`` and returns the operation id at once.
Operations live in process memory only.
"""
import asyncio
import logging
import uuid
from datetime import date
from typing import Any, Callable, Optional

from .config import Settings, get_settings
from .integrations import Collaborators, build_collaborators
from .models import PrdSource, RunState
from .orchestrator import PhaseOrchestrator
from .prd_parser import PrdParseError, parse_prd, validate_prd
from .prd_sources import acquire_prd
from .schemas import (
    CreateProjectRequest,
    OperationProgress,
    OperationStatusResponse,
    PrdSourceConfig,
    RunResult,
)
from .state_machine import RUN_STEP_ORDER, TOTAL_RUN_STEPS, is_terminal_run_state

logger = logging.getLogger("ppo-core.operations")

CollaboratorFactory = Callable[[bool], Collaborators]


class OperationNotFoundError(Exception):
    def __init__(self, operation_id: str):
        super().__init__(f"Operation {operation_id} not found")
        self.operation_id = operation_id


class PrdRejectedError(Exception):
    """Raised when an explicit PRD does not parse or validate; the run is never started."""

    def __init__(self, errors: list[str]):
        super().__init__(f"PRD rejected: {'; '.join(errors)}")
        self.errors = errors


class OperationService:
    """Owns every run started by this process."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        collaborator_factory: Optional[CollaboratorFactory] = None,
        start_date: Optional[date] = None,
    ):
        self.settings = settings or get_settings()
        self._collaborator_factory = collaborator_factory or (
            lambda dry_run: build_collaborators(self.settings, dry_run=dry_run)
        )
        self._start_date = start_date
        self._operations: dict[str, RunResult] = {}
        self._tasks: dict[str, asyncio.Task] = {}

    async def create_project(self, request: CreateProjectRequest) -> RunResult:
        """Validate the request's PRD and schedule the run in the background.

        Raises:
            PrdSourceError: If the PRD source cannot supply content
            TemplateNotFoundError: If the template is unknown
            PrdRejectedError: If an explicit PRD fails parsing or validation
        """
        explicit = request.prd is not None
        source = request.prd or PrdSourceConfig(source=PrdSource.TEMPLATE, template_name=request.template_name)
        raw = await acquire_prd(
            source,
            project_name=request.project_name,
            description=request.description,
            customization=request.customization,
            template_name=request.template_name,
        )

        prd_input: Any = raw
        if explicit:
            try:
                prd = parse_prd(raw)
            except PrdParseError as e:
                raise PrdRejectedError([str(e)]) from e
            validation = validate_prd(prd)
            if not validation.valid:
                raise PrdRejectedError(validation.errors)
            prd_input = prd

        operation_id = str(uuid.uuid4())
        result = RunResult(
            execution_id=operation_id,
            project_name=request.project_name,
            dry_run=request.options.dry_run,
        )
        self._operations[operation_id] = result
        self._evict_finished()

        collaborators = self._collaborator_factory(request.options.dry_run)
        orchestrator = PhaseOrchestrator(
            collaborators,
            settings=self.settings,
            start_date=self._start_date,
            region=request.customization.get("region"),
        )
        task = asyncio.create_task(
            self._run(orchestrator, collaborators, request, prd_input, result),
            name=f"ppo-run-{operation_id}",
        )
        self._tasks[operation_id] = task
        task.add_done_callback(lambda t: self._run_finished(operation_id, t))
        logger.info(f"Scheduled run {operation_id} for project {request.project_name}")
        return result

    async def _run(
        self,
        orchestrator: PhaseOrchestrator,
        collaborators: Collaborators,
        request: CreateProjectRequest,
        prd_input: Any,
        result: RunResult,
    ) -> RunResult:
        try:
            return await orchestrator.run(request.project_name, prd_input, request.options, result)
        finally:
            await collaborators.aclose()

    def _evict_finished(self) -> None:
        """Drop the oldest finished runs once more than ``max_retained_operations`` are held."""
        excess = len(self._operations) - self.settings.max_retained_operations
        if excess <= 0:
            return
        finished = [
            operation_id
            for operation_id, result in self._operations.items()
            if operation_id not in self._tasks and is_terminal_run_state(result.status)
        ]
        for operation_id in finished[:excess]:
            del self._operations[operation_id]
        if finished:
            logger.debug(f"Evicted {min(excess, len(finished))} finished run(s)")

    def _run_finished(self, operation_id: str, task: asyncio.Task) -> None:
        self._tasks.pop(operation_id, None)
        if task.cancelled():
            logger.warning(f"Run {operation_id} task was cancelled")
            return
        error = task.exception()
        if error is not None:
            # The orchestrator reports failures on the result; reaching here is a bug
            logger.error(f"Run {operation_id} crashed", exc_info=error)
            result = self._operations[operation_id]
            result.error = f"{type(error).__name__}: {error}"
            result.status = RunState.FAILED
        else:
            logger.info(f"Run {operation_id} finished with status {self._operations[operation_id].status.value}")

    def get(self, operation_id: str) -> RunResult:
        result = self._operations.get(operation_id)
        if result is None:
            raise OperationNotFoundError(operation_id)
        return result

    def status(self, operation_id: str) -> OperationStatusResponse:
        result = self.get(operation_id)
        if result.status == RunState.FAILED:
            completed = len(result.phases)
        else:
            completed = RUN_STEP_ORDER.get(result.status, 0)
        return OperationStatusResponse(
            operation_id=operation_id,
            status=result.status,
            cancel_requested=result.cancel_requested,
            progress=OperationProgress(
                total_steps=TOTAL_RUN_STEPS,
                completed_steps=min(completed, TOTAL_RUN_STEPS),
                current_step=None if is_terminal_run_state(result.status) else result.status.value,
            ),
            result=result,
        )

    def cancel(self, operation_id: str) -> RunResult:
        """Record a cancel request. In-flight collaborator calls are not interrupted."""
        result = self.get(operation_id)
        if not is_terminal_run_state(result.status):
            result.cancel_requested = True
            logger.info(f"Cancel requested for run {operation_id}")
        return result

    async def wait(self, operation_id: str) -> RunResult:
        """Await a run's completion."""
        task = self._tasks.get(operation_id)
        if task is not None:
            await asyncio.wait({task})
        return self.get(operation_id)

    def list_operations(self) -> list[RunResult]:
        return list(self._operations.values())
