"""Phase orchestrator: PRD to provisioned project.

A run walks the phases in order:

    prd_processing -> wbs_generation -> foundation_setup
    -> parallel_infra_setup (work tracking || platform) -> completion

Required phases (PRD processing, WBS generation, foundation) halt the run
when they fail. The two parallel branches are joined, never raced; their
failures stay in their own phase entries. Completion closes technical
stories whose progress condition was met and never fails the run.

Every run gets its own ``RunResult``/``ExecutionState``; the result object
is updated in place so status polling sees phases as they land.
"""
import asyncio
import logging
import re
import uuid
from datetime import date
from typing import Any, Awaitable, Callable, Mapping, Optional, Union

from .config import Settings, get_settings
from .integrations import Collaborators, SchemaAwarePlatformClient
from .models import (
    EnvironmentType,
    PhaseName,
    PhaseStatus,
    Priority,
    ProgressOwner,
    RunState,
    StoryStatus,
    WorkItemType,
)
from .prd_parser import PrdParseError, parse_prd, validate_prd
from .progress import (
    APP_REGISTRATION_CREATED,
    PUBLISHER_CREATED,
    SOLUTION_CREATED,
    environment_key,
    entity_key,
    mark_progress,
)
from .schema_registry import SchemaRegistry
from .schemas import (
    PRD,
    AppRegistration,
    CreatedIteration,
    CreatedWorkItem,
    ExecutionState,
    OrchestrationOptions,
    PhaseLogEntry,
    PlatformResources,
    RunResult,
    WorkBreakdownStructure,
    WorkTrackingProject,
    utc_now,
)
from .state_machine import StoryStateTransitionError, validate_run_transition, validate_story_transition
from .work_breakdown import generate_work_breakdown

logger = logging.getLogger("ppo-core.orchestrator")

WORK_ITEM_PRIORITY = {Priority.HIGH: 1, Priority.MEDIUM: 2, Priority.LOW: 3}
TECHNICAL_TAGS = "Technical;Infrastructure"

PrdInput = Union[str, Mapping[str, Any], PRD]


class PhaseFailed(Exception):
    """Raised inside a phase to fail it while keeping its partial result."""

    def __init__(self, message: str, result: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.result = result or {}


def _capitalize(text: str) -> str:
    return text[:1].upper() + text[1:]


def _solution_version(version: str) -> str:
    """Solutions need a four-part version: 1.2 -> 1.2.0.0."""
    parts = [p for p in re.split(r"[.\-+]", version) if p.isdigit()][:4] or ["1"]
    return ".".join(parts + ["0"] * (4 - len(parts)))


class PhaseOrchestrator:
    """Runs one PRD through every phase against the given collaborators."""

    def __init__(
        self,
        collaborators: Collaborators,
        settings: Optional[Settings] = None,
        start_date: Optional[date] = None,
        region: Optional[str] = None,
    ):
        self.collaborators = collaborators
        self.settings = settings or get_settings()
        self.start_date = start_date
        self.region = region or self.settings.default_region

    # =========================================================================
    # Run bookkeeping
    # =========================================================================

    def _transition(self, result: RunResult, new_state: RunState) -> None:
        validate_run_transition(result.status, new_state)
        result.status = new_state
        logger.info(f"[{result.execution_id}] Run state: {new_state.value}")

    def _fail(self, result: RunResult, error: str) -> RunResult:
        self._transition(result, RunState.FAILED)
        result.error = error
        result.end_time = utc_now()
        logger.warning(f"[{result.execution_id}] Run failed: {error}")
        return result

    async def _run_phase(
        self,
        result: RunResult,
        name: PhaseName,
        phase: Callable[[], Awaitable[dict[str, Any]]],
    ) -> PhaseLogEntry:
        """Run one phase and turn its outcome (or exception) into a log entry."""
        logger.info(f"[{result.execution_id}] Phase {name.value} started")
        try:
            outcome = await phase()
        except PhaseFailed as e:
            entry = PhaseLogEntry(name=name, status=PhaseStatus.FAILED, result=e.result, error=str(e))
        except Exception as e:
            logger.error(f"[{result.execution_id}] Phase {name.value} raised", exc_info=True)
            entry = PhaseLogEntry(name=name, status=PhaseStatus.FAILED, error=f"{type(e).__name__}: {e}")
        else:
            entry = PhaseLogEntry(name=name, status=PhaseStatus.COMPLETED, result=outcome)

        if entry.status == PhaseStatus.FAILED:
            logger.warning(f"[{result.execution_id}] Phase {name.value} failed: {entry.error}")
        else:
            logger.info(f"[{result.execution_id}] Phase {name.value} completed")
        return entry

    @staticmethod
    def _skipped(name: PhaseName, reason: str) -> PhaseLogEntry:
        return PhaseLogEntry(name=name, status=PhaseStatus.SKIPPED, result={"reason": reason})

    # =========================================================================
    # Entry point
    # =========================================================================

    async def run(
        self,
        project_name: str,
        prd_input: PrdInput,
        options: Optional[OrchestrationOptions] = None,
        result: Optional[RunResult] = None,
    ) -> RunResult:
        """Execute a full run. Never raises; failures are reported on the result."""
        options = options or OrchestrationOptions()
        if result is None:
            result = RunResult(execution_id=str(uuid.uuid4()), project_name=project_name, dry_run=options.dry_run)
        state = result.execution_state

        # PRD processing
        self._transition(result, RunState.PRD_PROCESSING)
        entry = await self._run_phase(result, PhaseName.PRD_PROCESSING, lambda: self._process_prd(prd_input, state))
        result.phases.append(entry)
        if entry.status == PhaseStatus.FAILED:
            return self._fail(result, entry.error or "PRD processing failed")
        prd = state.prd

        # WBS generation
        self._transition(result, RunState.WBS_GENERATION)
        entry = await self._run_phase(result, PhaseName.WBS_GENERATION, lambda: self._generate_wbs(prd, state))
        result.phases.append(entry)
        if entry.status == PhaseStatus.FAILED:
            return self._fail(result, entry.error or "Work breakdown generation failed")
        wbs = state.work_breakdown

        # Foundation
        self._transition(result, RunState.FOUNDATION_SETUP)
        if options.skip_app_registration:
            result.phases.append(self._skipped(PhaseName.FOUNDATION_SETUP, "skipAppRegistration"))
        else:
            entry = await self._run_phase(
                result, PhaseName.FOUNDATION_SETUP, lambda: self._setup_foundation(project_name, prd, state)
            )
            result.phases.append(entry)
            if entry.status == PhaseStatus.FAILED:
                return self._fail(result, entry.error or "Foundation setup failed")

        # Parallel infrastructure
        self._transition(result, RunState.PARALLEL_INFRA_SETUP)
        result.phases.extend(await self._run_parallel_branches(result, project_name, prd, wbs, options))

        # Completion
        self._transition(result, RunState.COMPLETION)
        result.phases.append(
            await self._run_phase(result, PhaseName.COMPLETION, lambda: self._complete_technical_stories(wbs, state))
        )

        result.summary = self._summary(state)
        result.end_time = utc_now()
        if result.cancel_requested:
            logger.info(f"[{result.execution_id}] Cancel was requested; run continued to completion")
        self._transition(result, RunState.COMPLETED)
        return result

    async def _run_parallel_branches(
        self,
        result: RunResult,
        project_name: str,
        prd: PRD,
        wbs: WorkBreakdownStructure,
        options: OrchestrationOptions,
    ) -> list[PhaseLogEntry]:
        state = result.execution_state
        branches: list[tuple[PhaseName, Optional[str], Callable[[], Awaitable[dict[str, Any]]]]] = [
            (
                PhaseName.WORK_TRACKING_SETUP,
                "skipAzureDevOps" if options.skip_azure_dev_ops else None,
                lambda: self._setup_work_tracking(project_name, prd, wbs, state),
            ),
            (
                PhaseName.PLATFORM_SETUP,
                "skipPowerPlatform" if options.skip_power_platform else None,
                lambda: self._setup_platform(project_name, prd, state),
            ),
        ]

        parallel = options.enable_parallel_execution
        if parallel is None:
            parallel = self.settings.enable_parallel_execution

        async def run_branch(name, skip_reason, phase) -> PhaseLogEntry:
            if skip_reason:
                return self._skipped(name, skip_reason)
            return await self._run_phase(result, name, phase)

        if parallel:
            # _run_phase never raises, so gather joins both branches
            return list(await asyncio.gather(*(run_branch(*branch) for branch in branches)))
        return [await run_branch(*branch) for branch in branches]

    # =========================================================================
    # Required phases
    # =========================================================================

    async def _process_prd(self, prd_input: PrdInput, state: ExecutionState) -> dict[str, Any]:
        try:
            prd = prd_input if isinstance(prd_input, PRD) else parse_prd(prd_input)
        except PrdParseError as e:
            raise PhaseFailed(str(e), {"attempts": [f"{a.format}: {a.reason}" for a in e.attempts]}) from e

        validation = validate_prd(prd)
        if not validation.valid:
            raise PhaseFailed(
                f"PRD validation failed: {'; '.join(validation.errors)}",
                {"errors": validation.errors},
            )
        state.prd = prd
        return {
            "productName": prd.product.name,
            "features": len(prd.features),
            "environments": prd.technical.environments,
            "entities": [entity.name for entity in prd.technical.data_model],
        }

    async def _generate_wbs(self, prd: PRD, state: ExecutionState) -> dict[str, Any]:
        wbs = generate_work_breakdown(prd, self.start_date)
        state.work_breakdown = wbs
        return {
            "epics": len(wbs.epics),
            "features": len(wbs.features),
            "userStories": len(wbs.user_stories),
            "technicalStories": len(wbs.technical_stories),
            "sprints": len(wbs.sprints),
        }

    async def _setup_foundation(self, project_name: str, prd: PRD, state: ExecutionState) -> dict[str, Any]:
        registration = await self.collaborators.identity.create_app_registration(
            display_name=f"{project_name} - Power Platform App",
            description=f"Application registration for {prd.product.name}",
        )
        if not registration.success:
            raise PhaseFailed(f"App registration failed: {registration.error}")

        data = registration.data or {}
        state.app_registration = AppRegistration(
            client_id=str(data.get("clientId", "")),
            object_id=str(data.get("objectId", "")),
            display_name=str(data.get("displayName", "")),
        )
        mark_progress(state.progress, APP_REGISTRATION_CREATED, ProgressOwner.FOUNDATION)
        return state.app_registration.model_dump(by_alias=True)

    # =========================================================================
    # Work tracking branch
    # =========================================================================

    async def _setup_work_tracking(
        self,
        project_name: str,
        prd: PRD,
        wbs: WorkBreakdownStructure,
        state: ExecutionState,
    ) -> dict[str, Any]:
        """Create the project, its hierarchy and iterations.

        Items are linked to a parent only when the parent was created; the
        rest are created as orphans and counted as such.
        """
        client = self.collaborators.work_tracking
        project = await client.create_project(
            name=project_name,
            description=prd.product.description or f"Project for {prd.product.name}",
            process_template=prd.project.methodology,
            visibility="private",
        )
        if not project.success:
            raise PhaseFailed(f"Project creation failed: {project.error}")

        tracking = WorkTrackingProject(project=project.data or {"name": project_name})
        state.azure_dev_ops_project = tracking
        errors: list[str] = []
        linked = orphaned = 0

        epic_ids: dict[str, Any] = {}
        for epic in wbs.epics:
            created = await client.create_work_item(
                project=project_name,
                work_item_type=WorkItemType.EPIC.value,
                title=epic.name,
                description=epic.description,
                priority=1,
            )
            if created.success:
                epic_ids[epic.name] = created.id
                tracking.epics.append(CreatedWorkItem(key=epic.name, title=epic.name, work_item_id=created.id))
            else:
                errors.append(f"Epic '{epic.name}': {created.error}")

        feature_ids: dict[str, Any] = {}
        for feature in wbs.features:
            parent_id = epic_ids.get(feature.epic_name)
            created = await client.create_work_item(
                project=project_name,
                work_item_type=WorkItemType.FEATURE.value,
                title=feature.name,
                description=feature.description,
                priority=WORK_ITEM_PRIORITY[feature.priority],
                parent_id=parent_id,
                story_points=feature.estimated_points,
            )
            if created.success:
                feature_ids[feature.name] = created.id
                tracking.features.append(CreatedWorkItem(
                    key=feature.name, title=feature.name, work_item_id=created.id, parent_id=parent_id,
                ))
                if parent_id is None:
                    orphaned += 1
                else:
                    linked += 1
            else:
                errors.append(f"Feature '{feature.name}': {created.error}")

        for story in wbs.user_stories:
            parent_id = feature_ids.get(story.feature_name)
            created = await client.create_work_item(
                project=project_name,
                work_item_type=WorkItemType.USER_STORY.value,
                title=story.title,
                description=story.description,
                priority=WORK_ITEM_PRIORITY[story.priority],
                parent_id=parent_id,
                story_points=story.story_points,
            )
            if created.success:
                tracking.user_stories.append(CreatedWorkItem(
                    key=story.key, title=story.title, work_item_id=created.id, parent_id=parent_id,
                ))
                if parent_id is None:
                    orphaned += 1
                else:
                    linked += 1
            else:
                errors.append(f"User story {story.key}: {created.error}")

        for story in wbs.technical_stories:
            created = await client.create_work_item(
                project=project_name,
                work_item_type=WorkItemType.USER_STORY.value,
                title=story.title,
                description=story.description,
                priority=WORK_ITEM_PRIORITY[story.priority],
                story_points=story.story_points,
                tags=TECHNICAL_TAGS,
            )
            if created.success:
                tracking.technical_stories.append(
                    CreatedWorkItem(key=story.key, title=story.title, work_item_id=created.id)
                )
            else:
                errors.append(f"Technical story {story.key}: {created.error}")

        for sprint in wbs.sprints:
            created = await client.create_iteration(
                project=project_name,
                name=sprint.name,
                start_date=sprint.start_date,
                finish_date=sprint.end_date,
            )
            if created.success:
                tracking.sprints.append(CreatedIteration(
                    name=sprint.name,
                    iteration_id=created.id if created.id is not None else sprint.name,
                    start_date=sprint.start_date,
                    end_date=sprint.end_date,
                ))
            else:
                errors.append(f"Iteration '{sprint.name}': {created.error}")

        def counts(created: list, attempted: list) -> dict[str, int]:
            return {"created": len(created), "attempted": len(attempted)}

        return {
            "project": project_name,
            "epics": counts(tracking.epics, wbs.epics),
            "features": counts(tracking.features, wbs.features),
            "userStories": counts(tracking.user_stories, wbs.user_stories),
            "technicalStories": counts(tracking.technical_stories, wbs.technical_stories),
            "sprints": counts(tracking.sprints, wbs.sprints),
            "linked": linked,
            "orphaned": orphaned,
            "errors": errors,
        }

    # =========================================================================
    # Platform branch
    # =========================================================================

    async def _setup_platform(self, project_name: str, prd: PRD, state: ExecutionState) -> dict[str, Any]:
        """Create environments, publisher, solution, tables and relationships.

        Only fails when nothing at all could be created.
        """
        client = self.collaborators.platform
        prefix = self.settings.publisher_prefix
        schema_client = SchemaAwarePlatformClient(client, SchemaRegistry(prefix))
        resources = PlatformResources()
        state.power_platform_resources = resources
        errors: list[str] = []

        def mark(key: str) -> None:
            mark_progress(state.progress, key, ProgressOwner.PLATFORM)

        for env in prd.technical.environments:
            environment_type = EnvironmentType.PRODUCTION if env.lower() == "prod" else EnvironmentType.SANDBOX
            created = await client.create_environment(
                name=f"{project_name.lower()}-{env}",
                display_name=f"{project_name} {_capitalize(env)}",
                environment_type=environment_type.value,
                region=self.region,
                description=f"{env} environment for {prd.product.name}",
            )
            if created.success:
                resources.environments.append({**(created.data or {}), "name": env})
                mark(environment_key(env))
            else:
                errors.append(f"Environment '{env}': {created.error}")

        publisher_name = re.sub(r"[^a-z0-9]", "", project_name.lower())
        if publisher_name:
            created = await client.create_publisher({
                "uniquename": publisher_name,
                "friendlyname": f"{project_name} Solutions",
                "description": f"Publisher for {prd.product.name}",
                "customizationprefix": prefix,
            })
            if created.success:
                resources.publisher = {"uniquename": publisher_name, **(created.data or {})}
                mark(PUBLISHER_CREATED)
            else:
                errors.append(f"Publisher: {created.error}")
        else:
            errors.append(f"Publisher: project name '{project_name}' has no letters or digits")

        if resources.publisher is not None:
            solution = {
                "uniquename": f"{re.sub(r'[^a-zA-Z0-9]', '', project_name)}Solution",
                "friendlyname": f"{prd.product.name} Solution",
                "description": f"Main solution for {prd.product.name}",
                "version": _solution_version(prd.product.version),
            }
            if resources.publisher.get("id"):
                solution["publisherid@odata.bind"] = f"/publishers({resources.publisher['id']})"
            created = await client.create_solution(solution)
            if created.success:
                resources.solution = {**solution, **(created.data or {})}
                mark(SOLUTION_CREATED)
            else:
                errors.append(f"Solution: {created.error}")

        for entity in prd.technical.data_model:
            created = await schema_client.create_table(entity.name)
            if created.success:
                resources.data_model.append({"name": entity.name, **(created.data or {})})
                mark(entity_key(entity.name))
            else:
                errors.append(f"Table '{entity.name}': {created.error}")

        created_tables = {table["name"] for table in resources.data_model}
        for entity in prd.technical.data_model:
            if entity.name not in created_tables:
                continue
            for parent in entity.lookups:
                created = await schema_client.create_relationship(parent, entity.name)
                if created.success:
                    resources.relationships.append(created.data["schemaName"])
                else:
                    errors.append(f"Relationship {parent} -> {entity.name}: {created.error}")

        tables_in_solution = 0
        if resources.solution is not None:
            for table in resources.data_model:
                added = await schema_client.add_table_to_solution(table["name"], resources.solution["uniquename"])
                if added.success:
                    tables_in_solution += 1
                else:
                    errors.append(f"Add '{table['name']}' to solution: {added.error}")

        outcome = {
            "environments": {"created": len(resources.environments), "attempted": len(prd.technical.environments)},
            "publisher": "created" if resources.publisher else "failed",
            "solution": "created" if resources.solution else "failed",
            "tables": {"created": len(resources.data_model), "attempted": len(prd.technical.data_model)},
            "relationships": len(resources.relationships),
            "tablesInSolution": tables_in_solution,
            "errors": errors,
        }
        if not resources.environments and resources.publisher is None and not resources.data_model:
            raise PhaseFailed("No platform resources could be created", outcome)
        return outcome

    # =========================================================================
    # Completion
    # =========================================================================

    async def _complete_technical_stories(self, wbs: WorkBreakdownStructure, state: ExecutionState) -> dict[str, Any]:
        """Close every auto-complete technical story whose condition is met."""
        created = {}
        if state.azure_dev_ops_project is not None:
            created = {item.key: item for item in state.azure_dev_ops_project.technical_stories}

        closed: list[dict[str, Any]] = []
        still_open: list[dict[str, Any]] = []

        def leave_open(story, reason: str) -> None:
            still_open.append({"key": story.key, "title": story.title, "reason": reason})

        for story in wbs.technical_stories:
            condition = story.auto_complete_condition
            if not story.auto_complete or not condition:
                leave_open(story, "not auto-completable")
                continue
            if not state.progress.get(condition):
                leave_open(story, f"condition not met: {condition}")
                continue
            work_item = created.get(story.key)
            if work_item is None:
                leave_open(story, "work item was not created")
                continue
            try:
                validate_story_transition(story.status, StoryStatus.CLOSED)
            except StoryStateTransitionError as e:
                leave_open(story, str(e))
                continue

            closed_at = utc_now()
            updated = await self.collaborators.work_tracking.update_work_item(work_item.work_item_id, {
                "System.State": StoryStatus.CLOSED.value,
                "System.Reason": "Completed",
                "Microsoft.VSTS.Common.ClosedDate": closed_at.isoformat(),
                "System.History": f"Automatically completed - infrastructure condition met: {condition}",
            })
            if not updated.success:
                leave_open(story, f"update failed: {updated.error}")
                continue

            story.status = StoryStatus.CLOSED
            closed.append({
                "key": story.key,
                "workItemId": work_item.work_item_id,
                "title": story.title,
                "condition": condition,
                "completedAt": closed_at.isoformat(),
            })

        return {
            "closed": len(closed),
            "open": len(still_open),
            "closedStories": closed,
            "openStories": still_open,
            "summary": f"{len(closed)} technical stories auto-completed",
        }

    # =========================================================================
    # Summary
    # =========================================================================

    @staticmethod
    def _summary(state: ExecutionState) -> dict[str, Any]:
        tracking = state.azure_dev_ops_project
        platform = state.power_platform_resources
        return {
            "project": {
                "name": state.prd.product.name if state.prd else "",
                "description": state.prd.product.description if state.prd else "",
            },
            "infrastructure": {
                "appRegistration": state.app_registration is not None,
                "environments": len(platform.environments) if platform else 0,
                "publisher": bool(platform and platform.publisher),
                "solution": bool(platform and platform.solution),
                "tables": len(platform.data_model) if platform else 0,
            },
            "projectManagement": {
                "epics": len(tracking.epics) if tracking else 0,
                "features": len(tracking.features) if tracking else 0,
                "userStories": len(tracking.user_stories) if tracking else 0,
                "technicalStories": len(tracking.technical_stories) if tracking else 0,
                "sprints": len(tracking.sprints) if tracking else 0,
            },
            "progress": dict(state.progress),
        }
