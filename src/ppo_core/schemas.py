"""Pydantic schemas for the PRD, work breakdown, execution record and API payloads.

Attributes are snake_case in Python; the wire format is camelCase
(``userStories``, ``autoCompleteCondition``, ``operationId``) through the
alias generator on ``CamelModel``. Both spellings are accepted on input.
"""
from datetime import date, datetime, timezone
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .models import (
    Priority,
    StoryStatus,
    RunState,
    PhaseName,
    PhaseStatus,
    PrdSource,
)


WorkItemId = Union[int, str]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CamelModel(BaseModel):
    """Base model serialised with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FrozenCamelModel(CamelModel):
    """CamelModel that rejects assignment after construction."""

    model_config = ConfigDict(frozen=True)


# PRD Schemas (immutable once normalised)

class Product(FrozenCamelModel):
    """Product section of a PRD."""

    name: str = ""
    description: str = ""
    owner: str = ""
    version: str = "1.0.0"


class Feature(FrozenCamelModel):
    """One business feature with its user stories."""

    name: str = ""
    description: str = ""
    priority: Priority = Priority.MEDIUM
    user_stories: list[str] = Field(default_factory=list)
    acceptance_criteria: list[str] = Field(default_factory=list)
    epic: Optional[str] = None


class DataModelEntity(FrozenCamelModel):
    """A table the low-code platform should get.

    ``lookups`` names parent entities; each becomes a one-to-many
    relationship from that parent to this entity.
    """

    name: str
    description: str = ""
    fields: list[str] = Field(default_factory=list)
    lookups: list[str] = Field(default_factory=list)


class TechnicalSpec(FrozenCamelModel):
    """Technical section of a PRD."""

    environments: list[str] = Field(default_factory=lambda: ["dev", "test", "prod"])
    data_model: list[DataModelEntity] = Field(default_factory=list)
    integrations: list[str] = Field(default_factory=list)
    security: dict[str, Any] = Field(default_factory=dict)


class ProjectPlan(FrozenCamelModel):
    """Timeline section of a PRD."""

    duration_weeks: int = 12
    sprint_count: int = 6
    sprint_duration_weeks: int = 2
    methodology: str = "Agile"


class PRD(FrozenCamelModel):
    """Canonical Project Requirements Document.

    Fields are deliberately permissive so that an incomplete document can
    still be represented; ``prd_parser.validate_prd`` enforces the invariants.
    """

    product: Product = Field(default_factory=Product)
    features: list[Feature] = Field(default_factory=list)
    technical: TechnicalSpec = Field(default_factory=TechnicalSpec)
    project: ProjectPlan = Field(default_factory=ProjectPlan)


class ValidationResult(CamelModel):
    """Outcome of PRD validation. All violations are reported together."""

    valid: bool
    errors: list[str] = Field(default_factory=list)


# Work Breakdown Schemas

class Epic(CamelModel):
    name: str
    description: str
    feature_names: list[str] = Field(default_factory=list)


class WbsFeature(CamelModel):
    name: str
    description: str = ""
    epic_name: str
    priority: Priority
    user_story_count: int
    estimated_points: int


class UserStory(CamelModel):
    key: str
    title: str
    description: str
    feature_name: str
    priority: Priority
    story_points: int
    acceptance_criteria: list[str] = Field(default_factory=list)
    status: StoryStatus = StoryStatus.NEW


class TechnicalStory(CamelModel):
    """Synthetic infrastructure story, closed automatically once its condition is met."""

    key: str
    title: str
    description: str
    priority: Priority = Priority.HIGH
    story_points: int
    auto_complete: bool = True
    auto_complete_condition: Optional[str] = None
    status: StoryStatus = StoryStatus.NEW


class Sprint(CamelModel):
    number: int
    name: str
    duration_weeks: int
    story_refs: list[str] = Field(default_factory=list, description="Keys of the stories allocated to this sprint")
    total_points: int = 0
    start_date: date
    end_date: date


class WorkBreakdownStructure(CamelModel):
    """Epic/feature/story/sprint decomposition derived from a PRD."""

    epics: list[Epic] = Field(default_factory=list)
    features: list[WbsFeature] = Field(default_factory=list)
    user_stories: list[UserStory] = Field(default_factory=list)
    technical_stories: list[TechnicalStory] = Field(default_factory=list)
    sprints: list[Sprint] = Field(default_factory=list)

    @property
    def story_count(self) -> int:
        return len(self.user_stories) + len(self.technical_stories)


# Schema Registry Schemas

class TableDefinition(CamelModel):
    """Platform identifiers derived from a table's display name."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    display_name: str
    logical_name: str
    schema_name: str
    publisher_prefix: str

    @property
    def entity_set_name(self) -> str:
        return f"{self.logical_name}s"


class RelationshipDefinition(CamelModel):
    """One-to-many relationship and the lookup used to bind child records."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    parent_table: TableDefinition
    child_table: TableDefinition
    schema_name: str
    lookup_schema_name: str
    lookup_logical_name: str
    lookup_display_name: str
    navigation_property: str


# Execution Record Schemas

class AppRegistration(CamelModel):
    client_id: str
    object_id: str
    display_name: str = ""


class CreatedWorkItem(CamelModel):
    """A WBS item and the work item created for it.

    ``parent_id`` is None when the item is top-level or its parent could
    not be created (orphaned).
    """

    key: str
    title: str
    work_item_id: WorkItemId
    parent_id: Optional[WorkItemId] = None


class CreatedIteration(CamelModel):
    name: str
    iteration_id: WorkItemId
    start_date: date
    end_date: date


class WorkTrackingProject(CamelModel):
    project: dict[str, Any] = Field(default_factory=dict)
    epics: list[CreatedWorkItem] = Field(default_factory=list)
    features: list[CreatedWorkItem] = Field(default_factory=list)
    user_stories: list[CreatedWorkItem] = Field(default_factory=list)
    technical_stories: list[CreatedWorkItem] = Field(default_factory=list)
    sprints: list[CreatedIteration] = Field(default_factory=list)


class PlatformResources(CamelModel):
    environments: list[dict[str, Any]] = Field(default_factory=list)
    publisher: Optional[dict[str, Any]] = None
    solution: Optional[dict[str, Any]] = None
    data_model: list[dict[str, Any]] = Field(default_factory=list)
    relationships: list[str] = Field(default_factory=list)


class ExecutionState(CamelModel):
    """Per-run accumulator threaded through every phase."""

    prd: Optional[PRD] = None
    work_breakdown: Optional[WorkBreakdownStructure] = None
    app_registration: Optional[AppRegistration] = None
    azure_dev_ops_project: Optional[WorkTrackingProject] = None
    power_platform_resources: Optional[PlatformResources] = None
    progress: dict[str, bool] = Field(default_factory=dict)


class PhaseLogEntry(CamelModel):
    name: PhaseName
    status: PhaseStatus
    result: dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None
    timestamp: datetime = Field(default_factory=utc_now)


class RunResult(CamelModel):
    """Execution record returned for one orchestration run."""

    execution_id: str
    project_name: str
    status: RunState = RunState.PENDING
    phases: list[PhaseLogEntry] = Field(default_factory=list)
    start_time: datetime = Field(default_factory=utc_now)
    end_time: Optional[datetime] = None
    error: Optional[str] = None
    summary: Optional[dict[str, Any]] = None
    cancel_requested: bool = False
    dry_run: bool = False
    execution_state: ExecutionState = Field(default_factory=ExecutionState)


# Tool / API Schemas

class OrchestrationOptions(CamelModel):
    """Execution options accepted by create_project."""

    dry_run: bool = Field(False, description="Run against simulated clients; no external resources are created")
    skip_app_registration: bool = False
    skip_azure_dev_ops: bool = False
    skip_power_platform: bool = False
    enable_parallel_execution: Optional[bool] = Field(None, description="Override the server default")


class PrdSourceConfig(CamelModel):
    """Where to obtain the PRD for a run."""

    source: PrdSource = PrdSource.MANUAL
    content: Optional[Union[str, dict[str, Any]]] = None
    file_path: Optional[str] = None
    template_name: Optional[str] = None
    answers: dict[str, Any] = Field(default_factory=dict)
    conversation_id: Optional[str] = None
    gist_url: Optional[str] = None


class CreateProjectRequest(CamelModel):
    project_name: str = Field(..., min_length=1, max_length=200)
    template_name: str = Field("standard-project", min_length=1)
    description: Optional[str] = None
    customization: dict[str, Any] = Field(default_factory=dict)
    prd: Optional[PrdSourceConfig] = Field(None, description="Explicit PRD; generated from the template when omitted")
    options: OrchestrationOptions = Field(default_factory=OrchestrationOptions)


class CreateProjectResponse(CamelModel):
    operation_id: str
    status: RunState
    message: str


class OperationProgress(CamelModel):
    total_steps: int
    completed_steps: int
    current_step: Optional[str] = None


class OperationStatusResponse(CamelModel):
    operation_id: str
    status: RunState
    cancel_requested: bool = False
    progress: OperationProgress
    result: RunResult


class ValidatePrdRequest(CamelModel):
    prd: Union[str, dict[str, Any]]
    template_name: Optional[str] = None


class TemplateParameter(CamelModel):
    name: str
    display_name: str
    description: str = ""
    type: str = "string"
    required: bool = False
    default_value: Optional[Any] = None
    allowed_values: Optional[list[Any]] = None


class TemplateSummary(CamelModel):
    name: str
    display_name: str
    description: str
    version: str
    category: str
    tags: list[str] = Field(default_factory=list)
    parameters: list[TemplateParameter] = Field(default_factory=list)


class TemplateDetails(TemplateSummary):
    estimated_duration: str = ""
    complexity: str = ""
    phases: list[str] = Field(default_factory=list)
    requirements: dict[str, Any] = Field(default_factory=dict)
    prd: dict[str, Any] = Field(default_factory=dict, description="PRD skeleton with {{placeholders}}")


class TemplateListResponse(CamelModel):
    templates: list[TemplateSummary]
    total_count: int
