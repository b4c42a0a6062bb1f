"""Enumerations shared across the orchestration engine."""
import enum


class Priority(str, enum.Enum):
    """Business priority of a feature or story."""

    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


class EpicCategory(str, enum.Enum):
    """Epic a feature is grouped under when the PRD does not name one."""

    USER_MANAGEMENT = "User Management"
    DATA_ANALYTICS = "Data & Analytics"
    ADMINISTRATION = "Administration"
    CORE_FEATURES = "Core Features"


class StoryStatus(str, enum.Enum):
    """Work item state as tracked in the work-tracking system."""

    NEW = "New"
    ACTIVE = "Active"
    CLOSED = "Closed"      # Terminal: completed
    REMOVED = "Removed"    # Terminal: abandoned


class RunState(str, enum.Enum):
    """Lifecycle state of one orchestration run.

    Runs move strictly forward through the phases. Any non-terminal state
    may drop to FAILED when a required phase fails.
    """

    PENDING = "pending"
    PRD_PROCESSING = "prd_processing"
    WBS_GENERATION = "wbs_generation"
    FOUNDATION_SETUP = "foundation_setup"
    PARALLEL_INFRA_SETUP = "parallel_infra_setup"
    COMPLETION = "completion"
    COMPLETED = "completed"  # Terminal
    FAILED = "failed"        # Terminal


class PhaseStatus(str, enum.Enum):
    """Outcome recorded in one phase log entry."""

    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class PhaseName(str, enum.Enum):
    """Names used for phase log entries."""

    PRD_PROCESSING = "prd_processing"
    WBS_GENERATION = "wbs_generation"
    FOUNDATION_SETUP = "foundation_setup"
    WORK_TRACKING_SETUP = "work_tracking_setup"
    PLATFORM_SETUP = "platform_setup"
    COMPLETION = "completion"


class PrdSource(str, enum.Enum):
    """Where raw PRD content comes from."""

    MANUAL = "manual"
    FILE = "file"
    TEMPLATE = "template"
    CLAUDE = "claude"
    COPILOT = "copilot"


class ProgressOwner(str, enum.Enum):
    """Phase or branch allowed to write a given progress key."""

    FOUNDATION = "foundation"
    WORK_TRACKING = "work_tracking"
    PLATFORM = "platform"


class WorkItemType(str, enum.Enum):
    """Work item types created in the work-tracking system."""

    EPIC = "Epic"
    FEATURE = "Feature"
    USER_STORY = "User Story"


class EnvironmentType(str, enum.Enum):
    """Low-code platform environment SKU."""

    SANDBOX = "Sandbox"
    PRODUCTION = "Production"
