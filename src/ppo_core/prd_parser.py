"""PRD parsing, normalisation and validation.

Raw PRD content may arrive as JSON, YAML or a lightweight markdown outline.
Parsers are tried in that order; each returns ``Parsed`` or ``Failed`` and
the first ``Parsed`` wins. Whatever the format, the result is normalised
onto the canonical ``PRD`` schema, mapping alternate field names and
filling defaults.
"""
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional, Union

import yaml

from .models import Priority
from .progress import entity_key, environment_key
from .schemas import (
    PRD,
    Product,
    Feature,
    DataModelEntity,
    TechnicalSpec,
    ProjectPlan,
    ValidationResult,
)

logger = logging.getLogger("ppo-core.prd_parser")

DEFAULT_ENVIRONMENTS = ["dev", "test", "prod"]
DEFAULT_SPRINT_COUNT = 6
DEFAULT_SPRINT_DURATION_WEEKS = 2
DEFAULT_METHODOLOGY = "Agile"
MAX_SPRINT_COUNT = 52

# Top-level keys that identify a mapping as a PRD rather than arbitrary YAML
PRD_SECTION_KEYS = {"product", "features", "technical", "project", "name", "title", "projectName"}

# Case-sensitive: "saved as a PDF" is an acceptance criterion, not a story
USER_STORY_PATTERN = re.compile(r"\bAs an? ")
FEATURE_LABEL_PATTERN = re.compile(r"^feature\s*[:\-]\s*", re.IGNORECASE)
PRIORITY_LINE_PATTERN = re.compile(r"^priority\s*:\s*(\w+)", re.IGNORECASE)


class PrdParseError(Exception):
    """Raised when no parser could make sense of the PRD content."""

    def __init__(self, attempts: list["Failed"]):
        reasons = "; ".join(f"{a.format}: {a.reason}" for a in attempts)
        super().__init__(f"Could not parse PRD content ({reasons})")
        self.attempts = attempts


@dataclass(frozen=True)
class Parsed:
    format: str
    data: dict


@dataclass(frozen=True)
class Failed:
    format: str
    reason: str


ParseOutcome = Union[Parsed, Failed]


# =============================================================================
# Parser attempts
# =============================================================================

def _as_prd_mapping(fmt: str, value: Any) -> ParseOutcome:
    if not isinstance(value, dict):
        return Failed(fmt, f"expected a mapping, got {type(value).__name__}")
    if not PRD_SECTION_KEYS.intersection(value.keys()):
        return Failed(fmt, "mapping has none of the PRD sections")
    return Parsed(fmt, value)


def parse_json(raw: str) -> ParseOutcome:
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as e:
        return Failed("json", str(e))
    return _as_prd_mapping("json", value)


def parse_yaml(raw: str) -> ParseOutcome:
    try:
        value = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        return Failed("yaml", str(e).splitlines()[0])
    return _as_prd_mapping("yaml", value)


def parse_markdown(raw: str) -> ParseOutcome:
    """Parse a markdown outline.

    - ``# Title`` is the product name
    - ``## ...`` headings containing "feature" open a feature
    - list items under a feature are user stories when they read "As a ...",
      otherwise acceptance criteria
    - ``## Overview``/``## Description`` paragraphs describe the product,
      ``## Environments`` and ``## Data Model`` lists fill the technical section
    """
    prd: dict[str, Any] = {"product": {}, "features": [], "technical": {}}
    section: Optional[str] = None
    feature: Optional[dict] = None
    description_lines: list[str] = []

    for line in raw.splitlines():
        stripped = line.strip()
        if line.startswith("# "):
            if "name" not in prd["product"]:
                prd["product"]["name"] = line[2:].strip()
            section, feature = None, None
        elif line.startswith("## "):
            heading = line[3:].strip()
            section = heading.lower()
            feature = None
            if "feature" in section:
                name = FEATURE_LABEL_PATTERN.sub("", heading).strip() or heading
                feature = {"name": name, "description": "", "userStories": [], "acceptanceCriteria": []}
                prd["features"].append(feature)
        elif stripped.startswith(("- ", "* ")):
            item = stripped[2:].strip()
            if feature is not None:
                if USER_STORY_PATTERN.search(item):
                    feature["userStories"].append(item)
                else:
                    feature["acceptanceCriteria"].append(item)
            elif section and "environment" in section:
                prd["technical"].setdefault("environments", []).append(item)
            elif section and ("data model" in section or "entities" in section):
                prd["technical"].setdefault("dataModel", []).append(item)
        elif stripped and not stripped.startswith("#"):
            if feature is not None:
                priority = PRIORITY_LINE_PATTERN.match(stripped)
                if priority:
                    feature["priority"] = priority.group(1)
                else:
                    feature["description"] = f"{feature['description']} {stripped}".strip()
            elif section in ("overview", "description", "summary"):
                description_lines.append(stripped)

    if description_lines:
        prd["product"]["description"] = " ".join(description_lines)

    if not prd["product"].get("name") and not prd["features"]:
        return Failed("markdown", "no product heading or feature sections found")
    return Parsed("markdown", prd)


PARSERS: list[Callable[[str], ParseOutcome]] = [parse_json, parse_yaml, parse_markdown]


def parse_raw(raw: str) -> Parsed:
    """Run the parser attempts in order and return the first success.

    Raises:
        PrdParseError: If every attempt failed
    """
    attempts: list[Failed] = []
    for parser in PARSERS:
        outcome = parser(raw)
        if isinstance(outcome, Parsed):
            logger.debug(f"PRD parsed as {outcome.format}")
            return outcome
        attempts.append(outcome)
    logger.warning(f"PRD parsing failed after {len(attempts)} attempts")
    raise PrdParseError(attempts)


def parse_prd(raw: Union[str, Mapping[str, Any]]) -> PRD:
    """Parse raw PRD content (or an already-parsed mapping) into the canonical model."""
    if isinstance(raw, Mapping):
        return normalize_prd(raw)
    if not isinstance(raw, str) or not raw.strip():
        raise PrdParseError([Failed("input", "PRD content is empty")])
    return normalize_prd(parse_raw(raw).data)


# =============================================================================
# Normalisation
# =============================================================================

def _first(mapping: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        value = mapping.get(key)
        if value is not None:
            return value
    return default


def _as_mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def _as_list(value: Any) -> list:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def _as_int(value: Any, default: int) -> int:
    """Coerce ints and strings such as "12 weeks"; anything else yields the default."""
    if isinstance(value, bool) or value is None:
        return default
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str):
        match = re.search(r"-?\d+", value)
        if match:
            return int(match.group(0))
    return default


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, Mapping):
        return str(_first(value, "story", "description", "title", "name", default="")).strip()
    return str(value).strip()


def normalize_priority(value: Any) -> Priority:
    """Map "high"/"HIGH"/1 and friends onto ``Priority``; unknown values are Medium."""
    if isinstance(value, Priority):
        return value
    if isinstance(value, int) and not isinstance(value, bool):
        return {1: Priority.HIGH, 2: Priority.MEDIUM}.get(value, Priority.LOW if value > 2 else Priority.MEDIUM)
    if isinstance(value, str):
        for priority in Priority:
            if priority.value.lower() == value.strip().lower():
                return priority
        if value.strip().lower() in ("critical", "urgent"):
            return Priority.HIGH
    return Priority.MEDIUM


def _dedupe(names: list[str], key_for: Callable[[str], str]) -> list[str]:
    """Drop names whose progress key is already taken, keeping the first spelling."""
    seen: set[str] = set()
    result = []
    for name in names:
        key = key_for(name)
        if name and key not in seen:
            seen.add(key)
            result.append(name)
    return result


def _normalize_feature(raw: Any) -> Feature:
    if not isinstance(raw, Mapping):
        return Feature(name=_as_text(raw))
    stories = _first(raw, "userStories", "user_stories", "stories", default=[])
    acceptance = _first(raw, "acceptanceCriteria", "acceptance_criteria", "acceptance", default=[])
    epic = _first(raw, "epic")
    return Feature(
        name=_as_text(_first(raw, "name", "title", default="")),
        description=_as_text(_first(raw, "description", "summary", default="")),
        priority=normalize_priority(raw.get("priority")),
        user_stories=[s for s in (_as_text(item) for item in _as_list(stories)) if s],
        acceptance_criteria=[c for c in (_as_text(item) for item in _as_list(acceptance)) if c],
        epic=_as_text(epic) or None,
    )


def _normalize_entity(raw: Any) -> Optional[DataModelEntity]:
    if not isinstance(raw, Mapping):
        name = _as_text(raw)
        return DataModelEntity(name=name) if name else None
    name = _as_text(_first(raw, "name", "displayName", "title", default=""))
    if not name:
        return None
    lookups = _first(raw, "lookups", "relationships", "parents", default=[])
    return DataModelEntity(
        name=name,
        description=_as_text(raw.get("description")),
        fields=[f for f in (_as_text(item) for item in _as_list(raw.get("fields"))) if f],
        lookups=[
            p for p in (
                _as_text(_first(item, "parent", "table", "name")) if isinstance(item, Mapping) else _as_text(item)
                for item in _as_list(lookups)
            ) if p
        ],
    )


def normalize_prd(data: Mapping[str, Any]) -> PRD:
    """Map a parsed document with permissive field names onto ``PRD``."""
    product_raw = _as_mapping(data.get("product"))
    technical_raw = _as_mapping(data.get("technical"))
    project_raw = _as_mapping(data.get("project"))

    product = Product(
        name=_as_text(_first(product_raw, "name", "title") or _first(data, "name", "title", "projectName")),
        description=_as_text(_first(product_raw, "description") or data.get("description")),
        owner=_as_text(_first(product_raw, "owner") or data.get("owner")),
        version=_as_text(_first(product_raw, "version", default="1.0.0")) or "1.0.0",
    )

    environments_raw = _first(technical_raw, "environments", default=None)
    if environments_raw is None:
        environments = list(DEFAULT_ENVIRONMENTS)
    else:
        environments = _dedupe([
            _as_text(_first(env, "shortName", "name")) if isinstance(env, Mapping) else _as_text(env)
            for env in _as_list(environments_raw)
        ], environment_key)

    # "Order Line" and "order_line" would share a progress key
    entities: list[DataModelEntity] = []
    seen_entities: set[str] = set()
    for raw_entity in _as_list(_first(technical_raw, "dataModel", "data_model", "entities", default=[])):
        entity = _normalize_entity(raw_entity)
        if entity and entity_key(entity.name) not in seen_entities:
            seen_entities.add(entity_key(entity.name))
            entities.append(entity)

    technical = TechnicalSpec(
        environments=environments,
        data_model=entities,
        integrations=[i for i in (_as_text(item) for item in _as_list(technical_raw.get("integrations"))) if i],
        security=dict(_as_mapping(technical_raw.get("security"))),
    )

    sprints_raw = _first(project_raw, "sprintCount", "sprint_count", "sprints")
    if isinstance(sprints_raw, list):
        sprints_raw = len(sprints_raw)
    sprint_count = _as_int(sprints_raw, DEFAULT_SPRINT_COUNT)
    sprint_weeks = _as_int(
        _first(project_raw, "sprintDurationWeeks", "sprint_duration_weeks", "sprintDuration"),
        DEFAULT_SPRINT_DURATION_WEEKS,
    )
    project = ProjectPlan(
        sprint_count=sprint_count,
        sprint_duration_weeks=sprint_weeks,
        duration_weeks=_as_int(
            _first(project_raw, "durationWeeks", "duration_weeks", "duration"),
            sprint_count * sprint_weeks,
        ),
        methodology=_as_text(project_raw.get("methodology")) or DEFAULT_METHODOLOGY,
    )

    return PRD(
        product=product,
        features=[_normalize_feature(f) for f in _as_list(data.get("features"))],
        technical=technical,
        project=project,
    )


# =============================================================================
# Validation
# =============================================================================

def validate_prd(prd: PRD) -> ValidationResult:
    """Check the PRD invariants and report every violation found."""
    errors: list[str] = []

    if not prd.product.name.strip():
        errors.append("projectName: product name is required")

    if not prd.features:
        errors.append("features: at least one feature is required")

    for index, feature in enumerate(prd.features):
        label = f"Feature {index + 1}" + (f" ({feature.name})" if feature.name else "")
        if not feature.name.strip():
            errors.append(f"features[{index}].name: {label} must have a name")
        if not feature.user_stories:
            errors.append(f"features[{index}].userStories: {label} must have at least one user story")

    if prd.project.sprint_count < 1:
        errors.append("project.sprintCount: must be at least 1")
    elif prd.project.sprint_count > MAX_SPRINT_COUNT:
        errors.append(f"project.sprintCount: must be at most {MAX_SPRINT_COUNT}")
    if prd.project.sprint_duration_weeks < 1:
        errors.append("project.sprintDurationWeeks: must be at least 1")

    if errors:
        logger.info(f"PRD validation failed with {len(errors)} error(s)")
    return ValidationResult(valid=not errors, errors=errors)


def validate_prd_content(raw: Union[str, Mapping[str, Any]]) -> ValidationResult:
    """Parse and validate in one step; parse failures are reported as validation errors."""
    try:
        prd = parse_prd(raw)
    except PrdParseError as e:
        return ValidationResult(valid=False, errors=[f"prd: {e}"])
    return validate_prd(prd)
