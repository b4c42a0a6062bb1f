"""Work breakdown generation.

Turns a validated PRD into epics, features, user stories, synthetic
technical stories and a sprint allocation. Everything here is a pure
function of its input; the only external value is the sprint start date,
which callers may pass explicitly.
"""
import logging
import math
import re
from datetime import date, timedelta
from typing import Optional, Union

from .models import EpicCategory, Priority
from .progress import (
    APP_REGISTRATION_CREATED,
    PUBLISHER_CREATED,
    SOLUTION_CREATED,
    environment_key,
    entity_key,
)
from .schemas import (
    PRD,
    Feature,
    Epic,
    WbsFeature,
    UserStory,
    TechnicalStory,
    Sprint,
    DataModelEntity,
    WorkBreakdownStructure,
)

logger = logging.getLogger("ppo-core.work_breakdown")

STORY_TITLE_PATTERN = re.compile(r"As a .+ I want to (.+?) so that", re.IGNORECASE)
STORY_TITLE_FALLBACK_LENGTH = 50
LONG_DESCRIPTION_THRESHOLD = 200

# Keyword groups checked in order; first match wins
EPIC_KEYWORDS: list[tuple[EpicCategory, tuple[str, ...]]] = [
    (EpicCategory.USER_MANAGEMENT, ("user", "auth", "profile")),
    (EpicCategory.DATA_ANALYTICS, ("data", "report", "analytics")),
    (EpicCategory.ADMINISTRATION, ("admin", "config", "setting")),
]

STORY_POINT_KEYWORDS: list[tuple[int, tuple[str, ...]]] = [
    (3, ("create", "add")),
    (2, ("update", "edit")),
    (1, ("view", "list")),
]
DEFAULT_STORY_POINTS = 2

PRIORITY_ORDER = {Priority.HIGH: 0, Priority.MEDIUM: 1, Priority.LOW: 2}


# =============================================================================
# Heuristics
# =============================================================================

def classify_epic(feature_name: str) -> EpicCategory:
    """Assign a feature to an epic category by keywords in its name."""
    name = feature_name.lower()
    for category, keywords in EPIC_KEYWORDS:
        if any(keyword in name for keyword in keywords):
            return category
    return EpicCategory.CORE_FEATURES


def epic_name_for(feature: Feature) -> str:
    if feature.epic:
        return feature.epic
    return classify_epic(feature.name).value


def estimate_feature_points(feature: Feature) -> int:
    base_points = len(feature.user_stories) * 2
    multiplier = 1.5 if len(feature.description) > LONG_DESCRIPTION_THRESHOLD else 1
    # Round half up
    return int(math.floor(base_points * multiplier + 0.5))


def estimate_story_points(story: str) -> int:
    text = story.lower()
    for points, keywords in STORY_POINT_KEYWORDS:
        if any(keyword in text for keyword in keywords):
            return points
    return DEFAULT_STORY_POINTS


def extract_story_title(story: str) -> str:
    """Pull "X" out of "As a ... I want to X so that ...", else truncate."""
    match = STORY_TITLE_PATTERN.search(story)
    if match:
        return match.group(1).strip()
    if len(story) > STORY_TITLE_FALLBACK_LENGTH:
        return story[:STORY_TITLE_FALLBACK_LENGTH] + "..."
    return story


# =============================================================================
# Generators
# =============================================================================

def generate_epics(features: list[Feature]) -> list[Epic]:
    """Group features into epics, in order of first appearance."""
    epics: dict[str, Epic] = {}
    for feature in features:
        name = epic_name_for(feature)
        if name not in epics:
            epics[name] = Epic(
                name=name,
                description=f"Epic containing {name.lower()} related features",
            )
        epics[name].feature_names.append(feature.name)
    return list(epics.values())


def generate_features(features: list[Feature]) -> list[WbsFeature]:
    return [
        WbsFeature(
            name=feature.name,
            description=feature.description,
            epic_name=epic_name_for(feature),
            priority=feature.priority,
            user_story_count=len(feature.user_stories),
            estimated_points=estimate_feature_points(feature),
        )
        for feature in features
    ]


def generate_user_stories(features: list[Feature]) -> list[UserStory]:
    stories = []
    for feature in features:
        for story in feature.user_stories:
            stories.append(UserStory(
                key=f"US-{len(stories) + 1:03d}",
                title=extract_story_title(story),
                description=story,
                feature_name=feature.name,
                priority=feature.priority,
                story_points=estimate_story_points(story),
                acceptance_criteria=list(feature.acceptance_criteria),
            ))
    return stories


def generate_technical_stories(
    environments: list[str],
    data_model: list[DataModelEntity],
) -> list[TechnicalStory]:
    """One story per environment and entity, plus the three fixed infrastructure stories.

    Each story's condition is the progress key the provisioning phases set,
    built with the same helpers those phases use.
    """
    specs: list[tuple[str, str, int, str]] = []
    for env in environments:
        specs.append((
            f"Set up {env[:1].upper() + env[1:]} Environment",
            f"Create and configure the {env} environment in Power Platform",
            3,
            environment_key(env),
        ))
    for entity in data_model:
        specs.append((
            f"Create {entity.name} Data Model",
            f"Create {entity.name} table with relationships and fields",
            2,
            entity_key(entity.name),
        ))
    specs.extend([
        ("Set up App Registration", "Create Azure AD app registration with required permissions", 2, APP_REGISTRATION_CREATED),
        ("Configure Solution Publisher", "Create custom solution publisher for the project", 1, PUBLISHER_CREATED),
        ("Create Project Solution", "Create Power Platform solution container", 1, SOLUTION_CREATED),
    ])

    return [
        TechnicalStory(
            key=f"TS-{index:03d}",
            title=title,
            description=description,
            priority=Priority.HIGH,
            story_points=points,
            auto_complete=True,
            auto_complete_condition=condition,
        )
        for index, (title, description, points, condition) in enumerate(specs, start=1)
    ]


def allocate_sprints(
    user_stories: list[UserStory],
    technical_stories: list[TechnicalStory],
    sprint_count: int,
    sprint_duration_weeks: int,
    start_date: Optional[date] = None,
) -> list[Sprint]:
    """Distribute stories over ``sprint_count`` sprints of equal capacity.

    Technical stories always come first, then user stories by priority
    (stable, so PRD order is kept within a priority). Each sprint takes
    ``ceil(total / sprint_count)`` stories; trailing sprints may be empty.
    """
    start = start_date or date.today()
    ordered: list[Union[TechnicalStory, UserStory]] = [
        *technical_stories,
        *sorted(user_stories, key=lambda s: PRIORITY_ORDER.get(s.priority, 1)),
    ]
    per_sprint = math.ceil(len(ordered) / sprint_count) if ordered else 0
    days = sprint_duration_weeks * 7

    sprints = []
    for index in range(sprint_count):
        chunk = ordered[index * per_sprint:(index + 1) * per_sprint]
        sprints.append(Sprint(
            number=index + 1,
            name=f"Sprint {index + 1}",
            duration_weeks=sprint_duration_weeks,
            story_refs=[story.key for story in chunk],
            total_points=sum(story.story_points for story in chunk),
            start_date=start + timedelta(days=index * days),
            end_date=start + timedelta(days=(index + 1) * days - 1),
        ))
    return sprints


def generate_work_breakdown(prd: PRD, start_date: Optional[date] = None) -> WorkBreakdownStructure:
    """Derive the full work breakdown structure from a validated PRD."""
    user_stories = generate_user_stories(prd.features)
    technical_stories = generate_technical_stories(prd.technical.environments, prd.technical.data_model)
    wbs = WorkBreakdownStructure(
        epics=generate_epics(prd.features),
        features=generate_features(prd.features),
        user_stories=user_stories,
        technical_stories=technical_stories,
        sprints=allocate_sprints(
            user_stories,
            technical_stories,
            prd.project.sprint_count,
            prd.project.sprint_duration_weeks,
            start_date,
        ),
    )
    logger.debug(
        f"Generated WBS: {len(wbs.epics)} epics, {len(wbs.features)} features, "
        f"{len(user_stories)} user stories, {len(technical_stories)} technical stories, "
        f"{len(wbs.sprints)} sprints"
    )
    return wbs
