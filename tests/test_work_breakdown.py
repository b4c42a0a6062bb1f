"""Tests for work breakdown generation."""
from datetime import date

from ppo_core.models import EpicCategory, Priority
from ppo_core.prd_parser import parse_prd
from ppo_core.schemas import DataModelEntity, Feature, UserStory
from ppo_core.work_breakdown import (
    allocate_sprints,
    classify_epic,
    epic_name_for,
    estimate_feature_points,
    estimate_story_points,
    extract_story_title,
    generate_epics,
    generate_technical_stories,
    generate_user_stories,
    generate_work_breakdown,
)


START = date(2026, 1, 5)


def _story(key: str, priority: Priority, points: int = 2) -> UserStory:
    return UserStory(
        key=key,
        title=key,
        description=key,
        feature_name="F",
        priority=priority,
        story_points=points,
    )


class TestHeuristics:
    """Test the classification and estimation heuristics."""

    def test_classify_epic(self):
        assert classify_epic("User Login") == EpicCategory.USER_MANAGEMENT
        assert classify_epic("OAuth setup") == EpicCategory.USER_MANAGEMENT
        assert classify_epic("Sales Reports") == EpicCategory.DATA_ANALYTICS
        assert classify_epic("Admin Console") == EpicCategory.ADMINISTRATION
        assert classify_epic("Checkout") == EpicCategory.CORE_FEATURES

    def test_first_keyword_group_wins(self):
        """'User data' matches both user and data; user management is checked first."""
        assert classify_epic("User data export") == EpicCategory.USER_MANAGEMENT

    def test_explicit_epic_overrides_classification(self):
        assert epic_name_for(Feature(name="User Login", epic="Identity")) == "Identity"
        assert epic_name_for(Feature(name="User Login")) == "User Management"

    def test_feature_points(self):
        feature = Feature(name="A", user_stories=["s1", "s2", "s3"])
        assert estimate_feature_points(feature) == 6

    def test_feature_points_long_description(self):
        """1 story with a long description: 2 * 1.5 = 3."""
        feature = Feature(name="A", description="x" * 201, user_stories=["s1"])
        assert estimate_feature_points(feature) == 3

    def test_feature_points_rounds_half_up(self):
        """3 stories * 2 * 1.5 = 9; 1 story stays at 3; odd totals round up."""
        feature = Feature(name="A", description="x" * 201, user_stories=["s1", "s2", "s3"])
        assert estimate_feature_points(feature) == 9

    def test_story_points(self):
        assert estimate_story_points("As a clerk I want to create orders") == 3
        assert estimate_story_points("As a clerk I want to add notes") == 3
        assert estimate_story_points("As a clerk I want to edit orders") == 2
        assert estimate_story_points("As a clerk I want to view orders") == 1
        assert estimate_story_points("As a clerk I want to export") == 2

    def test_extract_story_title(self):
        story = "As a technician I want to close jobs quickly so that customers are billed"
        assert extract_story_title(story) == "close jobs quickly"

    def test_extract_story_title_fallback(self):
        story = "Technicians need a faster way to close jobs in the field app today"
        assert extract_story_title(story) == story[:50] + "..."
        assert extract_story_title("Short story") == "Short story"


class TestGenerators:
    """Test epic, story and technical story generation."""

    def test_epics_keep_first_appearance_order(self):
        epics = generate_epics([
            Feature(name="Reports"),
            Feature(name="User Login"),
            Feature(name="Dashboards data"),
        ])
        assert [e.name for e in epics] == ["Data & Analytics", "User Management"]
        assert epics[0].feature_names == ["Reports", "Dashboards data"]
        assert epics[0].description == "Epic containing data & analytics related features"

    def test_user_story_keys_are_sequential(self):
        stories = generate_user_stories([
            Feature(name="A", priority=Priority.HIGH, user_stories=["s1", "s2"], acceptance_criteria=["ok"]),
            Feature(name="B", user_stories=["s3"]),
        ])
        assert [s.key for s in stories] == ["US-001", "US-002", "US-003"]
        assert stories[0].priority == Priority.HIGH
        assert stories[0].acceptance_criteria == ["ok"]
        assert stories[2].feature_name == "B"

    def test_technical_stories(self):
        stories = generate_technical_stories(
            ["dev", "prod"],
            [DataModelEntity(name="Work Order")],
        )
        assert [s.key for s in stories] == ["TS-001", "TS-002", "TS-003", "TS-004", "TS-005", "TS-006"]
        assert [s.title for s in stories] == [
            "Set up Dev Environment",
            "Set up Prod Environment",
            "Create Work Order Data Model",
            "Set up App Registration",
            "Configure Solution Publisher",
            "Create Project Solution",
        ]
        assert [s.auto_complete_condition for s in stories] == [
            "environment_dev_created",
            "environment_prod_created",
            "entity_work_order_created",
            "app_registration_created",
            "publisher_created",
            "solution_created",
        ]
        assert [s.story_points for s in stories] == [3, 3, 2, 2, 1, 1]
        assert all(s.priority == Priority.HIGH and s.auto_complete for s in stories)


class TestSprintAllocation:
    """Test sprint allocation."""

    def test_technical_stories_first_then_priority(self):
        """Technical stories always lead, ahead of High priority user stories.

        This is the intended allocation policy: infrastructure lands in the
        first sprints regardless of feature priority.
        """
        technical = generate_technical_stories([], [])
        stories = [
            _story("US-001", Priority.LOW),
            _story("US-002", Priority.HIGH),
            _story("US-003", Priority.MEDIUM),
            _story("US-004", Priority.HIGH),
        ]
        sprints = allocate_sprints(stories, technical, 7, 2, START)
        refs = [ref for sprint in sprints for ref in sprint.story_refs]
        assert refs == ["TS-001", "TS-002", "TS-003", "US-002", "US-004", "US-003", "US-001"]

    def test_ceil_chunking_leaves_trailing_sprints_empty(self):
        stories = [_story(f"US-{i:03d}", Priority.MEDIUM, points=i) for i in range(1, 6)]
        sprints = allocate_sprints(stories, [], 4, 2, START)
        assert [len(s.story_refs) for s in sprints] == [2, 2, 1, 0]
        assert [s.total_points for s in sprints] == [3, 7, 5, 0]

    def test_sprint_dates(self):
        sprints = allocate_sprints([], [], 3, 2, START)
        assert [s.name for s in sprints] == ["Sprint 1", "Sprint 2", "Sprint 3"]
        assert sprints[0].start_date == date(2026, 1, 5)
        assert sprints[0].end_date == date(2026, 1, 18)
        assert sprints[1].start_date == date(2026, 1, 19)
        assert sprints[2].end_date == date(2026, 2, 15)
        assert all(s.duration_weeks == 2 for s in sprints)

    def test_no_stories(self):
        sprints = allocate_sprints([], [], 2, 1, START)
        assert all(s.story_refs == [] for s in sprints)


class TestWorkBreakdown:
    """Test the full breakdown."""

    def test_every_story_allocated_once(self):
        prd = parse_prd({
            "name": "Shop",
            "features": [
                {"name": "User Login", "userStories": ["As a user I want to create an account so that I can buy"]},
                {"name": "Catalog", "userStories": ["As a user I want to view items so that I can choose", "s2"]},
            ],
            "technical": {"environments": ["dev"], "dataModel": ["Product"]},
            "project": {"sprintCount": 2, "sprintDurationWeeks": 1},
        })
        wbs = generate_work_breakdown(prd, START)

        assert len(wbs.user_stories) == 3
        assert len(wbs.technical_stories) == 5
        assert wbs.story_count == 8
        refs = [ref for sprint in wbs.sprints for ref in sprint.story_refs]
        assert sorted(refs) == sorted([s.key for s in wbs.user_stories + wbs.technical_stories])
        assert wbs.user_stories[0].title == "create an account"
        assert [f.epic_name for f in wbs.features] == ["User Management", "Core Features"]

    def test_camel_case_wire_format(self):
        prd = parse_prd({"name": "Shop", "features": [{"name": "A", "userStories": ["s"]}]})
        dumped = generate_work_breakdown(prd, START).model_dump(by_alias=True)
        assert "userStories" in dumped
        assert "autoCompleteCondition" in dumped["technicalStories"][0]
        assert "storyRefs" in dumped["sprints"][0]

    def test_generation_is_deterministic(self):
        prd = parse_prd({
            "name": "Shop",
            "features": [
                {"name": "User Profile", "userStories": ["As a user I want to edit my profile so that it is current"]},
                {"name": "Sales Reports", "priority": "High", "userStories": ["As a manager I want to view sales so that I can plan"]},
                {"name": "Settings", "priority": "Low", "userStories": ["As an admin I want to add users so that they can work"]},
            ],
            "technical": {"environments": ["dev", "prod"], "dataModel": ["Order"]},
        })
        first = generate_work_breakdown(prd, START)
        second = generate_work_breakdown(prd, START)

        assert first == second
        assert first.model_dump() == second.model_dump()

    def test_three_environments_two_entities(self):
        prd = parse_prd({
            "name": "Shop",
            "features": [{"name": "A", "userStories": ["s"]}],
            "technical": {"environments": ["dev", "test", "prod"], "dataModel": ["Customer", "Order Line"]},
        })
        technical = generate_work_breakdown(prd, START).technical_stories

        conditions = [s.auto_complete_condition for s in technical]
        assert len(technical) == 8
        assert len(set(conditions)) == 8

    def test_demo_login_breakdown(self):
        prd = parse_prd({
            "product": {"name": "Demo"},
            "features": [
                {"name": "Login", "userStories": ["As a user I want to log in so that I can access my account"]},
            ],
            "technical": {"environments": ["dev"]},
        })
        wbs = generate_work_breakdown(prd, START)

        assert [e.name for e in wbs.epics] == ["Core Features"]
        assert [f.name for f in wbs.features] == ["Login"]
        assert [s.title for s in wbs.user_stories] == ["log in"]
        assert [s.auto_complete_condition for s in wbs.technical_stories] == [
            "environment_dev_created",
            "app_registration_created",
            "publisher_created",
            "solution_created",
        ]
