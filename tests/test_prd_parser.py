"""Tests for PRD parsing, normalisation and validation."""
import json

import pytest
from pydantic import ValidationError
from ppo_core.models import Priority
from ppo_core.prd_parser import (
    Failed,
    Parsed,
    PrdParseError,
    normalize_priority,
    parse_json,
    parse_markdown,
    parse_prd,
    parse_raw,
    parse_yaml,
    validate_prd,
    validate_prd_content,
)


VALID_PRD = {
    "product": {"name": "Field Service", "description": "Dispatch technicians"},
    "features": [
        {
            "name": "User Login",
            "description": "Sign in with corporate identity",
            "priority": "high",
            "userStories": ["As a technician I want to sign in so that I see my jobs"],
            "acceptanceCriteria": ["SSO works"],
        },
        {
            "name": "Reports",
            "userStories": ["As a manager I want to view reports so that I can plan"],
        },
    ],
    "technical": {
        "environments": ["dev", "prod"],
        "dataModel": [
            {"name": "Customer"},
            {"name": "Work Order", "lookups": ["Customer"]},
        ],
    },
    "project": {"sprintCount": 4, "sprintDurationWeeks": 2},
}

MARKDOWN_PRD = """# Field Service

## Overview
Dispatch technicians to customer sites.

## Feature: User Login
Priority: High
Sign in with corporate identity.
- As a technician I want to sign in so that I see my jobs
- SSO works

## Reporting Features
- As a manager I want to view reports so that I can plan

## Environments
- dev
- prod

## Data Model
- Customer
- Work Order
"""


class TestParserAttempts:
    """Test the individual parser attempts."""

    def test_json_parses_mapping(self):
        outcome = parse_json(json.dumps(VALID_PRD))
        assert isinstance(outcome, Parsed)
        assert outcome.format == "json"

    def test_json_rejects_invalid_text(self):
        outcome = parse_json("not json")
        assert isinstance(outcome, Failed)
        assert outcome.format == "json"

    def test_json_rejects_non_mapping(self):
        outcome = parse_json("[1, 2, 3]")
        assert isinstance(outcome, Failed)
        assert "expected a mapping" in outcome.reason

    def test_yaml_parses_prd(self):
        outcome = parse_yaml("product:\n  name: Shop\nfeatures: []\n")
        assert isinstance(outcome, Parsed)
        assert outcome.data["product"]["name"] == "Shop"

    def test_yaml_rejects_mapping_without_prd_sections(self):
        outcome = parse_yaml("colour: blue\n")
        assert isinstance(outcome, Failed)
        assert "none of the PRD sections" in outcome.reason

    def test_markdown_outline(self):
        outcome = parse_markdown(MARKDOWN_PRD)
        assert isinstance(outcome, Parsed)
        data = outcome.data
        assert data["product"]["name"] == "Field Service"
        assert data["product"]["description"] == "Dispatch technicians to customer sites."
        assert [f["name"] for f in data["features"]] == ["User Login", "Reporting Features"]

        login = data["features"][0]
        assert login["priority"] == "High"
        assert login["description"] == "Sign in with corporate identity."
        assert login["userStories"] == ["As a technician I want to sign in so that I see my jobs"]
        assert login["acceptanceCriteria"] == ["SSO works"]

        assert data["technical"]["environments"] == ["dev", "prod"]
        assert data["technical"]["dataModel"] == ["Customer", "Work Order"]

    def test_markdown_story_phrase_is_case_sensitive(self):
        outcome = parse_markdown(
            "# Shop\n\n## Feature: Export\n"
            "- As an accountant I want to export reports so that I can file taxes\n"
            "- Report can be saved as a PDF\n"
            "- as a rule exports finish within a minute\n"
        )
        export = outcome.data["features"][0]
        assert export["userStories"] == ["As an accountant I want to export reports so that I can file taxes"]
        assert export["acceptanceCriteria"] == [
            "Report can be saved as a PDF",
            "as a rule exports finish within a minute",
        ]

    def test_markdown_without_headings_fails(self):
        outcome = parse_markdown("just some words")
        assert isinstance(outcome, Failed)


class TestParseRaw:
    """Test ordered parser dispatch."""

    def test_json_wins_first(self):
        assert parse_raw(json.dumps(VALID_PRD)).format == "json"

    def test_markdown_fallback(self):
        assert parse_raw(MARKDOWN_PRD).format == "markdown"

    def test_all_attempts_reported(self):
        with pytest.raises(PrdParseError) as exc_info:
            parse_raw("just some words")

        error = exc_info.value
        assert [a.format for a in error.attempts] == ["json", "yaml", "markdown"]
        assert "Could not parse PRD content" in str(error)

    def test_empty_content_rejected(self):
        with pytest.raises(PrdParseError) as exc_info:
            parse_prd("   ")
        assert exc_info.value.attempts[0].format == "input"


class TestNormalisation:
    """Test mapping of alternate field names onto the canonical PRD."""

    def test_structured_input_is_normalised(self):
        prd = parse_prd(VALID_PRD)
        assert prd.product.name == "Field Service"
        assert prd.features[0].priority == Priority.HIGH
        assert prd.technical.environments == ["dev", "prod"]
        assert prd.technical.data_model[1].lookups == ["Customer"]
        assert prd.project.sprint_count == 4
        assert prd.project.duration_weeks == 8

    def test_alternate_field_names(self):
        prd = parse_prd({
            "projectName": "Inventory",
            "features": [
                {
                    "title": "Stock",
                    "user_stories": [{"story": "As a clerk I want to count stock so that totals match"}],
                    "acceptance": "Counts saved",
                },
            ],
            "technical": {"entities": [{"name": "Item", "relationships": [{"parent": "Warehouse"}]}]},
            "project": {"sprints": [{}, {}, {}], "sprintDuration": "3 weeks", "duration": "12 weeks"},
        })
        assert prd.product.name == "Inventory"
        assert prd.features[0].name == "Stock"
        assert prd.features[0].user_stories == ["As a clerk I want to count stock so that totals match"]
        assert prd.features[0].acceptance_criteria == ["Counts saved"]
        assert prd.technical.data_model[0].lookups == ["Warehouse"]
        assert prd.project.sprint_count == 3
        assert prd.project.sprint_duration_weeks == 3
        assert prd.project.duration_weeks == 12

    def test_defaults_filled(self):
        prd = parse_prd({"name": "Tiny", "features": []})
        assert prd.technical.environments == ["dev", "test", "prod"]
        assert prd.project.sprint_count == 6
        assert prd.project.sprint_duration_weeks == 2
        assert prd.project.methodology == "Agile"

    def test_duplicates_removed(self):
        prd = parse_prd({
            "name": "Dupes",
            "technical": {
                "environments": ["dev", "Dev", "prod"],
                "dataModel": ["Customer", "customer", "Order"],
            },
        })
        assert prd.technical.environments == ["dev", "prod"]
        assert [e.name for e in prd.technical.data_model] == ["Customer", "Order"]

    def test_names_sharing_a_progress_key_are_merged(self):
        """'Order Line' and 'Order_Line' would both close on entity_order_line_created."""
        prd = parse_prd({
            "name": "Dupes",
            "technical": {
                "environments": ["QA Env", "qa_env", "prod"],
                "dataModel": ["Order Line", "Order_Line", "order  line", "Customer"],
            },
        })
        assert prd.technical.environments == ["QA Env", "prod"]
        assert [e.name for e in prd.technical.data_model] == ["Order Line", "Customer"]

    def test_prd_is_immutable(self):
        prd = parse_prd(VALID_PRD)
        with pytest.raises(ValidationError):
            prd.product = prd.product.model_copy(update={"name": "Other"})
        with pytest.raises(ValidationError):
            prd.features[0].name = "Renamed"

    def test_yaml_text(self):
        prd = parse_prd("name: From Yaml\nfeatures:\n  - name: One\n    stories:\n      - As a user I want it\n")
        assert prd.product.name == "From Yaml"
        assert prd.features[0].user_stories == ["As a user I want it"]


class TestPriority:
    """Test priority normalisation."""

    @pytest.mark.parametrize("value,expected", [
        ("high", Priority.HIGH),
        ("LOW", Priority.LOW),
        ("Critical", Priority.HIGH),
        (1, Priority.HIGH),
        (2, Priority.MEDIUM),
        (5, Priority.LOW),
        ("whenever", Priority.MEDIUM),
        (None, Priority.MEDIUM),
    ])
    def test_normalize_priority(self, value, expected):
        assert normalize_priority(value) == expected


class TestValidation:
    """Test PRD validation rules."""

    def test_valid_prd(self):
        result = validate_prd(parse_prd(VALID_PRD))
        assert result.valid
        assert result.errors == []

    def test_all_errors_reported_together(self):
        result = validate_prd(parse_prd({
            "product": {"name": ""},
            "features": [{"name": "", "userStories": []}],
            "project": {"sprintCount": 0, "sprintDurationWeeks": 0},
        }))
        assert not result.valid
        assert result.errors == [
            "projectName: product name is required",
            "features[0].name: Feature 1 must have a name",
            "features[0].userStories: Feature 1 must have at least one user story",
            "project.sprintCount: must be at least 1",
            "project.sprintDurationWeeks: must be at least 1",
        ]

    def test_feature_without_stories_named_in_error(self):
        result = validate_prd(parse_prd({"name": "X", "features": [{"name": "Billing"}]}))
        assert result.errors == ["features[0].userStories: Feature 1 (Billing) must have at least one user story"]

    def test_sprint_count_upper_bound(self):
        result = validate_prd(parse_prd({**VALID_PRD, "project": {"sprintCount": 10_000}}))
        assert result.errors == ["project.sprintCount: must be at most 52"]

    def test_no_features(self):
        result = validate_prd(parse_prd({"name": "X"}))
        assert "features: at least one feature is required" in result.errors

    def test_unparseable_content(self):
        result = validate_prd_content("just some words")
        assert not result.valid
        assert result.errors[0].startswith("prd: Could not parse PRD content")
