"""Project template catalog.

Templates are YAML files in ``templates/``. Each carries its catalog
metadata (parameters, phases, requirements) and a PRD skeleton whose
string values may contain ``{{parameter}}`` placeholders.
"""
import logging
import re
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

import yaml

from .schemas import TemplateDetails, TemplateSummary

logger = logging.getLogger("ppo-core.templates")

TEMPLATES_DIR = Path(__file__).parent / "templates"
PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*(\w+)\s*\}\}")
ALL_CATEGORIES = "all"


class TemplateNotFoundError(Exception):
    """Raised when a template name is not in the catalog."""

    def __init__(self, template_name: str, available: list[str]):
        super().__init__(f"Template '{template_name}' not found. Available templates: {', '.join(available)}")
        self.template_name = template_name
        self.available = available


@lru_cache
def load_catalog() -> dict[str, TemplateDetails]:
    """Load every template file, keyed by template name."""
    catalog: dict[str, TemplateDetails] = {}
    for path in sorted(TEMPLATES_DIR.glob("*.yaml")):
        data = yaml.safe_load(path.read_text())
        template = TemplateDetails.model_validate(data)
        catalog[template.name] = template
        logger.debug(f"Loaded template {template.name} from {path.name}")
    return catalog


def list_templates(category: Optional[str] = None) -> list[TemplateSummary]:
    """List templates, optionally filtered by category (``all`` means no filter)."""
    templates = load_catalog().values()
    if category and category != ALL_CATEGORIES:
        templates = [t for t in templates if t.category == category or category in t.tags]
    return [TemplateSummary.model_validate(t.model_dump(include=set(TemplateSummary.model_fields))) for t in templates]


def get_template(template_name: str) -> TemplateDetails:
    catalog = load_catalog()
    template = catalog.get(template_name)
    if template is None:
        raise TemplateNotFoundError(template_name, sorted(catalog))
    return template


def _substitute(value: Any, answers: dict[str, Any]) -> Any:
    if isinstance(value, str):
        # A value that is only a placeholder keeps the answer's type
        whole = PLACEHOLDER_PATTERN.fullmatch(value.strip())
        if whole and whole.group(1) in answers:
            return answers[whole.group(1)]
        return PLACEHOLDER_PATTERN.sub(lambda m: str(answers.get(m.group(1), "")), value)
    if isinstance(value, list):
        return [_substitute(item, answers) for item in value]
    if isinstance(value, dict):
        return {key: _substitute(item, answers) for key, item in value.items()}
    return value


def missing_parameters(template: TemplateDetails, answers: dict[str, Any]) -> list[str]:
    return [
        p.name for p in template.parameters
        if p.required and p.default_value is None and answers.get(p.name) in (None, "")
    ]


def render_prd(template_name: str, answers: Optional[dict[str, Any]] = None) -> dict[str, Any]:
    """Fill a template's PRD skeleton with answers, falling back to parameter defaults."""
    template = get_template(template_name)
    values = {p.name: p.default_value for p in template.parameters if p.default_value is not None}
    values.update({key: value for key, value in (answers or {}).items() if value is not None})
    return _substitute(template.prd, values)
