"""PRD source adapters.

Each source yields raw PRD content (a string or an already-parsed mapping)
for the normalizer; none of them interprets the content.
"""
import logging
from pathlib import Path
from typing import Any, Optional, Union
from urllib.parse import urlparse

import httpx

from .models import PrdSource
from .schemas import PrdSourceConfig
from .templates import get_template, missing_parameters, render_prd

logger = logging.getLogger("ppo-core.prd_sources")

RawPrd = Union[str, dict[str, Any]]


class PrdSourceError(Exception):
    """Raised when a source is unsupported or missing what it needs."""

    def __init__(self, source: str, message: str):
        super().__init__(f"{source}: {message}")
        self.source = source


def _has_content(config: PrdSourceConfig) -> bool:
    content = config.content
    return bool(content.strip()) if isinstance(content, str) else bool(content)


def _raw_gist_url(url: str) -> str:
    parsed = urlparse(url)
    if parsed.netloc == "gist.github.com" and not parsed.path.rstrip("/").endswith("/raw"):
        return f"{url.rstrip('/')}/raw"
    return url


async def fetch_gist(url: str, client: Optional[httpx.AsyncClient] = None, timeout: float = 30.0) -> str:
    """Download raw gist content."""
    raw_url = _raw_gist_url(url)
    logger.info(f"Fetching PRD from {raw_url}")
    try:
        if client is not None:
            response = await client.get(raw_url, follow_redirects=True)
        else:
            async with httpx.AsyncClient(timeout=timeout) as session:
                response = await session.get(raw_url, follow_redirects=True)
        response.raise_for_status()
    except httpx.HTTPStatusError as e:
        raise PrdSourceError(PrdSource.COPILOT.value, f"Gist request failed with {e.response.status_code}") from e
    except httpx.RequestError as e:
        raise PrdSourceError(PrdSource.COPILOT.value, f"Gist could not be fetched: {e}") from e
    return response.text


async def acquire_prd(
    config: PrdSourceConfig,
    project_name: str = "",
    description: Optional[str] = None,
    customization: Optional[dict[str, Any]] = None,
    template_name: Optional[str] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> RawPrd:
    """Resolve a PRD source configuration into raw content.

    Args:
        config: Which source to use and its parameters
        project_name: Used as the ``projectName`` answer for templates
        description: Used as the ``description`` answer for templates
        customization: Extra template answers
        template_name: Template to use when ``config`` does not name one
        http_client: Client for remote sources (tests pass a mock transport)

    Raises:
        PrdSourceError: If the source cannot supply content
        TemplateNotFoundError: If a template source names an unknown template
    """
    source = config.source

    if source == PrdSource.MANUAL:
        if not _has_content(config):
            raise PrdSourceError(source.value, "content is required")
        return config.content

    if source == PrdSource.FILE:
        if not config.file_path:
            raise PrdSourceError(source.value, "filePath is required")
        path = Path(config.file_path).expanduser()
        try:
            return path.read_text(encoding="utf-8")
        except OSError as e:
            raise PrdSourceError(source.value, f"cannot read {path}: {e.strerror or e}") from e

    if source == PrdSource.TEMPLATE:
        name = config.template_name or template_name
        if not name:
            raise PrdSourceError(source.value, "templateName is required")
        answers: dict[str, Any] = {"projectName": project_name}
        if description:
            answers["description"] = description
        answers.update(customization or {})
        answers.update(config.answers)
        missing = missing_parameters(get_template(name), answers)
        if missing:
            raise PrdSourceError(source.value, f"missing template answers: {', '.join(missing)}")
        return render_prd(name, answers)

    if source == PrdSource.CLAUDE:
        if _has_content(config):
            return config.content
        if config.conversation_id:
            raise PrdSourceError(
                source.value,
                f"conversation {config.conversation_id} cannot be retrieved; pass the PRD as content",
            )
        raise PrdSourceError(source.value, "content is required")

    if source == PrdSource.COPILOT:
        if _has_content(config):
            return config.content
        if config.gist_url:
            return await fetch_gist(config.gist_url, http_client)
        raise PrdSourceError(source.value, "content or gistUrl is required")

    raise PrdSourceError(str(source), "unsupported PRD source")
