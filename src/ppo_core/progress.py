"""Progress condition keys and which phase owns each of them.

Technical stories name the condition that closes them; the phases that
provision infrastructure set those same keys. Both sides build keys with
the helpers below so the names can never drift apart.

Each key has exactly one owner. The two parallel branches write disjoint
keys, which is what makes the shared progress map safe without locking.
"""
import logging
import re
from typing import Optional

from .models import ProgressOwner

logger = logging.getLogger("ppo-core.progress")

APP_REGISTRATION_CREATED = "app_registration_created"
PUBLISHER_CREATED = "publisher_created"
SOLUTION_CREATED = "solution_created"

_ENVIRONMENT_PREFIX = "environment_"
_ENTITY_PREFIX = "entity_"
_CREATED_SUFFIX = "_created"


class ProgressOwnershipError(Exception):
    """Raised when a phase writes a progress key it does not own."""

    def __init__(self, key: str, writer: ProgressOwner, owner: Optional[ProgressOwner]):
        owner_label = owner.value if owner else "nobody"
        super().__init__(
            f"Progress key '{key}' is owned by {owner_label}; {writer.value} may not write it"
        )
        self.key = key
        self.writer = writer
        self.owner = owner


def _slug(name: str) -> str:
    return re.sub(r"\s+", "_", name.strip().lower())


def environment_key(environment: str) -> str:
    """``environment_<name>_created`` for a declared environment."""
    return f"{_ENVIRONMENT_PREFIX}{_slug(environment)}{_CREATED_SUFFIX}"


def entity_key(entity_name: str) -> str:
    """``entity_<name>_created`` for a declared data-model entity."""
    return f"{_ENTITY_PREFIX}{_slug(entity_name)}{_CREATED_SUFFIX}"


def owner_of(key: str) -> Optional[ProgressOwner]:
    """Return the phase that owns a progress key, or None for unknown keys."""
    if key == APP_REGISTRATION_CREATED:
        return ProgressOwner.FOUNDATION
    if key in (PUBLISHER_CREATED, SOLUTION_CREATED):
        return ProgressOwner.PLATFORM
    if key.endswith(_CREATED_SUFFIX) and key.startswith((_ENVIRONMENT_PREFIX, _ENTITY_PREFIX)):
        return ProgressOwner.PLATFORM
    return None


def mark_progress(progress: dict[str, bool], key: str, writer: ProgressOwner) -> None:
    """Set ``progress[key] = True`` after checking that ``writer`` owns the key.

    Raises:
        ProgressOwnershipError: If the key belongs to another phase or is unknown
    """
    owner = owner_of(key)
    if owner != writer:
        logger.warning(f"Blocked progress write: {writer.value} -> {key}")
        raise ProgressOwnershipError(key, writer, owner)
    progress[key] = True
    logger.debug(f"Progress: {key} = True ({writer.value})")
