"""Shared FastAPI dependencies."""
from functools import lru_cache

from ..operations import OperationService


@lru_cache
def get_operation_service() -> OperationService:
    """One operation service per process; tests override this dependency."""
    return OperationService()
