"""API package exports."""

from .app import create_app
from .state import PoolApiState

__all__ = ["create_app", "PoolApiState"]
