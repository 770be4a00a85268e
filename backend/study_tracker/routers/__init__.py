"""API routers for Study Tracker backend."""

from .goals import router as goals_router
from .groups import router as groups_router
from .meetings import router as meetings_router
from .notes import router as notes_router
from .reflections import router as reflections_router

__all__ = ["goals_router", "groups_router", "meetings_router", "notes_router", "reflections_router"]
