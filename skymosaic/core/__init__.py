from .event_bus import EventBus
from .exceptions import (
    ComputeServiceError,
    InvalidTransition,
    ProcessingAlreadyActive,
    ProjectNotFound,
    SkyMosaicError,
    ValidationError,
)
from .locks import ProjectLocks
from .logger import get_logger, get_project_logger, setup_logging
from .models import Bounds, Project, ProjectStatus, TileZoomRange
from .store import JsonProjectStore, ProjectStore

__all__ = [
    "EventBus",
    "ComputeServiceError", "InvalidTransition", "ProcessingAlreadyActive",
    "ProjectNotFound", "SkyMosaicError", "ValidationError",
    "ProjectLocks",
    "get_logger", "get_project_logger", "setup_logging",
    "Bounds", "Project", "ProjectStatus", "TileZoomRange",
    "JsonProjectStore", "ProjectStore",
]
