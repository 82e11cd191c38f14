"""SkyMosaic exceptions."""


class SkyMosaicError(Exception):
    """Base exception for SkyMosaic."""


class ValidationError(SkyMosaicError):
    """Input validation failed (e.g. fewer than two images)."""


class ProjectNotFound(SkyMosaicError):
    """No project record with the given id."""


class InvalidTransition(SkyMosaicError):
    """Requested status change is not allowed by the project state machine."""


class ProcessingAlreadyActive(SkyMosaicError):
    """Another pipeline already owns this project."""


class ComputeServiceError(SkyMosaicError):
    """Compute service request failed (network, timeout, bad response)."""


class TaskFailedError(ComputeServiceError):
    """Compute service reported the task as failed or canceled."""


class ProcessingTimeout(SkyMosaicError):
    """Task did not complete within the configured wall-clock ceiling."""


class AssetResolutionError(SkyMosaicError):
    """No candidate orthomosaic asset could be downloaded."""


class ArchiveMemberNotFound(SkyMosaicError):
    """Downloaded bundle holds no orthomosaic raster."""


class ToolNotFoundError(SkyMosaicError):
    """External command-line tool is not installed or not on PATH."""


class ToolExecutionError(SkyMosaicError):
    """External command-line tool ran and failed (non-zero exit or timeout)."""
