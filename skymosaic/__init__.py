"""SkyMosaic: drone imagery to tiled, georeferenced orthomosaics."""

__version__ = "0.1.0"

from skymosaic.application.controller import ProcessingController
from skymosaic.core.orchestrator import Orchestrator
from skymosaic.core.store import JsonProjectStore
from skymosaic.compute.client import ComputeClient

__all__ = [
    "__version__",
    "ProcessingController",
    "Orchestrator",
    "JsonProjectStore",
    "ComputeClient",
]
