# Application layer: background processing controller

from skymosaic.application.controller import ProcessingController

__all__ = ["ProcessingController"]
