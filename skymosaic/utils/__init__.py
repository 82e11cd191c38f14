"""Shared helpers: file listing and external tool checks."""

from skymosaic.utils.dependency_check import check_raster_tools, require_raster_tools
from skymosaic.utils.file_utils import list_images

__all__ = ["check_raster_tools", "require_raster_tools", "list_images"]
