"""
Geospatial backend: georeferencing, COG conversion, tile generation, tile coverage.
"""

from skymosaic.geospatial.cog import CogResult, ensure_cog
from skymosaic.geospatial.coverage import get_tile_zoom_range
from skymosaic.geospatial.crs import reproject_bounds, resolve_crs, utm_epsg_for
from skymosaic.geospatial.georef import RasterInfo, extract_bounds, read_raster_info
from skymosaic.geospatial.output_names import ORTHOPHOTO_TIF, TILES_DIR
from skymosaic.geospatial.tiles import generate_tiles

__all__ = [
    "CogResult",
    "ensure_cog",
    "get_tile_zoom_range",
    "reproject_bounds",
    "resolve_crs",
    "utm_epsg_for",
    "RasterInfo",
    "extract_bounds",
    "read_raster_info",
    "ORTHOPHOTO_TIF",
    "TILES_DIR",
    "generate_tiles",
]
