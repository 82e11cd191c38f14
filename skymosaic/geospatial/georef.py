"""
Georeferencing of the produced orthomosaic: size, native bounds and EPSG code from
`gdalinfo -json`, then the WGS84 footprint that gets persisted on the project.

GDAL reads the header only, so any band count, sample type or compression it supports
works and multi-gigabyte rasters are cheap to inspect.
"""
import json
import math
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from pyproj import CRS
from pyproj.exceptions import CRSError, ProjError

from skymosaic.core.logger import get_logger
from skymosaic.core.models import Bounds

from .crs import GEOGRAPHIC, reproject_bounds, resolve_crs

log = get_logger("georef")

# GDAL reports this geotransform for rasters without georeferencing.
_IDENTITY_TRANSFORM = (0.0, 1.0, 0.0, 0.0, 0.0, 1.0)
_CORNERS = ("upperLeft", "upperRight", "lowerRight", "lowerLeft")


@dataclass
class RasterInfo:
    width: int
    height: int
    bounds: Optional[Bounds]
    epsg: Optional[int]
    crs: Optional[str]
    bounds_wgs84: Optional[Bounds]
    resolution: Optional[tuple[float, float]]
    crs_uncertain: bool = False
    band_count: int = 0


def _gdalinfo_json(path: Path, gdalinfo: str = "gdalinfo", timeout: int = 30) -> Optional[dict]:
    """Return gdalinfo -json as a dict, or None on failure."""
    try:
        result = subprocess.run(
            [gdalinfo, "-json", str(path)],
            capture_output=True,
            text=True,
            timeout=timeout,
        )
        if result.returncode != 0:
            log.debug("%s failed on %s: %s", gdalinfo, path, (result.stderr or "").strip())
            return None
        return json.loads(result.stdout)
    except FileNotFoundError:
        log.warning("%s not found; raster georeferencing is unavailable", gdalinfo)
        return None
    except (subprocess.TimeoutExpired, ValueError):
        return None


def _geotransform(info: dict) -> Optional[tuple]:
    gt = info.get("geoTransform")
    if not gt or len(gt) < 6:
        return None
    gt = tuple(float(v) for v in gt[:6])
    if gt == _IDENTITY_TRANSFORM:
        return None
    return gt


def _native_bounds(info: dict, gt: tuple, width: int, height: int) -> Bounds:
    """Box around all four corners; rotated grids have no axis-aligned pair of corners."""
    corners = info.get("cornerCoordinates") or {}
    points = [corners.get(name) for name in _CORNERS]
    if any(p is None or len(p) < 2 for p in points):
        pixel_corners = [(0, 0), (width, 0), (width, height), (0, height)]
        points = [(gt[0] + i * gt[1] + j * gt[2], gt[3] + i * gt[4] + j * gt[5]) for i, j in pixel_corners]
    return Bounds.from_points([(float(p[0]), float(p[1])) for p in points])


def epsg_from_wkt(wkt: Optional[str]) -> Optional[int]:
    """EPSG code identified by pyproj for a WKT definition, or None."""
    if not wkt:
        return None
    try:
        return CRS.from_wkt(wkt).to_epsg()
    except CRSError as e:
        log.warning("Unrecognized coordinate system in raster: %s", e)
        return None


def read_raster_info(path, cfg: Optional[dict] = None) -> RasterInfo:
    """
    Inspect a raster with gdalinfo. Raises ValueError if GDAL cannot read it.
    When no CRS can be resolved the native box is reused as a best guess and
    crs_uncertain is set; callers must tolerate a misplaced footprint.
    """
    path = Path(path)
    georef_cfg = (cfg or {}).get("georef") or {}
    info = _gdalinfo_json(
        path,
        gdalinfo=georef_cfg.get("gdalinfo", "gdalinfo"),
        timeout=int(georef_cfg.get("timeout", 30)),
    )
    if not info or len(info.get("size") or ()) < 2:
        raise ValueError(f"{path.name} is not a readable raster")

    width, height = (int(v) for v in info["size"][:2])
    gt = _geotransform(info)
    bounds = _native_bounds(info, gt, width, height) if gt else None
    resolution = (math.hypot(gt[1], gt[4]), math.hypot(gt[2], gt[5])) if gt else None
    epsg = epsg_from_wkt((info.get("coordinateSystem") or {}).get("wkt"))

    crs = None
    bounds_wgs84 = None
    uncertain = False

    crs_def = resolve_crs(epsg)
    if epsg is not None:
        log.info("Raster CRS detected: EPSG:%d", epsg)
        if crs_def is None:
            log.warning("EPSG:%d is not a supported CRS; footprint cannot be reprojected", epsg)
        else:
            crs = f"EPSG:{epsg}"

    if crs_def is not None and bounds is not None:
        try:
            bounds_wgs84 = reproject_bounds(bounds, crs_def, GEOGRAPHIC)
            log.info(
                "Reprojected bounds to WGS84: [%f, %f, %f, %f]",
                bounds_wgs84.min_x, bounds_wgs84.min_y, bounds_wgs84.max_x, bounds_wgs84.max_y,
            )
        except (ProjError, ValueError) as e:
            log.error("Error reprojecting bounds from %s: %s", crs, e)
    elif crs_def is None and bounds is not None:
        if bounds.looks_geographic():
            log.info("No usable CRS in %s, but bounds look like WGS84", path.name)
            crs = GEOGRAPHIC
            bounds_wgs84 = bounds
        else:
            log.warning(
                "No CRS detected and bounds do not look like WGS84; map placement may be incorrect. "
                "Raw bounds: [%f, %f, %f, %f]",
                bounds.min_x, bounds.min_y, bounds.max_x, bounds.max_y,
            )
            bounds_wgs84 = bounds
            uncertain = True

    return RasterInfo(
        width=width,
        height=height,
        bounds=bounds,
        epsg=epsg,
        crs=crs,
        bounds_wgs84=bounds_wgs84,
        resolution=resolution,
        crs_uncertain=uncertain,
        band_count=len(info.get("bands") or ()),
    )


def extract_bounds(path, cfg: Optional[dict] = None) -> Optional[Bounds]:
    """WGS84 footprint of the raster, or None if it carries no georeferencing."""
    return read_raster_info(path, cfg).bounds_wgs84
