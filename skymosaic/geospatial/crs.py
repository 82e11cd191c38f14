"""
CRS code resolution and bounding-box reprojection.
Only the codes the compute service actually emits are resolved: WGS84, UTM north/south, web mercator.
"""
import math
from functools import lru_cache
from typing import Optional

from pyproj import Transformer

from skymosaic.core.logger import get_logger
from skymosaic.core.models import Bounds

log = get_logger("crs")

GEOGRAPHIC_EPSG = 4326
WEB_MERCATOR_EPSG = 3857
GEOGRAPHIC = "EPSG:4326"

_WEB_MERCATOR_PROJ = (
    "+proj=merc +a=6378137 +b=6378137 +lat_ts=0 +lon_0=0 +x_0=0 +y_0=0 "
    "+k=1 +units=m +nadgrids=@null +wktext +no_defs"
)


def _utm_zone_and_hemisphere(lon: float, lat: float) -> tuple[int, str]:
    """
    Compute UTM zone (1-60) and hemisphere ("N" or "S") from WGS84 lon, lat.
    """
    if lon < -180 or lon > 180 or lat < -90 or lat > 90:
        raise ValueError("Longitude or latitude out of range")
    zone = int(math.floor((lon + 180) / 6)) + 1
    zone = max(1, min(60, zone))
    hemisphere = "N" if lat >= 0 else "S"
    return zone, hemisphere


def _utm_zone_to_epsg(zone: int, hemisphere: str) -> int:
    """
    North: EPSG 32600 + zone (e.g. 32648 for UTM 48N)
    South: EPSG 32700 + zone (e.g. 32748 for UTM 48S)
    """
    if hemisphere == "N":
        return 32600 + zone
    return 32700 + zone


def utm_epsg_for(lon: float, lat: float) -> int:
    """EPSG code of the WGS84 UTM zone containing (lon, lat)."""
    return _utm_zone_to_epsg(*_utm_zone_and_hemisphere(lon, lat))


def utm_proj(zone: int, north: bool) -> str:
    hemisphere = "+north" if north else "+south"
    return f"+proj=utm +zone={zone} {hemisphere} +datum=WGS84 +units=m +no_defs"


def resolve_crs(epsg: Optional[int]) -> Optional[str]:
    """
    Turn an EPSG code into a definition pyproj accepts, or None when the code is not supported.
    """
    if epsg is None:
        return None
    epsg = int(epsg)
    if epsg == GEOGRAPHIC_EPSG:
        return GEOGRAPHIC
    if 32601 <= epsg <= 32660:
        return utm_proj(epsg - 32600, north=True)
    if 32701 <= epsg <= 32760:
        return utm_proj(epsg - 32700, north=False)
    if epsg == WEB_MERCATOR_EPSG:
        return _WEB_MERCATOR_PROJ
    return None


@lru_cache(maxsize=32)
def _transformer(src: str, dst: str) -> Transformer:
    return Transformer.from_crs(src, dst, always_xy=True)


def reproject_bounds(bounds: Bounds, src: str, dst: str = GEOGRAPHIC) -> Bounds:
    """
    Transform all four corners and take their envelope. The source box may be rotated
    relative to the target grid, so two corners are not enough.
    """
    if src == dst:
        return bounds
    transformer = _transformer(src, dst)
    corners = [transformer.transform(x, y) for x, y in bounds.corners()]
    for x, y in corners:
        if not (math.isfinite(x) and math.isfinite(y)):
            raise ValueError(f"Corner reprojection produced non-finite coordinates: {corners}")
    return Bounds.from_points(corners)
