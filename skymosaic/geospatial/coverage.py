"""
Tile coverage: which zoom levels of a generated pyramid hold real imagery.

gdal2tiles writes every level of the configured range, including levels where the
orthomosaic is far too coarse or too fine to show anything but background. Tile file
size is used as a proxy for content: a blank PNG compresses to a few hundred bytes.
"""
import os
from pathlib import Path
from typing import Optional

from skymosaic.core.logger import get_logger
from skymosaic.core.models import TileZoomRange

from .output_names import TILE_EXTENSION

log = get_logger("coverage")

SIZE_THRESHOLD = 2048


def _zoom_levels(tiles_dir: Path) -> list[int]:
    return sorted(int(d.name) for d in tiles_dir.iterdir() if d.is_dir() and d.name.isdigit())


def _scan_zoom(zoom_dir: Path, threshold: int) -> tuple[int, bool]:
    """Largest tile size at this level (-1 if none) and whether any tile exceeds threshold."""
    largest = -1
    has_data = False
    for x_dir in os.scandir(zoom_dir):
        if not x_dir.is_dir():
            continue
        for entry in os.scandir(x_dir.path):
            if not entry.is_file() or not entry.name.endswith(TILE_EXTENSION):
                continue
            size = entry.stat().st_size
            if size > largest:
                largest = size
            if size > threshold:
                has_data = True
    return largest, has_data


def get_tile_zoom_range(tiles_dir, threshold: int = SIZE_THRESHOLD) -> Optional[TileZoomRange]:
    """
    min/max over zoom levels with at least one tile above threshold; best is the level
    holding the single largest tile, pulled back to the highest valid level if it falls
    outside them. Returns None when there are no tiles (or no tiles directory).
    """
    tiles_dir = Path(tiles_dir)
    try:
        zooms = _zoom_levels(tiles_dir)
    except OSError as e:
        log.debug("No tile directory at %s: %s", tiles_dir, e)
        return None
    if not zooms:
        return None

    valid: list[int] = []
    best_zoom = zooms[0]
    best_size = -1
    for zoom in zooms:
        try:
            largest, has_data = _scan_zoom(tiles_dir / str(zoom), threshold)
        except OSError as e:
            log.warning("Failed to scan zoom level %d in %s: %s", zoom, tiles_dir, e)
            continue
        if has_data:
            valid.append(zoom)
        if largest > best_size:
            best_size = largest
            best_zoom = zoom

    if not valid:
        if best_size > -1:
            return TileZoomRange(min=zooms[0], max=zooms[-1], best=best_zoom)
        return None

    if best_zoom not in valid:
        best_zoom = valid[-1]
    return TileZoomRange(min=valid[0], max=valid[-1], best=best_zoom)
