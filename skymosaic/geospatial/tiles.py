"""
XYZ tile pyramid generation via gdal2tiles.py.
Unlike COG conversion, failure here is fatal: without tiles the map has nothing to draw.
"""
import shutil
from pathlib import Path

from skymosaic.core.logger import get_logger
from skymosaic.core.wrapper import run_tool

log = get_logger("tiles")


def build_tiles_command(tool: str, input_path: Path, tiles_dir: Path, zoom_range: str) -> list[str]:
    return [
        tool,
        "-p", "mercator",
        "-z", zoom_range,
        "--xyz",
        "-w", "none",
        str(input_path),
        str(tiles_dir),
    ]


def generate_tiles(input_path, tiles_dir, cfg: dict, timeout: float | None = None) -> bool:
    """
    Rebuild tiles_dir from scratch. Returns False when tiling is disabled.
    Raises ToolNotFoundError / ToolExecutionError, or OSError if the old pyramid cannot be removed.
    """
    tiles_cfg = cfg.get("tiles") or {}
    if not tiles_cfg.get("enabled", True):
        log.info("Tiling disabled; skipping %s", input_path)
        return False

    input_path = Path(input_path)
    tiles_dir = Path(tiles_dir)
    if tiles_dir.exists():
        shutil.rmtree(tiles_dir)
    tiles_dir.mkdir(parents=True, exist_ok=True)

    zoom_range = str(tiles_cfg.get("zoom_range", "14-22"))
    run_tool(
        build_tiles_command(tiles_cfg.get("gdal2tiles", "gdal2tiles.py"), input_path, tiles_dir, zoom_range),
        "tiles",
        timeout=timeout,
        logger=log,
    )
    log.info("Generated tiles (zoom %s) at %s", zoom_range, tiles_dir)
    return True
