"""
Optional Cloud-Optimized GeoTIFF conversion via gdal_translate.
Never fails the pipeline: any problem leaves the original raster in place.
"""
import os
from dataclasses import dataclass
from pathlib import Path

from skymosaic.core.exceptions import SkyMosaicError
from skymosaic.core.logger import get_logger
from skymosaic.core.wrapper import run_tool

from .output_names import COG_SUFFIX

log = get_logger("cog")

COG_CREATION_OPTIONS = ("COMPRESS=DEFLATE", "BIGTIFF=IF_SAFER")


@dataclass(frozen=True)
class CogResult:
    path: Path
    converted: bool


def cog_sibling(input_path: Path) -> Path:
    return input_path.with_name(input_path.stem + COG_SUFFIX)


def build_translate_command(tool: str, input_path: Path, output_path: Path) -> list[str]:
    cmd = [tool, "-of", "COG"]
    for opt in COG_CREATION_OPTIONS:
        cmd += ["-co", opt]
    return cmd + [str(input_path), str(output_path)]


def ensure_cog(input_path, cfg: dict, timeout: float | None = None) -> CogResult:
    """
    Convert input_path to COG in place when cog.enabled is set.
    On success the COG replaces the original, so callers keep a single canonical path.
    """
    input_path = Path(input_path)
    cog_cfg = cfg.get("cog") or {}
    if not cog_cfg.get("enabled"):
        return CogResult(input_path, False)

    output_path = cog_sibling(input_path)
    try:
        if output_path.resolve() == input_path.resolve():
            raise SkyMosaicError("COG output path matches input path; refusing to overwrite")
        run_tool(
            build_translate_command(cog_cfg.get("gdal_translate", "gdal_translate"), input_path, output_path),
            "cog",
            timeout=timeout,
            logger=log,
        )
        os.replace(output_path, input_path)
    except (SkyMosaicError, OSError) as e:
        log.warning("COG conversion failed, using original GeoTIFF: %s", e)
        if output_path != input_path:
            output_path.unlink(missing_ok=True)
        return CogResult(input_path, False)

    log.info("COG conversion complete: %s", input_path)
    return CogResult(input_path, True)
