"""
Check availability of the external raster tools (gdal_translate, gdal2tiles.py).
"""

import shutil
import subprocess

from skymosaic.core.exceptions import ToolNotFoundError
from skymosaic.core.logger import get_logger

log = get_logger("dependency_check")


def _run_version(cmd: str) -> tuple[bool, str]:
    """Run `cmd --version`. Return (success, message)."""
    try:
        result = subprocess.run(
            [cmd, "--version"],
            capture_output=True,
            text=True,
            timeout=10,
        )
        if result.returncode == 0:
            out = (result.stdout or result.stderr or "").strip()
            return True, out.splitlines()[0] if out else cmd
        return False, "exit code %s" % result.returncode
    except FileNotFoundError:
        return False, "not found"
    except subprocess.TimeoutExpired:
        return False, "timeout"
    except OSError as e:
        return False, str(e)


def required_tools(cfg: dict) -> list[str]:
    """Tools the current configuration will invoke."""
    tools = []
    if (cfg.get("cog") or {}).get("enabled"):
        tools.append(cfg["cog"].get("gdal_translate", "gdal_translate"))
    if (cfg.get("tiles") or {}).get("enabled", True):
        tools.append(cfg["tiles"].get("gdal2tiles", "gdal2tiles.py"))
    return tools


def check_raster_tools(cfg: dict) -> dict[str, tuple[bool, str]]:
    """Map each required tool to (available, version line or reason)."""
    results = {}
    for cmd in required_tools(cfg):
        if not shutil.which(cmd):
            results[cmd] = (False, "not found")
            continue
        ok, msg = _run_version(cmd)
        results[cmd] = (ok, msg)
        log.debug("%s: %s", cmd, msg)
    return results


def require_raster_tools(cfg: dict) -> None:
    """
    Raise ToolNotFoundError naming every missing or broken tool.
    """
    missing = ["%s (%s)" % (cmd, msg) for cmd, (ok, msg) in check_raster_tools(cfg).items() if not ok]
    if missing:
        raise ToolNotFoundError(
            "Raster tools missing or failed: %s\n"
            "Example (Ubuntu): sudo apt install gdal-bin python3-gdal\n"
            "Example (conda): conda install -c conda-forge gdal"
            % ", ".join(missing)
        )
