"""
Load configuration from YAML, then apply deployment environment overrides.
Default: skymosaic/config/default.yaml. Override: --config <file> or SKYMOSAIC_CONFIG.
"""
import os
from pathlib import Path
from typing import Any

import yaml

_CACHE: dict[str, Any] | None = None
_CONFIG_DIR = Path(__file__).resolve().parent

ENV_CONFIG = "SKYMOSAIC_CONFIG"
ENV_DATA_DIR = "SKYMOSAIC_DATA_DIR"
ENV_LOG_LEVEL = "SKYMOSAIC_LOG_LEVEL"
ENV_LOG_DIR = "SKYMOSAIC_LOG_DIR"


def _deep_merge(base: dict, override: dict) -> dict:
    """Merge override into base (recursive). base is not mutated."""
    out = dict(base)
    for k, v in override.items():
        if k in out and isinstance(out[k], dict) and isinstance(v, dict):
            out[k] = _deep_merge(out[k], v)
        else:
            out[k] = v
    return out


def _load_yaml(path: Path) -> dict:
    if not path.exists():
        return {}
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)
    return data if isinstance(data, dict) else {}


def _defaults() -> dict:
    """Built-in defaults (no file)."""
    return {
        "compute": {
            "url": "http://localhost:3000",
            "timeout": 30,
            "upload_timeout": 120,
            "download_timeout": 600,
            "min_download_bytes": 1024,
            "commit_options": {
                "dsm": True,
                "orthophoto-resolution": 5,
                "fast-orthophoto": True,
            },
        },
        "processing": {
            "poll_interval": 10,
            "max_poll_time": 3 * 60 * 60,
            "min_images": 2,
        },
        "cog": {"enabled": False, "gdal_translate": "gdal_translate"},
        "tiles": {
            "enabled": True,
            "gdal2tiles": "gdal2tiles.py",
            "zoom_range": "14-22",
            "size_threshold": 2048,
        },
        "georef": {"gdalinfo": "gdalinfo", "timeout": 60},
        "paths": {"data_dir": "data"},
        "image_extensions": [".jpg", ".jpeg", ".png", ".tif", ".tiff"],
    }


def _env_flag(name: str, default: bool, enable_word: str | None = None) -> bool:
    """
    ENABLE_COG is opt-in ("true" enables), ENABLE_TILES is opt-out ("false" disables).
    """
    raw = os.environ.get(name)
    if raw is None:
        return default
    raw = raw.strip().lower()
    if enable_word is not None:
        return raw == enable_word
    return raw != "false"


def _apply_env(cfg: dict) -> dict:
    env = os.environ
    if env.get("NODEODM_URL"):
        cfg["compute"]["url"] = env["NODEODM_URL"]
    cfg["cog"]["enabled"] = _env_flag("ENABLE_COG", bool(cfg["cog"].get("enabled")), enable_word="true")
    if env.get("GDAL_TRANSLATE"):
        cfg["cog"]["gdal_translate"] = env["GDAL_TRANSLATE"]
    cfg["tiles"]["enabled"] = _env_flag("ENABLE_TILES", bool(cfg["tiles"].get("enabled")))
    if env.get("GDAL2TILES"):
        cfg["tiles"]["gdal2tiles"] = env["GDAL2TILES"]
    if env.get("GDALINFO"):
        cfg["georef"]["gdalinfo"] = env["GDALINFO"]
    if env.get("TILE_ZOOM_RANGE"):
        cfg["tiles"]["zoom_range"] = env["TILE_ZOOM_RANGE"]
    if env.get(ENV_DATA_DIR):
        cfg["paths"]["data_dir"] = env[ENV_DATA_DIR]
    return cfg


def load_config(override_path: str | Path | None = None) -> dict:
    """
    Load config: defaults + default.yaml + SKYMOSAIC_CONFIG + optional override file,
    then environment variables. Cached after first call unless override_path is given.
    """
    global _CACHE
    if override_path is not None:
        _CACHE = None

    if _CACHE is not None:
        return _CACHE

    base = _defaults()
    default_file = _CONFIG_DIR / "default.yaml"
    if default_file.exists():
        base = _deep_merge(base, _load_yaml(default_file))

    env_path = os.environ.get(ENV_CONFIG)
    if env_path and Path(env_path).exists():
        base = _deep_merge(base, _load_yaml(Path(env_path)))

    if override_path is not None:
        p = Path(override_path)
        if p.exists():
            base = _deep_merge(base, _load_yaml(p))

    base = _apply_env(base)
    base["image_extensions"] = [str(e).lower() for e in base.get("image_extensions") or []]

    _CACHE = base
    return base


def get_config(override_path: str | Path | None = None) -> dict:
    """Alias for load_config; use for read-only access."""
    return load_config(override_path)


def reset_config() -> None:
    """Clear cache (e.g. for tests)."""
    global _CACHE
    _CACHE = None


def data_dir(cfg: dict | None = None) -> Path:
    """Root holding uploads/, outputs/ and the project store."""
    cfg = cfg if cfg is not None else get_config()
    return Path(cfg["paths"]["data_dir"]).resolve()


def uploads_dir(project_id: str, cfg: dict | None = None) -> Path:
    return data_dir(cfg) / "uploads" / project_id


def outputs_dir(project_id: str, cfg: dict | None = None) -> Path:
    return data_dir(cfg) / "outputs" / project_id
