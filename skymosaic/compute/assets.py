"""
Orthomosaic asset resolution: normalize what the task reports, rank candidate names,
and fall back from the all-outputs bundle to individual downloads.
"""
import shutil
import zipfile
from pathlib import Path, PurePosixPath

from skymosaic.core.exceptions import ArchiveMemberNotFound, AssetResolutionError, SkyMosaicError
from skymosaic.core.logger import get_logger

log = get_logger("assets")

BUNDLE_NAME = "all.zip"
RASTER_EXTENSIONS = (".tif", ".tiff")

# Marker keyword -> specificity tier (higher wins)
MARKER_TIERS = (
    ("odm_orthophoto", 3),
    ("orthophoto", 2),
    ("ortho", 1),
)

# Well-known output paths, tried when the task lists nothing
CANONICAL_PATHS = (
    "odm_orthophoto/odm_orthophoto.tif",
    "orthophoto.tif",
    "odm_orthophoto.tif",
)

# Keys under which a task info payload may carry its asset list
_LIST_KEYS = ("assets", "output", "files")


def normalize_asset_list(payload) -> list[str]:
    """
    Flatten the shapes a task may report its outputs in:
    {"assets": [...]}, {"assets": {name: ...}}, or a bare [...]. Anything else gives [].
    """
    if isinstance(payload, list):
        items = payload
    elif isinstance(payload, dict):
        items = None
        for key in _LIST_KEYS:
            value = payload.get(key)
            if isinstance(value, list):
                items = value
                break
            if isinstance(value, dict):
                items = list(value.keys())
                break
        if items is None:
            return []
    else:
        return []
    return [str(i).strip() for i in items if isinstance(i, str) and i.strip()]


def _is_raster(name: str) -> bool:
    return name.lower().endswith(RASTER_EXTENSIONS)


def _tier(name: str) -> int:
    base = PurePosixPath(name).name.lower()
    full = name.lower()
    for marker, tier in MARKER_TIERS:
        if marker in base or marker in full:
            return tier
    return 0


def rank_candidates(names: list[str]) -> list[str]:
    """
    Ordered, de-duplicated download candidates. Same input always gives the same order.
    """
    seen: set[str] = set()
    unique = [n for n in names if not (n in seen or seen.add(n))]
    if not unique:
        return list(CANONICAL_PATHS)

    rasters = [n for n in unique if _is_raster(n)]
    scored = [(_tier(n), i, n) for i, n in enumerate(rasters)]
    ranked = [n for tier, _, n in sorted(scored, key=lambda t: (-t[0], t[1])) if tier > 0]
    if ranked:
        return ranked
    return rasters or list(CANONICAL_PATHS)


def extract_orthomosaic(archive_path, dest_path) -> Path:
    """
    Copy the orthomosaic out of a downloaded bundle, byte for byte.
    Exact canonical path suffix first, then any raster whose name contains 'orthophoto'.
    """
    archive_path = Path(archive_path)
    dest_path = Path(dest_path)
    try:
        zf = zipfile.ZipFile(archive_path)
    except zipfile.BadZipFile as e:
        raise ArchiveMemberNotFound(f"{archive_path.name} is not a valid archive: {e}") from e

    with zf:
        entries = [i for i in zf.infolist() if not i.is_dir()]
        match = None
        for canonical in CANONICAL_PATHS:
            match = next((i for i in entries if i.filename == canonical or i.filename.endswith("/" + canonical)), None)
            if match is not None:
                break
        if match is None:
            match = next(
                (i for i in entries if "orthophoto" in i.filename.lower() and _is_raster(i.filename)),
                None,
            )
        if match is None:
            raise ArchiveMemberNotFound(
                f"No orthophoto raster in {archive_path.name} ({len(entries)} entries)"
            )
        dest_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = dest_path.with_name(dest_path.name + ".part")
        with zf.open(match) as src, open(tmp_path, "wb") as out:
            shutil.copyfileobj(src, out)
        tmp_path.replace(dest_path)
    log.info("Extracted %s from %s", match.filename, archive_path.name)
    return dest_path


def _reported_assets(client, task_id: str) -> list[str]:
    try:
        return client.list_assets(task_id)
    except SkyMosaicError as e:
        log.warning("Task %s exposes no asset listing (%s); using canonical names", task_id, e)
        return []


def download_orthomosaic(client, task_id: str, dest_path) -> Path:
    """
    Fetch the orthomosaic for a completed task into dest_path.
    Order: bundle archive, then each ranked candidate. Raises AssetResolutionError
    listing every attempt and every reported asset when nothing works.
    """
    dest_path = Path(dest_path)
    attempts: list[str] = []

    bundle_path = dest_path.with_name(BUNDLE_NAME)
    try:
        client.download_asset(task_id, BUNDLE_NAME, bundle_path)
        return extract_orthomosaic(bundle_path, dest_path)
    except SkyMosaicError as e:
        attempts.append(f"{BUNDLE_NAME}: {e}")
        log.info("Bundle download for task %s failed, trying individual assets: %s", task_id, e)
    finally:
        bundle_path.unlink(missing_ok=True)

    reported = _reported_assets(client, task_id)
    candidates = rank_candidates(reported)
    for name in candidates:
        try:
            client.download_asset(task_id, name, dest_path)
            log.info("Orthomosaic for task %s resolved from %s", task_id, name)
            return dest_path
        except SkyMosaicError as e:
            attempts.append(f"{name}: {e}")
            log.debug("Candidate %s failed: %s", name, e)

    raise AssetResolutionError(
        "Could not download orthomosaic for task %s. Tried: %s. Task reported assets: %s"
        % (task_id, "; ".join(attempts), ", ".join(reported) if reported else "(none)")
    )
