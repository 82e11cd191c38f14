"""File and path helpers."""

from pathlib import Path
from typing import Iterable, List, Optional


def list_images(dir_path: Path, extensions: Optional[Iterable[str]] = None) -> List[Path]:
    """Return sorted list of image files in directory (case-insensitive extension match)."""
    exts = {e.lower() for e in (extensions or (".jpg", ".jpeg", ".png", ".tif", ".tiff"))}
    dir_path = Path(dir_path)
    if not dir_path.is_dir():
        return []
    return sorted(p for p in dir_path.iterdir() if p.is_file() and p.suffix.lower() in exts)
