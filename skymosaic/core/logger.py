"""
Logging: level, file log, timestamp, per-project context.
Configure once with setup_logging(); use get_logger() / get_project_logger() everywhere.
"""
import logging
import os
from pathlib import Path
from typing import Optional

from skymosaic.config import ENV_LOG_DIR, ENV_LOG_LEVEL

ROOT_NAME = "skymosaic"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
_setup_done = False


class SkyMosaicFormatter(logging.Formatter):
    """Formatter with timestamp and optional project tag; safe when record has no project."""

    def __init__(self, fmt: Optional[str] = None, datefmt: Optional[str] = None):
        fmt = fmt or "%(asctime)s [%(levelname)s] %(name)s%(project)s %(message)s"
        super().__init__(fmt=fmt, datefmt=datefmt or _DATE_FORMAT)

    def format(self, record: logging.LogRecord) -> str:
        setattr(record, "project", getattr(record, "project", ""))
        return super().format(record)


class ProjectAdapter(logging.LoggerAdapter):
    """Logger that adds project context so formatter shows e.g. [project 3f2c...]."""

    def process(self, msg, kwargs):
        extra = kwargs.get("extra") or {}
        project = self.extra.get("project", "")
        extra["project"] = f" [project {project}]" if project else ""
        kwargs["extra"] = extra
        return msg, kwargs


def _get_level_from_env() -> int:
    raw = os.environ.get(ENV_LOG_LEVEL, "").strip().upper()
    return getattr(logging, raw, logging.INFO)


def _ensure_log_dir(log_dir: Optional[Path]) -> Optional[Path]:
    if log_dir is None:
        log_dir = os.environ.get(ENV_LOG_DIR)
        if log_dir:
            log_dir = Path(log_dir)
    if log_dir is not None:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir


def setup_logging(
    level: Optional[int] = None,
    log_file: Optional[os.PathLike | str] = None,
    log_dir: Optional[os.PathLike | str] = None,
    format_string: Optional[str] = None,
    use_console: bool = True,
) -> None:
    """
    Configure skymosaic root logger: level, console handler, optional file handler.
    Idempotent; safe to call once at startup.
    """
    global _setup_done
    if _setup_done:
        return

    root = logging.getLogger(ROOT_NAME)
    if level is None:
        level = _get_level_from_env()
    root.setLevel(level)

    formatter = SkyMosaicFormatter(format_string)

    if use_console:
        console = logging.StreamHandler()
        console.setLevel(level)
        console.setFormatter(formatter)
        root.addHandler(console)

    if log_file is not None:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(path, encoding="utf-8")
        fh.setLevel(level)
        fh.setFormatter(formatter)
        root.addHandler(fh)
    else:
        log_dir = _ensure_log_dir(Path(log_dir) if log_dir else None)
        if log_dir is not None:
            fh = logging.FileHandler(log_dir / "skymosaic.log", encoding="utf-8")
            fh.setLevel(level)
            fh.setFormatter(formatter)
            root.addHandler(fh)

    _setup_done = True


def get_logger(name: str) -> logging.Logger:
    """Return a logger under skymosaic.* (e.g. skymosaic.orchestrator)."""
    if name != ROOT_NAME and not name.startswith(ROOT_NAME + "."):
        name = f"{ROOT_NAME}.{name}"
    return logging.getLogger(name)


def get_project_logger(logger: logging.Logger, project_id: str) -> ProjectAdapter:
    """
    Return an adapter that adds the project id to every log line.
    Use for pipeline logs: get_project_logger(get_logger('orchestrator'), project_id).
    """
    if isinstance(logger, ProjectAdapter):
        logger = logger.logger
    return ProjectAdapter(logger, {"project": project_id})
