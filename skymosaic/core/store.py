"""
Project record store: one JSON file per project under <data_dir>/projects/.
The orchestrator re-reads records at each stage and never caches them.
transition_status() is the compare-and-set used to claim a project for processing.
"""
import json
import os
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Optional

from .exceptions import InvalidTransition, ProjectNotFound
from .models import Project, ProjectStatus, can_transition


def utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


class ProjectStore:
    """Interface consumed by the orchestrator. Implementations must make each call atomic."""

    def get(self, project_id: str) -> Project:
        raise NotImplementedError

    def update(self, project_id: str, **fields) -> Project:
        raise NotImplementedError

    def transition_status(
        self,
        project_id: str,
        expected: Iterable[ProjectStatus],
        new: ProjectStatus,
        **fields,
    ) -> Project:
        raise NotImplementedError


class JsonProjectStore(ProjectStore):
    """File-backed store; a process-wide lock serializes read-modify-write cycles."""

    def __init__(self, root):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()

    def _path(self, project_id: str) -> Path:
        return self.root / f"{project_id}.json"

    def _read(self, project_id: str) -> Project:
        p = self._path(project_id)
        try:
            with open(p, "r", encoding="utf-8") as f:
                return Project.from_dict(json.load(f))
        except FileNotFoundError:
            raise ProjectNotFound(f"Project not found: {project_id}") from None

    def _write(self, project: Project) -> None:
        p = self._path(project.id)
        tmp = p.with_suffix(".json.tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(project.to_dict(), f, indent=2)
        os.replace(tmp, p)

    def create(self, name: str, project_id: Optional[str] = None) -> Project:
        now = utcnow()
        project = Project(
            id=project_id or str(uuid.uuid4()),
            name=name,
            created_at=now,
            updated_at=now,
        )
        with self._lock:
            if self._path(project.id).exists():
                raise ValueError(f"Project already exists: {project.id}")
            self._write(project)
        return project

    def get(self, project_id: str) -> Project:
        with self._lock:
            return self._read(project_id)

    def list(self) -> list[Project]:
        with self._lock:
            projects = [self._read(p.stem) for p in sorted(self.root.glob("*.json"))]
        return sorted(projects, key=lambda pr: pr.created_at or "", reverse=True)

    def delete(self, project_id: str) -> None:
        with self._lock:
            try:
                self._path(project_id).unlink()
            except FileNotFoundError:
                raise ProjectNotFound(f"Project not found: {project_id}") from None

    def update(self, project_id: str, **fields) -> Project:
        """Set plain fields. Status changes must go through transition_status()."""
        if "status" in fields:
            raise ValueError("use transition_status() to change status")
        with self._lock:
            project = self._read(project_id)
            for k, v in fields.items():
                if k not in Project.__dataclass_fields__:
                    raise AttributeError(f"Unknown project field: {k}")
                setattr(project, k, v)
            project.updated_at = utcnow()
            self._write(project)
            return project

    def transition_status(self, project_id, expected, new, **fields) -> Project:
        """
        Atomically move project to `new` if its current status is in `expected`.
        Raises InvalidTransition otherwise; the record is left untouched.
        """
        new = ProjectStatus(new)
        expected = {ProjectStatus(s) for s in expected}
        with self._lock:
            project = self._read(project_id)
            current = ProjectStatus(project.status)
            if current not in expected or not can_transition(current, new):
                raise InvalidTransition(
                    f"Project {project_id} is {current.value}; cannot move to {new.value}"
                )
            project.status = new
            for k, v in fields.items():
                setattr(project, k, v)
            project.updated_at = utcnow()
            self._write(project)
            return project

    def record_images(self, project_id: str, image_count: int) -> Project:
        """Upload layer hook: store the image count and enter 'uploading' on the first image."""
        with self._lock:
            project = self._read(project_id)
            if project.status == ProjectStatus.CREATED and image_count > 0:
                return self.transition_status(
                    project_id, [ProjectStatus.CREATED], ProjectStatus.UPLOADING, image_count=image_count
                )
            return self.update(project_id, image_count=image_count)
