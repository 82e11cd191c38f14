"""
Per-project ownership lease: at most one active pipeline per project id in this process.
"""
import threading

from .exceptions import ProcessingAlreadyActive


class ProjectLocks:
    """Keyed, non-blocking lease registry."""

    def __init__(self) -> None:
        self._held: set[str] = set()
        self._lock = threading.Lock()

    def acquire(self, project_id: str) -> None:
        with self._lock:
            if project_id in self._held:
                raise ProcessingAlreadyActive(f"Project {project_id} is already being processed")
            self._held.add(project_id)

    def release(self, project_id: str) -> None:
        with self._lock:
            self._held.discard(project_id)

    def is_held(self, project_id: str) -> bool:
        with self._lock:
            return project_id in self._held
