import logging
import threading
from typing import Optional

from skymosaic.compute.client import ComputeClient
from skymosaic.config import data_dir, get_config, outputs_dir
from skymosaic.core.event_bus import EventBus
from skymosaic.core.exceptions import ComputeServiceError
from skymosaic.core.locks import ProjectLocks
from skymosaic.core.models import ProjectStatus, TileZoomRange
from skymosaic.core.orchestrator import Orchestrator
from skymosaic.core.store import JsonProjectStore, ProjectStore
from skymosaic.geospatial.coverage import get_tile_zoom_range
from skymosaic.geospatial.output_names import TILES_DIR

logger = logging.getLogger(__name__)


class ProcessingController:
    """
    Starts the orchestrator in a worker thread per project and answers status queries.
    The caller is never blocked on processing; everything the worker needs is in the store.
    """

    def __init__(
        self,
        store: Optional[ProjectStore] = None,
        client: Optional[ComputeClient] = None,
        cfg: Optional[dict] = None,
        locks: Optional[ProjectLocks] = None,
        event_bus: Optional[EventBus] = None,
        orchestrator: Optional[Orchestrator] = None,
    ):
        self.cfg = cfg if cfg is not None else get_config()
        self.store = store or JsonProjectStore(data_dir(self.cfg) / "projects")
        self.client = client or ComputeClient.from_config(self.cfg)
        self.locks = locks or ProjectLocks()
        self.event_bus = event_bus or EventBus()
        self.orchestrator = orchestrator or Orchestrator(
            self.store, self.client, self.cfg, event_bus=self.event_bus
        )
        self._threads: dict[str, threading.Thread] = {}
        self._lock = threading.Lock()

    def _run_worker(self, project_id: str) -> None:
        try:
            self.orchestrator.execute(project_id)
        except Exception as e:
            logger.exception("Worker for project %s crashed: %s", project_id, e)
        finally:
            self.locks.release(project_id)
            with self._lock:
                if self._threads.get(project_id) is threading.current_thread():
                    del self._threads[project_id]

    def start_processing(self, project_id: str) -> threading.Thread:
        """
        Validate and claim the project, then process it in the background.
        Raises ProjectNotFound, ValidationError, InvalidTransition or ProcessingAlreadyActive
        synchronously; after that, the outcome is only visible through the store.
        """
        self.locks.acquire(project_id)
        try:
            self.orchestrator.prepare(project_id)
        except Exception:
            self.locks.release(project_id)
            raise

        worker = threading.Thread(
            target=self._run_worker,
            args=(project_id,),
            name=f"skymosaic-{project_id}",
            daemon=True,
        )
        with self._lock:
            self._threads[project_id] = worker
        worker.start()
        logger.info("Started processing for project %s", project_id)
        return worker

    def wait(self, project_id: Optional[str] = None, timeout: Optional[float] = None) -> None:
        """Join the worker for project_id, or all workers."""
        with self._lock:
            if project_id is not None:
                threads = [self._threads[project_id]] if project_id in self._threads else []
            else:
                threads = list(self._threads.values())
        for t in threads:
            t.join(timeout)

    def is_running(self, project_id: str) -> bool:
        return self.locks.is_held(project_id)

    def get_tile_zoom_range(self, project_id: str) -> Optional[TileZoomRange]:
        """Zoom coverage of the project's tile pyramid; None unless the project is ready."""
        project = self.store.get(project_id)
        if ProjectStatus(project.status) != ProjectStatus.READY:
            return None
        threshold = (self.cfg.get("tiles") or {}).get("size_threshold", 2048)
        return get_tile_zoom_range(outputs_dir(project_id, self.cfg) / TILES_DIR, threshold)

    def get_processing_status(self, project_id: str) -> dict:
        """{status, progress, stage[, error]} for display."""
        project = self.store.get(project_id)
        status = ProjectStatus(project.status)

        if status == ProjectStatus.READY:
            return {"status": status.value, "progress": 100, "stage": "Complete"}
        if status == ProjectStatus.FAILED:
            response = {"status": status.value, "progress": 0, "stage": "Failed"}
            if project.error_message:
                response["error"] = project.error_message
            return response
        if status == ProjectStatus.PROCESSING and project.compute_task_id:
            try:
                task = self.client.get_status(project.compute_task_id)
            except ComputeServiceError as e:
                logger.warning("Status check for project %s failed: %s", project_id, e)
                return {"status": status.value, "progress": 0, "stage": "Checking..."}
            return {"status": status.value, "progress": task.progress, "stage": task.label}
        if status == ProjectStatus.UPLOADING:
            return {"status": status.value, "progress": 0, "stage": "Uploading images"}
        return {"status": status.value, "progress": 0, "stage": "Created"}

    def cancel_task(self, project_id: str) -> None:
        """Ask the compute service to cancel the project's task. The poll loop then fails the project."""
        project = self.store.get(project_id)
        if not project.compute_task_id:
            raise ComputeServiceError(f"Project {project_id} has no compute task")
        self.client.cancel(project.compute_task_id)

    def remove_task(self, project_id: str) -> None:
        project = self.store.get(project_id)
        if not project.compute_task_id:
            raise ComputeServiceError(f"Project {project_id} has no compute task")
        self.client.remove(project.compute_task_id)
