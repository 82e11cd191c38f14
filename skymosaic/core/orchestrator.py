"""
Orchestrator: drives one project from uploaded images to a tiled, georeferenced orthomosaic.
Flow: prepare (validate + claim) -> create task -> upload -> commit -> wait ->
download -> optimize -> tile -> georeference -> ready.
Any exception inside execute() lands the project in 'failed' with the exception text.
State lives only in the store; every stage re-reads what it needs.
"""
import time
from pathlib import Path
from typing import Callable, Optional

from skymosaic.compute.assets import download_orthomosaic
from skymosaic.compute.client import TaskStatusCode
from skymosaic.config import get_config, outputs_dir, uploads_dir
from skymosaic.geospatial.cog import ensure_cog
from skymosaic.geospatial.georef import read_raster_info
from skymosaic.geospatial.output_names import ORTHOPHOTO_TIF, TILES_DIR
from skymosaic.geospatial.tiles import generate_tiles
from skymosaic.utils.file_utils import list_images

from . import event_bus as events
from .exceptions import InvalidTransition, ProcessingTimeout, TaskFailedError, ValidationError
from .logger import get_logger, get_project_logger
from .models import STARTABLE, ProjectStatus
from .store import ProjectStore, utcnow


class Orchestrator:
    def __init__(
        self,
        store: ProjectStore,
        client,
        cfg: Optional[dict] = None,
        event_bus: Optional[events.EventBus] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        self.client = client
        self.cfg = cfg if cfg is not None else get_config()
        self.event_bus = event_bus or events.EventBus()
        self._sleep = sleep
        self._clock = clock
        self._log = get_logger("orchestrator")

        processing = self.cfg.get("processing") or {}
        self.poll_interval = float(processing.get("poll_interval", 10))
        self.max_poll_time = float(processing.get("max_poll_time", 3 * 60 * 60))
        self.min_images = int(processing.get("min_images", 2))

    def _emit(self, event_name: str, **payload):
        self.event_bus.emit(event_name, payload)

    def images_for(self, project_id: str) -> list[Path]:
        return list_images(uploads_dir(project_id, self.cfg), self.cfg.get("image_extensions"))

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def prepare(self, project_id: str) -> list[Path]:
        """
        Validate and claim the project for processing. Raises before anything remote happens:
        ProjectNotFound, ValidationError (too few images), InvalidTransition (not startable).
        """
        project = self.store.get(project_id)
        if ProjectStatus(project.status) not in STARTABLE:
            raise InvalidTransition(
                f"Project {project_id} is {ProjectStatus(project.status).value}; "
                "processing can only start from created or uploading"
            )
        images = self.images_for(project_id)
        if len(images) < self.min_images:
            raise ValidationError(f"At least {self.min_images} images are required (found {len(images)})")

        self.store.transition_status(
            project_id,
            STARTABLE,
            ProjectStatus.PROCESSING,
            processing_started_at=utcnow(),
            processing_completed_at=None,
            error_message=None,
            image_count=len(images),
        )
        return images

    def execute(self, project_id: str) -> ProjectStatus:
        """
        Background unit of work for a project already claimed by prepare().
        Returns the terminal status; never raises.
        """
        log = get_project_logger(self._log, project_id)
        try:
            self._process(project_id, log)
        except Exception as e:
            message = str(e) or e.__class__.__name__
            log.error("Processing failed: %s", message)
            self._emit(events.PIPELINE_ERROR, project_id=project_id, error=message)
            try:
                self.store.transition_status(
                    project_id, [ProjectStatus.PROCESSING], ProjectStatus.FAILED, error_message=message
                )
            except InvalidTransition as te:
                log.error("Could not record failure: %s", te)
            return ProjectStatus.FAILED
        self._emit(events.PIPELINE_FINISHED, project_id=project_id)
        return ProjectStatus.READY

    def run(self, project_id: str) -> ProjectStatus:
        """prepare() + execute() in the calling thread."""
        self.prepare(project_id)
        return self.execute(project_id)

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _process(self, project_id: str, log):
        images = self.images_for(project_id)
        if len(images) < self.min_images:
            raise ValidationError(f"At least {self.min_images} images are required (found {len(images)})")
        log.info("Starting processing with %d images", len(images))

        self._emit(events.STAGE_STARTED, project_id=project_id, stage="upload")
        task_id = self.client.create_task()
        self.store.update(project_id, compute_task_id=task_id)
        log.info("Created compute task %s", task_id)

        for i, image in enumerate(images):
            self.client.upload_image(task_id, image)
            log.info("Uploaded image %d/%d: %s", i + 1, len(images), image.name)
        self._emit(events.STAGE_COMPLETED, project_id=project_id, stage="upload")

        self.client.commit_task(task_id)
        log.info("Committed task %s, processing started", task_id)

        self._emit(events.STAGE_STARTED, project_id=project_id, stage="reconstruction")
        self._wait_for_task(project_id, task_id, log)
        self._emit(events.STAGE_COMPLETED, project_id=project_id, stage="reconstruction")

        self._handle_completion(project_id, task_id, log)

    def _wait_for_task(self, project_id: str, task_id: str, log) -> None:
        start = self._clock()
        while self._clock() - start < self.max_poll_time:
            self._sleep(self.poll_interval)
            status = self.client.get_status(task_id)
            log.info("Task %s status: %s (%s), progress: %d%%", task_id, status.code, status.label, status.progress)
            self._emit(events.TASK_PROGRESS, project_id=project_id, code=status.code, progress=status.progress)

            if status.code == TaskStatusCode.COMPLETED:
                return
            if status.code == TaskStatusCode.FAILED:
                raise TaskFailedError("Compute task processing failed")
            if status.code == TaskStatusCode.CANCELED:
                raise TaskFailedError("Compute task processing was canceled")
        raise ProcessingTimeout("Processing timed out")

    def _handle_completion(self, project_id: str, task_id: str, log) -> None:
        out_dir = outputs_dir(project_id, self.cfg)
        out_dir.mkdir(parents=True, exist_ok=True)

        self._emit(events.STAGE_STARTED, project_id=project_id, stage="download")
        ortho_path = download_orthomosaic(self.client, task_id, out_dir / ORTHOPHOTO_TIF)
        log.info("Downloaded orthomosaic to %s", ortho_path)

        self._emit(events.STAGE_STARTED, project_id=project_id, stage="optimize")
        final_path = ensure_cog(ortho_path, self.cfg).path

        self._emit(events.STAGE_STARTED, project_id=project_id, stage="tiles")
        if generate_tiles(final_path, out_dir / TILES_DIR, self.cfg):
            log.info("Generated tiles at %s", out_dir / TILES_DIR)

        self._emit(events.STAGE_STARTED, project_id=project_id, stage="georeference")
        bounds = self._georeference(final_path, log)

        self.store.transition_status(
            project_id,
            [ProjectStatus.PROCESSING],
            ProjectStatus.READY,
            orthomosaic_path=str(final_path),
            bounds=bounds.to_geojson() if bounds is not None else None,
            processing_completed_at=utcnow(),
        )
        log.info("Processing complete")

    def _georeference(self, path: Path, log):
        """WGS84 bounds or None; a raster we cannot read does not fail the project."""
        try:
            info = read_raster_info(path, self.cfg)
        except (OSError, ValueError) as e:
            log.error("Failed to extract bounds from %s: %s", path, e)
            return None
        if info.crs_uncertain:
            log.warning("Stored bounds for %s are a best guess; no usable CRS", path.name)
        return info.bounds_wgs84
