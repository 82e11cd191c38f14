"""
Project record, status state machine, and the small value types passed between stages.
"""
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Optional


class ProjectStatus(str, Enum):
    CREATED = "created"
    UPLOADING = "uploading"
    PROCESSING = "processing"
    READY = "ready"
    FAILED = "failed"


# Allowed forward transitions; ready and failed are terminal.
TRANSITIONS = {
    ProjectStatus.CREATED: {ProjectStatus.UPLOADING, ProjectStatus.PROCESSING},
    ProjectStatus.UPLOADING: {ProjectStatus.PROCESSING},
    ProjectStatus.PROCESSING: {ProjectStatus.READY, ProjectStatus.FAILED},
    ProjectStatus.READY: set(),
    ProjectStatus.FAILED: set(),
}

STARTABLE = (ProjectStatus.CREATED, ProjectStatus.UPLOADING)


def can_transition(current: ProjectStatus, new: ProjectStatus) -> bool:
    return new in TRANSITIONS[ProjectStatus(current)]


@dataclass(frozen=True)
class Bounds:
    """Axis-aligned rectangle; (x, y) is (lon, lat) once in EPSG:4326."""

    min_x: float
    min_y: float
    max_x: float
    max_y: float

    @classmethod
    def from_points(cls, points) -> "Bounds":
        xs = [p[0] for p in points]
        ys = [p[1] for p in points]
        return cls(min(xs), min(ys), max(xs), max(ys))

    def corners(self) -> list[tuple[float, float]]:
        return [
            (self.min_x, self.min_y),
            (self.max_x, self.min_y),
            (self.max_x, self.max_y),
            (self.min_x, self.max_y),
        ]

    def looks_geographic(self) -> bool:
        """True if the numbers fit a lon/lat box. Heuristic; projected boxes near the origin pass too."""
        return (
            self.min_x >= -180 and self.max_x <= 180
            and self.min_y >= -90 and self.max_y <= 90
        )

    def ring(self) -> list[list[float]]:
        pts = self.corners()
        return [[x, y] for x, y in pts + pts[:1]]

    def to_geojson(self) -> dict:
        return {"type": "Polygon", "coordinates": [self.ring()]}

    def to_wkt(self) -> str:
        coords = ", ".join(f"{x} {y}" for x, y in self.ring())
        return f"POLYGON(({coords}))"

    @classmethod
    def from_geojson(cls, geom: Optional[dict]) -> Optional["Bounds"]:
        if not geom or geom.get("type") != "Polygon":
            return None
        return cls.from_points(geom["coordinates"][0])


@dataclass(frozen=True)
class TileZoomRange:
    min: int
    max: int
    best: int


@dataclass
class Project:
    id: str
    name: str = ""
    status: ProjectStatus = ProjectStatus.CREATED
    image_count: int = 0
    compute_task_id: Optional[str] = None
    orthomosaic_path: Optional[str] = None
    bounds: Optional[dict] = None
    processing_started_at: Optional[str] = None
    processing_completed_at: Optional[str] = None
    error_message: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    extra: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        d = asdict(self)
        d["status"] = ProjectStatus(self.status).value
        return d

    @classmethod
    def from_dict(cls, data: dict) -> "Project":
        known = {k: data[k] for k in cls.__dataclass_fields__ if k in data}
        known["status"] = ProjectStatus(known.get("status", ProjectStatus.CREATED))
        return cls(**known)
