"""
Pytest configuration and shared fixtures.

Every test gets an isolated data dir (SKYMOSAIC_DATA_DIR) and a fresh config cache.
Compute service traffic goes through FakeSession / FakeComputeClient; nothing touches the network.
Raster inspection goes through fake_gdalinfo unless a test needs real GDAL.
"""
import json
from pathlib import Path
from unittest import mock

import pytest
from pyproj import CRS

from skymosaic.compute.client import TaskStatus
from skymosaic.config import load_config, reset_config
from skymosaic.core.exceptions import ComputeServiceError
from skymosaic.core.store import JsonProjectStore

_DEPLOY_ENV = (
    "NODEODM_URL",
    "ENABLE_COG",
    "GDAL_TRANSLATE",
    "ENABLE_TILES",
    "GDAL2TILES",
    "GDALINFO",
    "TILE_ZOOM_RANGE",
    "SKYMOSAIC_CONFIG",
)


@pytest.fixture
def cfg(tmp_path, monkeypatch):
    """Config rooted at tmp_path/data; deployment env vars cleared."""
    for name in _DEPLOY_ENV:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("SKYMOSAIC_DATA_DIR", str(tmp_path / "data"))
    reset_config()
    config = load_config()
    config["processing"]["poll_interval"] = 0
    yield config
    reset_config()


@pytest.fixture
def store(cfg, tmp_path):
    return JsonProjectStore(tmp_path / "data" / "projects")


def add_images(cfg, project_id, count, ext=".jpg"):
    from skymosaic.config import uploads_dir

    folder = uploads_dir(project_id, cfg)
    folder.mkdir(parents=True, exist_ok=True)
    paths = []
    for n in range(count):
        p = folder / f"IMG_{n:04d}{ext}"
        p.write_bytes(b"\xff\xd8\xff" + bytes(64))
        paths.append(p)
    return paths


# ---------------------------------------------------------------------------
# HTTP fakes for ComputeClient
# ---------------------------------------------------------------------------


class FakeResponse:
    def __init__(self, status_code=200, body=b"", headers=None, url="http://odm.test/x"):
        if isinstance(body, (dict, list)):
            body = json.dumps(body).encode()
            headers = {"Content-Type": "application/json", **(headers or {})}
        self.status_code = status_code
        self.content = body
        self.headers = headers or {}
        self.url = url

    @property
    def text(self):
        return self.content.decode("utf-8", errors="replace")

    def json(self):
        return json.loads(self.content.decode())

    def iter_content(self, chunk_size=1):
        for i in range(0, len(self.content), chunk_size or 1):
            yield self.content[i:i + chunk_size]

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


class FakeSession:
    """Routes (method, path) -> FakeResponse and records every call."""

    def __init__(self, base_url="http://odm.test"):
        self.base_url = base_url
        self.routes = {}
        self.calls = []

    def on(self, method, path, response):
        self.routes[(method, path)] = response
        return self

    def _respond(self, method, url, kwargs):
        path = url[len(self.base_url) + 1:]
        self.calls.append((method, path, kwargs))
        response = self.routes.get((method, path))
        if response is None:
            return FakeResponse(404, b"not found")
        if isinstance(response, Exception):
            raise response
        return response

    def request(self, method, url, **kwargs):
        return self._respond(method, url, kwargs)

    def get(self, url, **kwargs):
        return self._respond("GET", url, kwargs)


@pytest.fixture
def session():
    return FakeSession()


# ---------------------------------------------------------------------------
# Compute client fake for orchestrator / controller tests
# ---------------------------------------------------------------------------


class FakeComputeClient:
    """
    In-memory compute service. `statuses` is consumed one per poll; `assets` maps
    asset name -> bytes (missing names fail like an HTTP 404).
    """

    base_url = "http://odm.test"

    def __init__(self, statuses=(), assets=None, reported=None):
        self.statuses = list(statuses)
        self.assets = dict(assets or {})
        self.reported = list(reported or [])
        self.calls = []
        self.uploaded = []

    def create_task(self):
        self.calls.append(("create_task",))
        return "task-1"

    def upload_image(self, task_id, path):
        self.calls.append(("upload_image", task_id, Path(path).name))
        self.uploaded.append(Path(path).name)

    def commit_task(self, task_id, options=None):
        self.calls.append(("commit_task", task_id))

    def get_status(self, task_id):
        self.calls.append(("get_status", task_id))
        if not self.statuses:
            raise ComputeServiceError("no more statuses")
        code = self.statuses.pop(0)
        if isinstance(code, Exception):
            raise code
        return TaskStatus(code=code, progress=100 if code == 40 else 50)

    def list_assets(self, task_id):
        self.calls.append(("list_assets", task_id))
        return list(self.reported)

    def download_asset(self, task_id, name, dest):
        self.calls.append(("download_asset", task_id, name))
        if name not in self.assets:
            raise ComputeServiceError(f"HTTP 404 for {name}")
        dest = Path(dest)
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_bytes(self.assets[name])
        return dest

    def cancel(self, task_id):
        self.calls.append(("cancel", task_id))

    def remove(self, task_id):
        self.calls.append(("remove", task_id))

    def downloads(self):
        return [c[2] for c in self.calls if c[0] == "download_asset"]


# ---------------------------------------------------------------------------
# gdalinfo -json fakes
# ---------------------------------------------------------------------------

TIFF_MAGIC = b"II*\x00"
UTM_TRANSFORM = (500000.0, 1.0, 0.0, 5000000.0, 0.0, -1.0)


def gdalinfo_json(width=100, height=50, geotransform=None, epsg=None, bands=4, data_type="Byte", corners=True):
    """Document shaped like `gdalinfo -json` output for a GTiff."""
    info = {
        "description": "orthophoto.tif",
        "driverShortName": "GTiff",
        "size": [width, height],
        "coordinateSystem": {"wkt": CRS.from_epsg(epsg).to_wkt() if epsg is not None else ""},
        "bands": [{"band": n + 1, "block": [width, 1], "type": data_type} for n in range(bands)],
    }
    if geotransform is not None:
        info["geoTransform"] = list(geotransform)
        if corners:
            x0, dx, _rx, y0, _ry, dy = geotransform
            x1, y1 = x0 + width * dx, y0 + height * dy
            info["cornerCoordinates"] = {
                "upperLeft": [x0, y0],
                "lowerLeft": [x0, y1],
                "lowerRight": [x1, y1],
                "upperRight": [x1, y0],
                "center": [(x0 + x1) / 2, (y0 + y1) / 2],
            }
    return info


def utm_gdalinfo():
    """100x50 px, 1 m pixels, UTM 33N near 45N 15E, RGBA."""
    return gdalinfo_json(geotransform=UTM_TRANSFORM, epsg=32633)


def ortho_bytes():
    """Opaque orthophoto payload that fake_gdalinfo describes as utm_gdalinfo()."""
    return TIFF_MAGIC + bytes(4096)


@pytest.fixture
def fake_gdalinfo():
    """gdalinfo stand-in: TIFF-magic files are the UTM raster, anything else is unreadable."""
    from skymosaic.geospatial import georef

    def describe(path, gdalinfo="gdalinfo", timeout=30):
        if Path(path).read_bytes()[:4] != TIFF_MAGIC:
            return None
        return utm_gdalinfo()

    with mock.patch.object(georef, "_gdalinfo_json", side_effect=describe) as fake:
        yield fake
