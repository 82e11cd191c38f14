"""
ComputeClient against a fake requests session: request shapes, error mapping, download guards.
"""
import json

import pytest
import requests

from skymosaic.compute.client import ComputeClient, TaskStatus, TaskStatusCode
from skymosaic.core.exceptions import ComputeServiceError

from conftest import FakeResponse

BINARY = b"II*\x00" + bytes(4096)


@pytest.fixture
def client(session):
    return ComputeClient(
        "http://odm.test/",
        min_download_bytes=1024,
        default_options={"dsm": True, "orthophoto-resolution": 5, "fast-orthophoto": True},
        session=session,
    )


def test_create_task_returns_uuid(client, session):
    session.on("POST", "task/new/init", FakeResponse(200, {"uuid": "abc-123"}))
    assert client.create_task() == "abc-123"


def test_create_task_without_uuid_raises(client, session):
    session.on("POST", "task/new/init", FakeResponse(200, {"error": "busy"}))
    with pytest.raises(ComputeServiceError, match="busy"):
        client.create_task()


def test_http_error_raises(client, session):
    session.on("GET", "task/t1/info", FakeResponse(500, b"internal error"))
    with pytest.raises(ComputeServiceError, match="HTTP 500"):
        client.get_status("t1")


def test_network_error_raises(client, session):
    session.on("POST", "task/new/init", requests.exceptions.ConnectionError("refused"))
    with pytest.raises(ComputeServiceError, match="refused"):
        client.create_task()


def test_upload_uses_images_field(client, session, tmp_path):
    img = tmp_path / "IMG_0001.jpg"
    img.write_bytes(b"\xff\xd8\xff")
    session.on("POST", "task/new/upload/t1", FakeResponse(200, {"success": True}))
    client.upload_image("t1", img)
    method, path, kwargs = session.calls[-1]
    assert (method, path) == ("POST", "task/new/upload/t1")
    assert kwargs["files"]["images"][0] == "IMG_0001.jpg"
    assert kwargs["timeout"] == client.upload_timeout


def test_commit_sends_option_list(client, session):
    session.on("POST", "task/new/commit/t1", FakeResponse(200, {"success": True}))
    client.commit_task("t1", {"dsm": False})
    _, _, kwargs = session.calls[-1]
    options = {o["name"]: o["value"] for o in json.loads(kwargs["data"]["options"])}
    assert options == {"dsm": False, "orthophoto-resolution": 5, "fast-orthophoto": True}


def test_get_status_reads_code_and_progress(client, session):
    session.on("GET", "task/t1/info", FakeResponse(200, {"status": {"code": 20}, "progress": 42.5}))
    status = client.get_status("t1")
    assert status.code == TaskStatusCode.RUNNING
    assert status.progress == 42
    assert status.label == "Processing"


def test_unknown_status_code_reads_as_processing():
    status = TaskStatus(code=99, progress=10)
    assert not status.known
    assert status.label == "Processing"
    assert TaskStatus(code=50).label == "Canceled"


def test_list_assets_normalizes(client, session):
    session.on("GET", "task/t1/info", FakeResponse(200, {"uuid": "t1", "assets": {"orthophoto.tif": {}}}))
    assert client.list_assets("t1") == ["orthophoto.tif"]


def test_download_writes_binary_body(client, session, tmp_path):
    session.on("GET", "task/t1/download/orthophoto.tif",
               FakeResponse(200, BINARY, {"Content-Type": "image/tiff"}))
    dest = tmp_path / "out" / "orthophoto.tif"
    assert client.download_asset("t1", "orthophoto.tif", dest) == dest
    assert dest.read_bytes() == BINARY
    assert not (tmp_path / "out" / "orthophoto.tif.part").exists()
    _, _, kwargs = session.calls[-1]
    assert kwargs["stream"] is True


def test_download_rejects_json_body(client, session, tmp_path):
    body = json.dumps({"error": "Asset not ready"}).encode() + bytes(2048)
    session.on("GET", "task/t1/download/all.zip", FakeResponse(200, body, {"Content-Type": "application/json"}))
    dest = tmp_path / "all.zip"
    with pytest.raises(ComputeServiceError, match="text response"):
        client.download_asset("t1", "all.zip", dest)
    assert not dest.exists()
    assert not (tmp_path / "all.zip.part").exists()


def test_download_rejects_text_without_content_type(client, session, tmp_path):
    body = b"<html><body>502 Bad Gateway</body></html>" + b" " * 2048
    session.on("GET", "task/t1/download/orthophoto.tif", FakeResponse(200, body))
    with pytest.raises(ComputeServiceError):
        client.download_asset("t1", "orthophoto.tif", tmp_path / "orthophoto.tif")
    assert not (tmp_path / "orthophoto.tif").exists()


def test_download_rejects_http_error(client, session, tmp_path):
    session.on("GET", "task/t1/download/orthophoto.tif", FakeResponse(404, b"Not found"))
    with pytest.raises(ComputeServiceError, match="HTTP 404"):
        client.download_asset("t1", "orthophoto.tif", tmp_path / "orthophoto.tif")
    assert not (tmp_path / "orthophoto.tif").exists()


def test_download_rejects_undersized_file(client, session, tmp_path):
    session.on("GET", "task/t1/download/orthophoto.tif",
               FakeResponse(200, b"II*\x00" + bytes(100), {"Content-Type": "image/tiff"}))
    with pytest.raises(ComputeServiceError, match="too small"):
        client.download_asset("t1", "orthophoto.tif", tmp_path / "orthophoto.tif")
    assert list(tmp_path.iterdir()) == []


def test_cancel_and_remove_pass_uuid(client, session):
    session.on("POST", "task/cancel", FakeResponse(200, {"success": True}))
    session.on("POST", "task/remove", FakeResponse(200, {"success": True}))
    client.cancel("t1")
    client.remove("t1")
    assert [c[2]["params"] for c in session.calls] == [{"uuid": "t1"}, {"uuid": "t1"}]


def test_health(client, session):
    assert client.health() is False
    session.on("GET", "info", FakeResponse(200, {"version": "2.0"}))
    assert client.health() is True


def test_from_config(cfg, session):
    c = ComputeClient.from_config(cfg, session=session)
    assert c.base_url == "http://localhost:3000"
    assert c.default_options["orthophoto-resolution"] == 5
