"""
External raster tools: subprocess guard, COG conversion (optional) and tile generation (fatal).
"""
from unittest import mock

import pytest

from skymosaic.core.exceptions import ToolExecutionError, ToolNotFoundError
from skymosaic.core.wrapper import run_process_streaming, run_tool
from skymosaic.geospatial import cog, tiles
from skymosaic.geospatial.cog import build_translate_command, ensure_cog
from skymosaic.geospatial.tiles import build_tiles_command, generate_tiles
from skymosaic.utils.dependency_check import require_raster_tools, required_tools


def test_run_tool_success():
    run_tool(["true"], "noop", timeout=10)


def test_run_tool_nonzero_exit():
    with pytest.raises(ToolExecutionError, match="exited with code 1"):
        run_tool(["false"], "fail", timeout=10)


def test_run_tool_missing_binary():
    with pytest.raises(ToolNotFoundError, match="not found"):
        run_tool(["skymosaic-no-such-tool"], "missing", timeout=10)


def test_run_process_streaming_keeps_output_tail():
    logger = mock.Mock()
    code, tail = run_process_streaming(["sh", "-c", "echo one; echo; echo two; exit 3"], timeout=10, logger=logger)
    assert code == 3
    assert tail == ["one", "two"]
    assert [c.args[0] for c in logger.debug.call_args_list] == ["one", "two"]


def test_run_tool_output_only_goes_to_logger():
    with pytest.raises(TypeError):
        run_tool(["true"], "noop", timeout=10, line_callback=print)


def test_translate_command():
    cmd = build_translate_command("gdal_translate", "in.tif", "in.cog.tif")
    assert cmd == [
        "gdal_translate", "-of", "COG",
        "-co", "COMPRESS=DEFLATE", "-co", "BIGTIFF=IF_SAFER",
        "in.tif", "in.cog.tif",
    ]


def test_cog_disabled_is_noop(cfg, tmp_path):
    src = tmp_path / "orthophoto.tif"
    src.write_bytes(b"raster")
    with mock.patch.object(cog, "run_tool") as run:
        result = ensure_cog(src, cfg)
    run.assert_not_called()
    assert result.path == src and not result.converted


def test_cog_replaces_original(cfg, tmp_path):
    cfg["cog"]["enabled"] = True
    src = tmp_path / "orthophoto.tif"
    src.write_bytes(b"raster")

    def fake_translate(command, stage, **kwargs):
        (tmp_path / "orthophoto.cog.tif").write_bytes(b"cog raster")

    with mock.patch.object(cog, "run_tool", side_effect=fake_translate):
        result = ensure_cog(src, cfg)
    assert result.converted
    assert result.path == src
    assert src.read_bytes() == b"cog raster"
    assert not (tmp_path / "orthophoto.cog.tif").exists()


def test_cog_failure_keeps_original(cfg, tmp_path):
    cfg["cog"]["enabled"] = True
    src = tmp_path / "orthophoto.tif"
    src.write_bytes(b"raster")

    def failing_translate(command, stage, **kwargs):
        (tmp_path / "orthophoto.cog.tif").write_bytes(b"partial")
        raise ToolExecutionError("gdal_translate exited with code 1")

    with mock.patch.object(cog, "run_tool", side_effect=failing_translate):
        result = ensure_cog(src, cfg)
    assert not result.converted
    assert src.read_bytes() == b"raster"
    assert not (tmp_path / "orthophoto.cog.tif").exists()


def test_cog_missing_tool_keeps_original(cfg, tmp_path):
    cfg["cog"]["enabled"] = True
    cfg["cog"]["gdal_translate"] = "skymosaic-no-such-tool"
    src = tmp_path / "orthophoto.tif"
    src.write_bytes(b"raster")
    result = ensure_cog(src, cfg)
    assert not result.converted
    assert src.read_bytes() == b"raster"


def test_tiles_command():
    cmd = build_tiles_command("gdal2tiles.py", "ortho.tif", "tiles", "14-22")
    assert cmd == ["gdal2tiles.py", "-p", "mercator", "-z", "14-22", "--xyz", "-w", "none", "ortho.tif", "tiles"]


def test_tiles_rebuilds_directory(cfg, tmp_path):
    tiles_dir = tmp_path / "tiles"
    (tiles_dir / "3").mkdir(parents=True)
    (tiles_dir / "3" / "stale.png").write_bytes(b"old")

    with mock.patch.object(tiles, "run_tool") as run:
        assert generate_tiles(tmp_path / "ortho.tif", tiles_dir, cfg) is True
    assert tiles_dir.is_dir()
    assert not (tiles_dir / "3").exists()
    command = run.call_args[0][0]
    assert command[command.index("-z") + 1] == "14-22"


def test_tiles_without_previous_pyramid(cfg, tmp_path):
    tiles_dir = tmp_path / "out" / "tiles"
    with mock.patch.object(tiles, "run_tool") as run:
        assert generate_tiles(tmp_path / "ortho.tif", tiles_dir, cfg) is True
    assert tiles_dir.is_dir()
    run.assert_called_once()


def test_tiles_stale_pyramid_removal_failure_propagates(cfg, tmp_path):
    tiles_dir = tmp_path / "tiles"
    (tiles_dir / "3").mkdir(parents=True)
    (tiles_dir / "3" / "stale.png").write_bytes(b"old")

    with mock.patch.object(tiles.shutil, "rmtree", side_effect=PermissionError("tiles is read-only")), \
            mock.patch.object(tiles, "run_tool") as run:
        with pytest.raises(PermissionError):
            generate_tiles(tmp_path / "ortho.tif", tiles_dir, cfg)
    run.assert_not_called()
    assert (tiles_dir / "3" / "stale.png").exists()


def test_tiles_zoom_range_from_env(cfg, tmp_path, monkeypatch):
    from skymosaic.config import load_config, reset_config

    monkeypatch.setenv("TILE_ZOOM_RANGE", "12-20")
    reset_config()
    config = load_config()
    with mock.patch.object(tiles, "run_tool") as run:
        generate_tiles(tmp_path / "ortho.tif", tmp_path / "tiles", config)
    command = run.call_args[0][0]
    assert command[command.index("-z") + 1] == "12-20"


def test_tiles_disabled(cfg, tmp_path):
    cfg["tiles"]["enabled"] = False
    with mock.patch.object(tiles, "run_tool") as run:
        assert generate_tiles(tmp_path / "ortho.tif", tmp_path / "tiles", cfg) is False
    run.assert_not_called()


def test_tiles_failure_propagates(cfg, tmp_path):
    with mock.patch.object(tiles, "run_tool", side_effect=ToolExecutionError("gdal2tiles.py exited with code 2")):
        with pytest.raises(ToolExecutionError):
            generate_tiles(tmp_path / "ortho.tif", tmp_path / "tiles", cfg)


def test_required_tools_follow_config(cfg):
    assert required_tools(cfg) == ["gdal2tiles.py"]
    cfg["cog"]["enabled"] = True
    cfg["tiles"]["gdal2tiles"] = "skymosaic-no-such-tool"
    assert required_tools(cfg) == ["gdal_translate", "skymosaic-no-such-tool"]
    with pytest.raises(ToolNotFoundError, match="skymosaic-no-such-tool"):
        require_raster_tools(cfg)
