"""
CLI entry point. Usage: skymosaic create <name> --images DIR, then skymosaic process <project_id>
Processing runs in the foreground here; the controller's background mode is for embedding services.
"""
import argparse
import json
import logging
import shutil
import sys
from pathlib import Path

from skymosaic.application.controller import ProcessingController
from skymosaic.config import data_dir, load_config, uploads_dir
from skymosaic.core.exceptions import SkyMosaicError
from skymosaic.core.logger import setup_logging
from skymosaic.core.models import ProjectStatus
from skymosaic.core.store import JsonProjectStore
from skymosaic.utils.dependency_check import check_raster_tools
from skymosaic.utils.file_utils import list_images


def _print_event(event_name: str, data) -> None:
    if not isinstance(data, dict):
        return
    if event_name == "stage_started":
        print("STAGE: %s" % data.get("stage"))
    elif event_name == "task_progress":
        print("  progress [%d%%]" % int(data.get("progress") or 0))
    elif event_name == "pipeline_error":
        print("ERROR: %s" % data.get("error"))


def _cmd_create(controller: ProcessingController, cfg: dict, args) -> int:
    store = controller.store
    images = []
    for d in args.images:
        folder = Path(d).resolve()
        if not folder.is_dir():
            print("ERROR: not a directory: %s" % folder)
            return 1
        images.extend(list_images(folder, cfg.get("image_extensions")))

    project = store.create(args.name)
    target = uploads_dir(project.id, cfg)
    target.mkdir(parents=True, exist_ok=True)
    for count, src in enumerate(images, start=1):
        shutil.copy2(src, target / src.name)
        store.record_images(project.id, count)
    print(project.id)
    print("Copied %d images to %s" % (len(images), target))
    return 0


def _cmd_process(controller: ProcessingController, cfg: dict, args) -> int:
    controller.event_bus.subscribe("stage_started", _print_event)
    controller.event_bus.subscribe("task_progress", _print_event)
    controller.event_bus.subscribe("pipeline_error", _print_event)
    status = controller.orchestrator.run(args.project_id)
    project = controller.store.get(args.project_id)
    if status == ProjectStatus.READY:
        print("DONE: %s" % project.orthomosaic_path)
        return 0
    return 1


def _cmd_status(controller: ProcessingController, cfg: dict, args) -> int:
    print(json.dumps(controller.get_processing_status(args.project_id), indent=2))
    return 0


def _cmd_zoom_range(controller: ProcessingController, cfg: dict, args) -> int:
    zr = controller.get_tile_zoom_range(args.project_id)
    if zr is None:
        print("No tiles available")
        return 1
    print(json.dumps({"min": zr.min, "max": zr.max, "best": zr.best}))
    return 0


def _cmd_cancel(controller: ProcessingController, cfg: dict, args) -> int:
    controller.client.cancel(args.task_id)
    return 0


def _cmd_remove(controller: ProcessingController, cfg: dict, args) -> int:
    controller.client.remove(args.task_id)
    return 0


def _cmd_check(controller: ProcessingController, cfg: dict, args) -> int:
    ok = True
    if controller.client.health():
        print("compute service: OK (%s)" % controller.client.base_url)
    else:
        print("compute service: UNREACHABLE (%s)" % controller.client.base_url)
        ok = False
    for tool, (available, msg) in check_raster_tools(cfg).items():
        print("%s: %s" % (tool, msg if available else "MISSING (%s)" % msg))
        ok = ok and available
    return 0 if ok else 1


_COMMANDS = {
    "create": _cmd_create,
    "process": _cmd_process,
    "status": _cmd_status,
    "zoom-range": _cmd_zoom_range,
    "cancel": _cmd_cancel,
    "remove": _cmd_remove,
    "check": _cmd_check,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="skymosaic", description="SkyMosaic: drone images to tiled orthomosaics")
    parser.add_argument("--config", "-c", type=str, default=None, help="Path to YAML config (default: skymosaic/config/default.yaml + SKYMOSAIC_CONFIG)")
    parser.add_argument("--log-level", type=str, default=None, choices=["DEBUG", "INFO", "WARNING", "ERROR"], help="Log level (default: INFO or SKYMOSAIC_LOG_LEVEL)")
    parser.add_argument("--log-dir", type=str, default=None, help="Directory for skymosaic.log (default: SKYMOSAIC_LOG_DIR or console only)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    create = subparsers.add_parser("create", help="Register a project and copy its images")
    create.add_argument("name", type=str, help="Project name")
    create.add_argument("--images", "-i", nargs="+", required=True, help="Folder(s) of images")

    for name, help_text in [
        ("process", "Run the full pipeline for a project (foreground)"),
        ("status", "Show processing status"),
        ("zoom-range", "Show usable tile zoom range of a ready project"),
    ]:
        p = subparsers.add_parser(name, help=help_text)
        p.add_argument("project_id", type=str)

    for name, help_text in [
        ("cancel", "Cancel a compute task"),
        ("remove", "Remove a compute task"),
    ]:
        p = subparsers.add_parser(name, help=help_text)
        p.add_argument("task_id", type=str)

    subparsers.add_parser("check", help="Check compute service and raster tools")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    # Load config first so the store location and tool paths come from YAML (and --config override)
    cfg = load_config(override_path=args.config)

    level = getattr(logging, args.log_level) if args.log_level else None
    setup_logging(level=level, log_dir=args.log_dir)

    controller = ProcessingController(store=JsonProjectStore(data_dir(cfg) / "projects"), cfg=cfg)
    try:
        return _COMMANDS[args.command](controller, cfg, args)
    except SkyMosaicError as e:
        print("ERROR: %s" % e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
