"""
Subprocess guard for external raster tools (gdal_translate, gdal2tiles.py).
Exit status is the only contract: a missing binary raises ToolNotFoundError,
a non-zero exit or timeout raises ToolExecutionError.
"""
import logging
import subprocess
import threading
import time
from collections import deque
from pathlib import Path

from .exceptions import ToolExecutionError, ToolNotFoundError

# Lines of tool output kept for the error message
_TAIL_LINES = 20


def run_process_streaming(
    command: list,
    *,
    cwd: Path | str | None = None,
    timeout: float | None = None,
    logger: logging.Logger | None = None,
) -> tuple[int, list[str]]:
    """
    Run command with Popen; stream stdout/stderr (combined) line-by-line to logger.
    Returns (exit code, last output lines). Raises FileNotFoundError when the binary is missing
    and subprocess.TimeoutExpired on timeout.
    """
    proc = subprocess.Popen(
        command,
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        text=True,
        cwd=cwd,
    )
    tail: deque[str] = deque(maxlen=_TAIL_LINES)
    read_done = threading.Event()

    def read_output():
        try:
            for line in proc.stdout:
                line = line.rstrip()
                if not line:
                    continue
                tail.append(line)
                if logger is not None:
                    logger.debug(line)
        finally:
            read_done.set()

    t = threading.Thread(target=read_output, daemon=True)
    t.start()
    try:
        proc.wait(timeout=timeout)
    except subprocess.TimeoutExpired:
        proc.kill()
        proc.wait()
        raise
    finally:
        read_done.wait(timeout=5)
    return proc.returncode, list(tail)


def run_tool(
    command: list,
    stage_name: str,
    *,
    cwd: Path | str | None = None,
    timeout: float | None = None,
    logger: logging.Logger | None = None,
) -> None:
    """
    Run an external tool once. No retry: callers decide whether a failure is fatal.
    """
    tool = str(command[0])
    start = time.time()
    try:
        returncode, tail = run_process_streaming(
            command,
            cwd=cwd,
            timeout=timeout,
            logger=logger,
        )
    except FileNotFoundError as e:
        raise ToolNotFoundError(
            f"{stage_name}: {tool} not found. Install GDAL and ensure {tool} is on PATH."
        ) from e
    except subprocess.TimeoutExpired as e:
        raise ToolExecutionError(f"{stage_name}: {tool} timed out after {timeout}s") from e

    duration = time.time() - start
    if logger is not None:
        logger.debug("%s finished in %.1fs (exit %s)", stage_name, duration, returncode)
    if returncode != 0:
        detail = ("\n" + "\n".join(tail)) if tail else ""
        raise ToolExecutionError(f"{tool} exited with code {returncode}{detail}")
