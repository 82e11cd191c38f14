"""
Compute service client: NodeODM-compatible task lifecycle API over requests.
One HTTP request per call. Failures surface as ComputeServiceError; nothing here retries.
"""
import json
import os
from dataclasses import dataclass
from enum import IntEnum
from pathlib import Path
from typing import Optional

import requests

from skymosaic.core.exceptions import ComputeServiceError
from skymosaic.core.logger import get_logger

from .assets import normalize_asset_list

log = get_logger("compute")

_CHUNK_SIZE = 1024 * 1024
_TEXT_TYPES = ("application/json", "text/", "application/xml", "application/problem+json")
_TEXT_PREFIXES = (b"{", b"[", b"<")


class TaskStatusCode(IntEnum):
    QUEUED = 10
    RUNNING = 20
    FAILED = 30
    COMPLETED = 40
    CANCELED = 50


STAGE_LABELS = {
    TaskStatusCode.QUEUED: "Queued",
    TaskStatusCode.RUNNING: "Processing",
    TaskStatusCode.FAILED: "Failed",
    TaskStatusCode.COMPLETED: "Completed",
    TaskStatusCode.CANCELED: "Canceled",
}


@dataclass(frozen=True)
class TaskStatus:
    code: int
    progress: int = 0

    @property
    def known(self) -> bool:
        return self.code in {c.value for c in TaskStatusCode}

    @property
    def label(self) -> str:
        # Unknown codes display as still running
        if not self.known:
            return STAGE_LABELS[TaskStatusCode.RUNNING]
        return STAGE_LABELS[TaskStatusCode(self.code)]


def _looks_textual(content_type: str, head: bytes) -> bool:
    ct = (content_type or "").lower()
    if any(t in ct for t in _TEXT_TYPES):
        return True
    return head.lstrip()[:1] in _TEXT_PREFIXES


def _excerpt(data: bytes | str, limit: int = 300) -> str:
    if isinstance(data, bytes):
        data = data.decode("utf-8", errors="replace")
    data = " ".join(data.split())
    return data[:limit] + ("..." if len(data) > limit else "")


class ComputeClient:
    """Talks to the compute service. `session` is injectable for tests."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 30,
        upload_timeout: float = 120,
        download_timeout: float = 600,
        min_download_bytes: int = 1024,
        default_options: Optional[dict] = None,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.upload_timeout = upload_timeout
        self.download_timeout = download_timeout
        self.min_download_bytes = min_download_bytes
        self.default_options = dict(default_options or {})
        self.session = session or requests.Session()

    @classmethod
    def from_config(cls, cfg: dict, session: Optional[requests.Session] = None) -> "ComputeClient":
        c = cfg["compute"]
        return cls(
            c["url"],
            timeout=c.get("timeout", 30),
            upload_timeout=c.get("upload_timeout", 120),
            download_timeout=c.get("download_timeout", 600),
            min_download_bytes=c.get("min_download_bytes", 1024),
            default_options=c.get("commit_options"),
            session=session,
        )

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def _request(self, method: str, path: str, *, timeout: Optional[float] = None, **kwargs) -> requests.Response:
        url = self._url(path)
        try:
            resp = self.session.request(method, url, timeout=timeout or self.timeout, **kwargs)
        except requests.exceptions.Timeout as e:
            raise ComputeServiceError(f"{method} {url} timed out: {e}") from e
        except requests.exceptions.RequestException as e:
            raise ComputeServiceError(f"{method} {url} failed: {e}") from e
        if resp.status_code >= 400:
            raise ComputeServiceError(
                f"{method} {url} returned HTTP {resp.status_code}: {_excerpt(resp.text)}"
            )
        return resp

    def _json(self, resp: requests.Response):
        try:
            return resp.json()
        except ValueError as e:
            raise ComputeServiceError(f"Invalid JSON from {resp.url}: {_excerpt(resp.text)}") from e

    def health(self) -> bool:
        """True if the service answers GET /info with 200. Never raises."""
        try:
            resp = self.session.get(self._url("info"), timeout=self.timeout)
            return resp.status_code == 200
        except requests.exceptions.RequestException:
            return False

    def create_task(self) -> str:
        data = self._json(self._request("POST", "task/new/init"))
        task_id = data.get("uuid") if isinstance(data, dict) else None
        if not task_id:
            error = data.get("error") if isinstance(data, dict) else None
            raise ComputeServiceError(f"Task creation returned no uuid: {error or data!r}")
        log.info("Created compute task %s", task_id)
        return task_id

    def upload_image(self, task_id: str, image_path) -> None:
        image_path = Path(image_path)
        with open(image_path, "rb") as fh:
            self._request(
                "POST",
                f"task/new/upload/{task_id}",
                files={"images": (image_path.name, fh)},
                timeout=self.upload_timeout,
            )

    def commit_task(self, task_id: str, options: Optional[dict] = None) -> None:
        merged = dict(self.default_options)
        merged.update(options or {})
        payload = [{"name": k, "value": v} for k, v in merged.items()]
        self._request("POST", f"task/new/commit/{task_id}", data={"options": json.dumps(payload)})
        log.info("Committed compute task %s with %d options", task_id, len(payload))

    def get_status(self, task_id: str) -> TaskStatus:
        data = self._json(self._request("GET", f"task/{task_id}/info"))
        if not isinstance(data, dict):
            raise ComputeServiceError(f"Unexpected task info for {task_id}: {data!r}")
        status = data.get("status")
        code = status.get("code") if isinstance(status, dict) else status
        if code is None:
            raise ComputeServiceError(f"Task info for {task_id} has no status code: {_excerpt(str(data))}")
        return TaskStatus(code=int(code), progress=int(data.get("progress") or 0))

    def list_assets(self, task_id: str) -> list[str]:
        """Asset names the task reports; [] when the response shape is not recognized."""
        data = self._json(self._request("GET", f"task/{task_id}/info"))
        return normalize_asset_list(data)

    def download_asset(self, task_id: str, asset_name: str, dest_path) -> Path:
        """
        Stream an asset to dest_path. Text/JSON bodies, HTTP errors, and undersized files are
        rejected; dest_path only ever appears complete (written as .part, then renamed).
        """
        dest_path = Path(dest_path)
        dest_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = dest_path.with_name(dest_path.name + ".part")
        url = self._url(f"task/{task_id}/download/{asset_name}")
        try:
            with self.session.get(url, stream=True, timeout=self.download_timeout) as resp:
                if resp.status_code >= 400:
                    raise ComputeServiceError(
                        f"Download of {asset_name} failed with HTTP {resp.status_code}: {_excerpt(resp.content)}"
                    )
                content_type = resp.headers.get("Content-Type", "")
                chunks = resp.iter_content(chunk_size=_CHUNK_SIZE)
                first = b""
                for chunk in chunks:
                    if chunk:
                        first = chunk
                        break
                if _looks_textual(content_type, first):
                    raise ComputeServiceError(
                        f"Download of {asset_name} returned a text response instead of file data: {_excerpt(first)}"
                    )
                written = 0
                with open(tmp_path, "wb") as out:
                    out.write(first)
                    written += len(first)
                    for chunk in chunks:
                        if chunk:
                            out.write(chunk)
                            written += len(chunk)
        except requests.exceptions.RequestException as e:
            tmp_path.unlink(missing_ok=True)
            raise ComputeServiceError(f"Download of {asset_name} failed: {e}") from e
        except Exception:
            tmp_path.unlink(missing_ok=True)
            raise

        if written < self.min_download_bytes:
            tmp_path.unlink(missing_ok=True)
            raise ComputeServiceError(
                f"Download of {asset_name} is too small ({written} bytes, minimum {self.min_download_bytes})"
            )
        os.replace(tmp_path, dest_path)
        log.info("Downloaded %s (%d bytes) -> %s", asset_name, written, dest_path)
        return dest_path

    def cancel(self, task_id: str) -> None:
        self._request("POST", "task/cancel", params={"uuid": task_id})
        log.info("Canceled compute task %s", task_id)

    def remove(self, task_id: str) -> None:
        self._request("POST", "task/remove", params={"uuid": task_id})
        log.info("Removed compute task %s", task_id)
