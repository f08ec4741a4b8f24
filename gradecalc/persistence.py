"""
Saving and restoring the workspace through an opaque key-value blob store.

The blob is the JSON form of `Workspace.to_dict()`. Loading never fails: an
absent or malformed blob yields an empty workspace with default settings.
Saving is debounced and fire-and-forget; a failed write is logged and the
in-memory workspace stays authoritative.
"""

from __future__ import annotations

import asyncio
import datetime
import json
import logging
import re
import threading
from pathlib import Path
from typing import Any, Protocol

from .config_schema import get_default_config
from .models import Settings, Workspace

logger = logging.getLogger(__name__)

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


class BlobStore(Protocol):
    def load(self, key: str) -> str | None: ...

    def save(self, key: str, blob: str) -> None: ...


class MemoryBlobStore:
    """Blob store kept in a dict, for tests and throwaway sessions."""

    def __init__(self, initial: dict[str, str] | None = None):
        self.blobs: dict[str, str] = dict(initial or {})

    def load(self, key: str) -> str | None:
        return self.blobs.get(key)

    def save(self, key: str, blob: str) -> None:
        self.blobs[key] = blob


class FileBlobStore:
    """Blob store writing one `<key>.json` file per key inside a directory."""

    def __init__(self, directory: str | Path):
        self.directory = Path(directory)

    def path_for(self, key: str) -> Path:
        return self.directory / f"{_UNSAFE_KEY_CHARS.sub('_', key)}.json"

    def load(self, key: str) -> str | None:
        path = self.path_for(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def save(self, key: str, blob: str) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self.path_for(key)
        tmp_path = path.with_suffix(".tmp")
        tmp_path.write_text(blob, encoding="utf-8")
        tmp_path.replace(path)


def dump_workspace(workspace: Workspace) -> str:
    return json.dumps(workspace.to_dict(), ensure_ascii=False)


def load_workspace(
    blob_store: BlobStore,
    key: str,
    config: dict[str, Any] | None = None
) -> Workspace:
    """
    Restore the workspace saved under `key`.

    Missing optional fields take their defaults one by one. A missing blob,
    unreadable JSON, or a `sheets` field that is not a list all produce an
    empty workspace with default settings.
    """
    config = config or get_default_config()
    default_settings = Settings(**config["settings"])

    try:
        blob = blob_store.load(key)
    except (OSError, UnicodeDecodeError) as e:
        logger.warning(f"Could not read saved state '{key}': {e}")
        blob = None

    if blob is None:
        return Workspace(global_settings=default_settings)

    try:
        data = json.loads(blob)
    except json.JSONDecodeError as e:
        logger.warning(f"Discarding saved state '{key}': invalid JSON ({e})")
        return Workspace(global_settings=default_settings)

    if not isinstance(data, dict) or not isinstance(data.get("sheets"), list):
        logger.warning(f"Discarding saved state '{key}': 'sheets' is missing or not a list")
        return Workspace(global_settings=default_settings)

    workspace = Workspace.from_dict(data, config)
    if not workspace.global_settings.is_valid():
        logger.warning("Saved grade settings are inconsistent, using defaults")
        workspace.global_settings = default_settings

    logger.info(f"Loaded {len(workspace.sheets)} sheet(s) from saved state '{key}'")
    return workspace


class DebouncedSaver:
    """
    Collapse bursts of workspace changes into a single write.

    Each `schedule()` snapshots the workspace, cancels the pending write and
    starts a new `delay` second wait. Inside a running asyncio loop the wait is
    a `loop.call_later` handle; elsewhere (Streamlit reruns, the CLI) it is a
    restartable `threading.Timer`. `flush()` writes the pending snapshot at
    once, for callers that exit before the timer fires.
    """

    def __init__(self, blob_store: BlobStore, key: str, delay: float = 0.5):
        self._blob_store = blob_store
        self._key = key
        self._delay = delay
        self._lock = threading.RLock()
        self._handle: asyncio.TimerHandle | None = None
        self._timer: threading.Timer | None = None
        self._pending: str | None = None
        self.last_saved: datetime.datetime | None = None
        self.last_error: Exception | None = None

    @property
    def is_saving(self) -> bool:
        return self._pending is not None

    def _cancel_wait(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def schedule(self, workspace: Workspace) -> None:
        with self._lock:
            self._pending = dump_workspace(workspace)
            self._cancel_wait()

            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                loop = None

            if loop is not None:
                self._handle = loop.call_later(self._delay, self.flush)
            else:
                self._timer = threading.Timer(self._delay, self.flush)
                self._timer.daemon = True
                self._timer.start()

    def flush(self) -> bool:
        """Write the pending snapshot now. Returns False if there was nothing to write or it failed."""
        with self._lock:
            self._cancel_wait()

            blob, self._pending = self._pending, None
            if blob is None:
                return False

            try:
                self._blob_store.save(self._key, blob)
            except (OSError, TypeError, ValueError) as e:
                self.last_error = e
                logger.error(f"Failed to save state '{self._key}': {e}")
                return False

            self.last_error = None
            self.last_saved = datetime.datetime.now()
            logger.debug(f"Saved state '{self._key}' ({len(blob)} bytes)")
            return True

    def cancel(self) -> None:
        """Drop the pending write without saving it."""
        with self._lock:
            self._cancel_wait()
            self._pending = None
