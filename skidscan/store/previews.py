"""Addressable preview handles for uploaded payloads.

A handle is a ``file://`` URI to a temporary copy of the payload. Handles are
not reclaimed automatically: every handle must be released when its item is
removed, or when the whole queue is cleared.
"""

import mimetypes
import tempfile
from pathlib import Path

from skidscan.logging.logger import Log


class PreviewHandles:
    """Creates and releases preview handles under a private temp directory."""

    def __init__(self, root: Path | None = None) -> None:
        self._root = root if root is not None else Path(tempfile.mkdtemp(prefix="skidscan-"))
        self._root.mkdir(parents=True, exist_ok=True)
        self._live: dict[str, Path] = {}

    @property
    def live_count(self) -> int:
        return len(self._live)

    def create(self, data: bytes, mime_type: str) -> str:
        suffix = mimetypes.guess_extension(mime_type) or ".bin"
        with tempfile.NamedTemporaryFile(
            dir=self._root, suffix=suffix, delete=False
        ) as handle:
            handle.write(data)
            path = Path(handle.name)
        url = path.as_uri()
        self._live[url] = path
        return url

    def is_live(self, url: str) -> bool:
        return url in self._live

    def release(self, url: str) -> None:
        """Release a handle. Unknown or already released handles are ignored."""
        path = self._live.pop(url, None)
        if path is None:
            return
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            Log.warning(f"Failed to release preview {url}: {exc}")

    def close(self) -> None:
        for url in list(self._live):
            self.release(url)
