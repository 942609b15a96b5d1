"""File watcher for detecting changes to the project configuration file."""

import hashlib
import os
from pathlib import Path
from typing import Optional


class FileWatcher:
    """Detect changes to a file by polling its mtime.

    Polling happens on demand (``check()``), once per compiled cell; there is
    no background thread. A changed mtime only counts as a change when the
    content hash differs too.
    """

    def __init__(self, file_path: str | Path):
        """Initialize file watcher.

        Args:
            file_path: Path to the file to watch
        """
        self.file_path = Path(file_path)
        self._last_mtime: float = 0.0
        self._last_hash: Optional[str] = None

        self._update_state()

    @property
    def mtime(self) -> float:
        """Modification time recorded at the last acknowledge."""
        return self._last_mtime

    def _get_file_hash(self) -> Optional[str]:
        """Get SHA256 hash of file contents."""
        try:
            content = self.file_path.read_bytes()
            return hashlib.sha256(content).hexdigest()
        except OSError:
            return None

    def _update_state(self) -> None:
        """Update internal state from current file."""
        try:
            self._last_mtime = os.path.getmtime(self.file_path)
            self._last_hash = self._get_file_hash()
        except OSError:
            self._last_mtime = 0.0
            self._last_hash = None

    def check(self) -> bool:
        """Check if file has changed since last acknowledge. Returns True if changed."""
        try:
            current_mtime = os.path.getmtime(self.file_path)
        except OSError:
            # A vanished file is a change only if we had seen it before
            return self._last_hash is not None

        if current_mtime != self._last_mtime:
            current_hash = self._get_file_hash()
            if current_hash != self._last_hash:
                return True
            # mtime changed but content same - update mtime only
            self._last_mtime = current_mtime
        return False

    def acknowledge_changes(self) -> None:
        """Record the current file state as seen."""
        self._update_state()
