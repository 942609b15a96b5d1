"""
VirtualDocument: the accumulating source buffer of a session.
"""

import hashlib
from typing import Optional


class DocumentStateError(RuntimeError):
    """Raised on a stage/commit/rollback call that does not fit the current state."""


class VirtualDocument:
    """
    Append-only buffer of every committed cell plus at most one staged cell.

    Committed lines are never edited, only appended to, so the compiler's
    output for them stays stable from one compile to the next.
    """

    def __init__(self):
        self.lines: list[str] = []
        self.committed_line_count = 0
        self.version = 0

    @property
    def staged(self) -> bool:
        """True while a staged cell waits for commit or rollback."""
        return len(self.lines) > self.committed_line_count

    @property
    def text(self) -> str:
        return "\n".join(self.lines)

    @property
    def cache_key(self) -> tuple[int, str]:
        """Changes whenever the buffer content does."""
        return self.version, hashlib.sha1(self.text.encode("utf-8")).hexdigest()

    def line(self, index: int) -> Optional[str]:
        """Source line at 0-based ``index``, or None when out of range."""
        if 0 <= index < len(self.lines):
            return self.lines[index]
        return None

    def stage(self, code: str) -> int:
        """
        Append a cell's lines without committing them.

        Returns:
            Number of lines staged
        """
        if self.staged:
            raise DocumentStateError("A cell is already staged")
        new_lines = code.split("\n")
        self.lines.extend(new_lines)
        return len(new_lines)

    def commit(self) -> None:
        """Accept the staged cell."""
        self.committed_line_count = len(self.lines)
        self.version += 1

    def rollback(self) -> None:
        """Drop the staged cell."""
        del self.lines[self.committed_line_count:]

    def __len__(self) -> int:
        return len(self.lines)
