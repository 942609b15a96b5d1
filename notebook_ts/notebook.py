"""
Notebook: .tsnb file format - JSON-based TypeScript notebook storage.

Notebooks can also be read from and written to plain ``.ts`` scripts whose
cells are separated by ``// %%`` lines.
"""

import json
import re
from pathlib import Path
from typing import Any, Optional
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

NOTEBOOK_SUFFIX = ".tsnb"
CELL_SEPARATOR = "// %%"
CELL_SEPARATOR_RE = re.compile(r"^\s*//\s*%%.*$")


def _cell_id() -> str:
    return f"cell_{datetime.now().strftime('%Y%m%d%H%M%S%f')}"


def _default_metadata(name: str) -> dict[str, Any]:
    now = datetime.now().isoformat()
    return {"name": name, "language": "typescript", "created": now, "modified": now}


def split_cells(source: str) -> list[str]:
    """
    Split a TypeScript script into cells on ``// %%`` separator lines.

    Separator lines are dropped, as are cells holding only whitespace.
    """
    cells: list[list[str]] = [[]]
    for line in source.split("\n"):
        if CELL_SEPARATOR_RE.match(line):
            cells.append([])
        else:
            cells[-1].append(line)
    texts = ["\n".join(lines).strip("\n") for lines in cells]
    return [text for text in texts if text.strip()]


class CellType(str, Enum):
    """Type of notebook cell."""
    CODE = "code"
    MARKDOWN = "markdown"


class Cell(BaseModel):
    """A single notebook cell. Code cells hold TypeScript, directives included."""
    id: str = Field(default_factory=_cell_id)
    type: CellType = CellType.CODE
    source: str = ""
    outputs: list[dict[str, Any]] = Field(default_factory=list)
    execution_count: Optional[int] = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type.value,
            "source": self.source,
            "outputs": self.outputs,
            "execution_count": self.execution_count,
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Cell":
        return cls(
            id=data.get("id") or _cell_id(),
            type=CellType(data.get("type", "code")),
            source=data.get("source", ""),
            outputs=data.get("outputs", []),
            execution_count=data.get("execution_count"),
            metadata=data.get("metadata", {}),
        )


class Notebook(BaseModel):
    """
    A TypeScript notebook.

    Code cells are compiled in order by one TranspileSession, so their
    sources read top to bottom form a single program. Markdown cells are
    carried along untouched.
    """

    version: str = "1.0"
    cells: list[Cell] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)

    def __init__(self, **data):
        super().__init__(**data)
        if not self.metadata:
            self.metadata = _default_metadata("Untitled")

    def add_cell(self, cell: Optional[Cell] = None, **kwargs) -> Cell:
        """
        Add a new cell to the notebook.

        Args:
            cell: Cell to add, or create new one
            **kwargs: Arguments for new cell if cell not provided

        Returns:
            The added cell
        """
        if cell is None:
            cell = Cell(**kwargs)
        self.cells.append(cell)
        self._touch()
        return cell

    def get_cell(self, index: int) -> Cell:
        return self.cells[index]

    def code_cells(self) -> list[tuple[int, Cell]]:
        """Non-empty code cells with their indices, in notebook order."""
        return [
            (i, c) for i, c in enumerate(self.cells)
            if c.type == CellType.CODE and c.source.strip()
        ]

    def clear_outputs(self) -> None:
        """Drop compiled output so the notebook can be run from scratch."""
        for cell in self.cells:
            cell.outputs = []
            cell.execution_count = None
        self._touch()

    def _touch(self):
        self.metadata["modified"] = datetime.now().isoformat()

    def to_script(self) -> str:
        """Code cells joined into a ``// %%`` separated TypeScript script."""
        blocks = [cell.source.strip("\n") for _, cell in self.code_cells()]
        return "".join(f"{CELL_SEPARATOR}\n{block}\n" for block in blocks)

    @classmethod
    def from_script(cls, source: str, name: str = "Untitled") -> "Notebook":
        """Build a notebook with one code cell per ``// %%`` block."""
        nb = cls.new(name=name)
        for block in split_cells(source):
            nb.add_cell(source=block)
        return nb

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "cells": [cell.to_dict() for cell in self.cells],
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Notebook":
        cells = [Cell.from_dict(c) for c in data.get("cells", [])]
        return cls(
            version=data.get("version", "1.0"),
            cells=cells,
            metadata=data.get("metadata", {}),
        )

    def save(self, path: Path):
        """Save notebook as JSON, or as a script when ``path`` ends in ``.ts``."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        if path.suffix == ".ts":
            path.write_text(self.to_script(), encoding="utf-8")
            return
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def load(cls, path: Path) -> "Notebook":
        """
        Load a notebook.

        Args:
            path: A JSON notebook, or a ``.ts`` script split on ``// %%`` lines

        Returns:
            Loaded notebook
        """
        path = Path(path)
        if path.suffix == ".ts":
            return cls.from_script(path.read_text(encoding="utf-8"), name=path.stem)
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return cls.from_dict(data)

    @classmethod
    def new(cls, name: str = "Untitled") -> "Notebook":
        """Create a new empty notebook."""
        return cls(metadata=_default_metadata(name))
