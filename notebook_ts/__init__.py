"""
notebook-ts: Incremental TypeScript compilation for notebook cells.

This package provides the compilation backend of a TypeScript notebook kernel:
- Cells accumulate into one virtual program, so later cells see earlier ones
- Each cell is type-checked against everything accepted before it
- Only the JavaScript a new cell adds is returned for evaluation
- A rejected cell is rolled back and leaves the session untouched
"""

from notebook_ts.config import KernelConfig
from notebook_ts.kernel import TypeScriptKernel, ExecutionResult
from notebook_ts.notebook import Notebook, Cell, CellType
from notebook_ts.transpiler import TranspileSession, TranspileError

__version__ = "0.1.0"
__all__ = [
    "KernelConfig",
    "TypeScriptKernel",
    "ExecutionResult",
    "Notebook",
    "Cell",
    "CellType",
    "TranspileSession",
    "TranspileError",
]
