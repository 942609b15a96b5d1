"""
TypeScriptKernel: notebook-facing wrapper around a TranspileSession.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from notebook_ts.config import KernelConfig
from notebook_ts.language_service import LanguageService
from notebook_ts.transpiler import TranspileError, TranspileSession

logger = logging.getLogger(__name__)

JAVASCRIPT_MIME = "application/javascript"

Evaluator = Callable[[str], Any]


@dataclass
class ExecutionResult:
    """Result of executing a code cell."""
    success: bool
    outputs: list[dict[str, Any]] = field(default_factory=list)
    execution_count: int = 0
    error: Optional[str] = None
    javascript: Optional[str] = None
    return_value: Any = None

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "success": self.success,
            "outputs": self.outputs,
            "execution_count": self.execution_count,
            "error": self.error,
            "javascript": self.javascript,
            "return_value": str(self.return_value) if self.return_value is not None else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ExecutionResult":
        """Create from dictionary."""
        return cls(
            success=data["success"],
            outputs=data["outputs"],
            execution_count=data["execution_count"],
            error=data.get("error"),
            javascript=data.get("javascript"),
            return_value=data.get("return_value"),
        )


class TypeScriptKernel:
    """
    Kernel that compiles TypeScript cells incrementally.

    Each executed cell is transpiled by the session; the resulting JavaScript
    is handed unmodified to ``evaluator`` when one is given. Running it is the
    evaluator's business: the kernel only records what came back.
    """

    def __init__(
        self,
        config: Optional[KernelConfig] = None,
        evaluator: Optional[Evaluator] = None,
        language_service: Optional[LanguageService] = None,
    ):
        self.config = config or KernelConfig()
        self.evaluator = evaluator
        self.session = TranspileSession(self.config, language_service=language_service)
        self.execution_count = 0
        self._history: list[tuple[int, str, ExecutionResult]] = []

    def execute_cell(self, code: str) -> ExecutionResult:
        """
        Transpile code, evaluate it if possible, and return the outcome.

        Args:
            code: TypeScript cell source, directives included

        Returns:
            ExecutionResult with outputs and status
        """
        self.execution_count += 1
        outputs = []
        error = None
        javascript = None
        return_value = None

        try:
            javascript = self.session.transpile(code)
            outputs.append({
                "type": "execute_result",
                "data": {JAVASCRIPT_MIME: javascript, "text/plain": javascript},
                "execution_count": self.execution_count,
            })
        except TranspileError as e:
            error = e.message
            outputs.append({
                "type": "error",
                "ename": type(e).__name__,
                "evalue": e.message,
                "traceback": e.message.splitlines(),
            })

        if javascript is not None and self.evaluator is not None:
            try:
                return_value = self.evaluator(javascript)
            except Exception as e:
                logger.info("Evaluator raised %s: %s", type(e).__name__, e)
                error = str(e)
                outputs.append({
                    "type": "error",
                    "ename": type(e).__name__,
                    "evalue": str(e),
                    "traceback": [],
                })
            else:
                if return_value is not None:
                    outputs.append({
                        "type": "display_data",
                        "data": {"text/plain": repr(return_value)},
                    })

        exec_result = ExecutionResult(
            success=error is None,
            outputs=outputs,
            execution_count=self.execution_count,
            error=error,
            javascript=javascript,
            return_value=return_value,
        )

        self._history.append((self.execution_count, code, exec_result))

        return exec_result

    def get_history(self) -> list[tuple[int, str, ExecutionResult]]:
        """Get execution history."""
        return self._history.copy()

    def clear_history(self):
        """Clear execution history."""
        self._history.clear()

    def reset(self):
        """Reset the kernel to a clean state."""
        self.session.reset()
        self.execution_count = 0
        self._history.clear()

    def get_program(self) -> str:
        """TypeScript source of every committed cell."""
        return self.session.document.text

    def shutdown(self):
        """Remove the compiler's working files."""
        self.session.close()
