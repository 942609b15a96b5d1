"""
TranspileSession: turns notebook cells into incremental JavaScript.
"""

import html
import json
import logging
from enum import Enum
from typing import Optional

from notebook_ts.config import KernelConfig
from notebook_ts.diagnostics import format_diagnostics, render_failure
from notebook_ts.differ import extract_new
from notebook_ts.document import VirtualDocument
from notebook_ts.language_service import (
    CompileResult,
    CompilerError,
    Diagnostic,
    LanguageService,
    TscLanguageService,
)
from notebook_ts.options import OptionResolver
from notebook_ts.pragma import PragmaError, parse_pragmas

logger = logging.getLogger(__name__)

ASYNC_STATEMENT = "$$.async();\n"
WARNING_STYLE = "background:#ffecb3;padding:1em;border-left:2px solid #ff6d00"


class TranspileError(Exception):
    """A cell was rejected. The message is ready to show to the user."""

    def __init__(self, message: str, diagnostics: Optional[list[Diagnostic]] = None):
        super().__init__(message)
        self.message = message
        self.diagnostics = list(diagnostics or [])


class SessionState(str, Enum):
    """Where a cell submission stands. COMMITTED and ROLLED_BACK are outcomes."""
    IDLE = "idle"
    STAGED = "staged"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


def render_warning(message: str) -> str:
    """A statement that displays ``message`` as a warning box when run."""
    markup = f"<div style='{WARNING_STYLE}'>{html.escape(message)}</div>"
    return f"$$.html({json.dumps(markup)});\n"


class TranspileSession:
    """
    Incremental TypeScript-to-JavaScript compilation for one kernel process.

    Every accepted cell is appended to a virtual document holding the whole
    program. Each compile covers the whole document, and only the JavaScript
    the new cell added is returned. A rejected cell leaves no trace: the
    document, the last emission and the permanent option patches are exactly
    as they were before it.

    Not thread-safe; cells must be submitted one at a time.
    """

    def __init__(
        self,
        config: Optional[KernelConfig] = None,
        language_service: Optional[LanguageService] = None,
        resolver: Optional[OptionResolver] = None,
    ):
        self.config = config or KernelConfig()
        self.document = VirtualDocument()
        self.resolver = resolver or OptionResolver(
            self.config.working_dir,
            interop_warning=self.config.interop_warning,
        )
        self.language_service = language_service or TscLanguageService(
            self.config.working_dir,
            tsc_path=self.config.tsc_path,
            timeout=self.config.timeout,
        )
        self.last_emitted = ""
        self.state = SessionState.IDLE
        self.last_outcome: Optional[SessionState] = None

    @property
    def committed_line_count(self) -> int:
        return self.document.committed_line_count

    def transpile(self, raw_code: str) -> str:
        """
        Compile one cell and return the JavaScript it adds to the program.

        Args:
            raw_code: Cell text, directive lines included

        Returns:
            JavaScript for the new cell, preceded by any pending warning
            statements

        Raises:
            TranspileError: if the cell is rejected; the session stays usable
        """
        try:
            code, override = parse_pragmas(raw_code)
        except PragmaError as e:
            logger.info("Rejected cell with bad directive: %s", e)
            raise TranspileError(str(e)) from e

        option_set = self.resolver.resolve(code, override)
        type_check = self.config.type_check if override.type_check is None else override.type_check
        committed_at_start = self.document.committed_line_count

        self.document.stage(code)
        self.state = SessionState.STAGED
        accepted = False
        try:
            try:
                result = self.language_service.compile(self.document, option_set, type_check)
            except CompilerError as e:
                raise TranspileError(str(e)) from e

            if not result.ok:
                raise TranspileError(
                    self._failure_message(result, committed_at_start),
                    result.diagnostics,
                )

            code_slice = extract_new(self.last_emitted, result.emitted_text)
            self.document.commit()
            self.resolver.commit(option_set)
            self.last_emitted = result.emitted_text
            self.last_outcome = SessionState.COMMITTED
            accepted = True
        finally:
            if not accepted:
                self.document.rollback()
                self.last_outcome = SessionState.ROLLED_BACK
                logger.debug("Rolled back to %d lines", self.document.committed_line_count)
            self.state = SessionState.IDLE

        logger.debug(
            "Committed version %d (%d lines)",
            self.document.version,
            self.document.committed_line_count,
        )
        if override.asynchronous:
            code_slice = ASYNC_STATEMENT + code_slice

        warnings = self.resolver.take_warnings()
        if warnings:
            code_slice = "".join(render_warning(w) for w in warnings) + code_slice

        return code_slice

    def _failure_message(self, result: CompileResult, committed_at_start: int) -> str:
        messages = format_diagnostics(result.diagnostics, self.document, committed_at_start)
        if not messages:
            messages = ["Emit skipped: the compiler produced no output."]
        return render_failure(messages)

    def check(self) -> CompileResult:
        """
        Compile the committed program again without submitting a cell.

        Asking twice with nothing changed returns the same result without
        running the compiler.
        """
        option_set = self.resolver.resolve("")
        return self.language_service.compile(self.document, option_set, self.config.type_check, reuse=True)

    def reset(self) -> None:
        """Forget every committed cell. Permanent option patches are kept."""
        self.document = VirtualDocument()
        self.last_emitted = ""
        self.state = SessionState.IDLE
        self.last_outcome = None

    def close(self) -> None:
        self.language_service.close()
