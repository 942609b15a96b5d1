"""
Diagnostic formatting: compiler positions mapped back into cell coordinates.
"""

from typing import Iterable

from notebook_ts.document import VirtualDocument
from notebook_ts.language_service import Diagnostic, FileOrigin


def _caret(character: int) -> str:
    return "_" * character + "^"


def format_diagnostic(diagnostic: Diagnostic, document: VirtualDocument, committed_line_count: int) -> str:
    """
    Render one diagnostic.

    Lines of the synthetic cell file are shown relative to the cell being
    compiled, starting at 1. A diagnostic on an already committed line means
    accepted code no longer compiles (usually after an option change) and is
    rendered as a conflict.
    """
    head = f"{diagnostic.ts_code}: {diagnostic.message}"

    if diagnostic.origin == FileOrigin.CURRENT_CELL:
        source_line = document.line(diagnostic.line) or ""
        marker = _caret(diagnostic.character)
        if diagnostic.line < committed_line_count:
            return f"Conflict with a committed line:\n{source_line}\n{marker}\n{head}"
        relative = diagnostic.line - committed_line_count + 1
        return (
            f"Line {relative}, Character {diagnostic.character + 1}\n"
            f"{source_line}\n{marker}\n{head}"
        )

    if diagnostic.origin == FileOrigin.OTHER_FILE:
        return (
            f"{diagnostic.file} Line {diagnostic.line + 1}, "
            f"Character {diagnostic.character + 1}.\n{head}"
        )

    return head


def format_diagnostics(
    diagnostics: Iterable[Diagnostic],
    document: VirtualDocument,
    committed_line_count: int,
) -> list[str]:
    """Render every diagnostic; see ``format_diagnostic``."""
    return [format_diagnostic(d, document, committed_line_count) for d in diagnostics]


def render_failure(messages: list[str]) -> str:
    """Join formatted diagnostics into the text of one failure."""
    return "\n\n".join(messages)
