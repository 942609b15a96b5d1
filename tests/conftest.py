"""Pytest fixtures shared across all test modules."""

import json
import re
from typing import Any

import pytest

from notebook_ts.config import KernelConfig
from notebook_ts.language_service import (
    CompileResult,
    Diagnostic,
    FileOrigin,
    LanguageService,
)
from notebook_ts.transpiler import TranspileSession

CELL_FILE = ".notebook_ts_cell.ts"

KNOWN_OPTIONS = {
    "module", "target", "esModuleInterop", "strict", "noImplicitAny",
    "lib", "moduleResolution", "baseUrl", "outDir",
}

_DECL_RE = re.compile(r"^(let|const|var)\s+(\w+)(\s*:\s*\w+)?\s*=\s*(.+?);?$")
_UNTYPED_PARAM_RE = re.compile(r"function\s+\w+\((\w+)\)")


class FakeLanguageService(LanguageService):
    """
    Deterministic stand-in for tsc over a tiny TypeScript subset.

    - ``let``/``const`` declarations are tracked; redeclaring a name is TS2451
      (only while type checking)
    - ``@@`` anywhere is a syntax error, TS1109, reported even without type checking
    - with ``noImplicitAny`` an untyped ``function f(a)`` parameter is TS7006
    - unknown option names are fileless TS5023 diagnostics
    - declarations lose their type annotation and become ``var``
    """

    def __init__(self):
        super().__init__()
        self.calls: list[dict[str, Any]] = []

    def _compile(self, source: str, options: dict[str, Any], type_check: bool) -> CompileResult:
        self.calls.append({"source": source, "options": dict(options), "type_check": type_check})
        diagnostics = []

        for name in options:
            if name not in KNOWN_OPTIONS:
                diagnostics.append(Diagnostic(
                    code=5023,
                    message=f"Unknown compiler option '{name}'.",
                    origin=FileOrigin.GLOBAL,
                ))

        declared: set[str] = set()
        emitted = ['"use strict";']
        for index, line in enumerate(source.split("\n")):
            stripped = line.strip()
            if "@@" in line:
                diagnostics.append(self._at(index, line.index("@@"), 1109, "Expression expected."))
                continue

            decl = _DECL_RE.match(stripped)
            if decl:
                name = decl.group(2)
                if type_check and name in declared:
                    diagnostics.append(self._at(
                        index, line.index(name), 2451,
                        f"Cannot redeclare block-scoped variable '{name}'.",
                    ))
                declared.add(name)
                emitted.append(f"var {name} = {decl.group(4).rstrip(';')};")
                continue

            param = _UNTYPED_PARAM_RE.search(line)
            if param and type_check and options.get("noImplicitAny"):
                diagnostics.append(self._at(
                    index, param.start(1), 7006,
                    f"Parameter '{param.group(1)}' implicitly has an 'any' type.",
                ))

            if stripped:
                emitted.append(stripped)

        return CompileResult(diagnostics=diagnostics, emitted_text="\n".join(emitted) + "\n")

    def _at(self, line: int, character: int, code: int, message: str) -> Diagnostic:
        return Diagnostic(
            code=code,
            message=message,
            origin=FileOrigin.CURRENT_CELL,
            file=CELL_FILE,
            line=line,
            character=character,
        )


def write_tsconfig(directory, compiler_options: dict[str, Any]):
    path = directory / "tsconfig.json"
    path.write_text(json.dumps({"compilerOptions": compiler_options}))
    return path


@pytest.fixture
def project_dir(tmp_path):
    """A working directory with a CommonJS tsconfig.json."""
    write_tsconfig(tmp_path, {"module": "commonjs", "target": "es2017", "esModuleInterop": True})
    return tmp_path


@pytest.fixture
def fake_service():
    return FakeLanguageService()


@pytest.fixture
def session(project_dir, fake_service):
    """TranspileSession over the fake compiler in a configured project."""
    return TranspileSession(KernelConfig(working_dir=project_dir), language_service=fake_service)
