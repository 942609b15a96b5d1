"""
Language-service adapter: compiles the virtual document with the TypeScript compiler.
"""

import json
import logging
import os
import re
import shutil
import subprocess
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from notebook_ts.document import VirtualDocument
from notebook_ts.options import CompilerOptionSet

logger = logging.getLogger(__name__)

SOURCE_PREFIX = ".notebook_ts_"
SOURCE_SUFFIX = ".ts"

_LOCATED_RE = re.compile(
    r"^(?P<file>.+?)\((?P<line>\d+),(?P<col>\d+)\): "
    r"(?P<category>error|warning|message) TS(?P<code>\d+): (?P<message>.*)$"
)
_GLOBAL_RE = re.compile(r"^(?P<category>error|warning|message) TS(?P<code>\d+): (?P<message>.*)$")


class FileOrigin(str, Enum):
    """Where a diagnostic points to."""
    CURRENT_CELL = "current_cell"
    OTHER_FILE = "other_file"
    GLOBAL = "global"


@dataclass(frozen=True)
class Diagnostic:
    """A compiler message. ``line`` and ``character`` are 0-based."""
    code: int
    message: str
    origin: FileOrigin = FileOrigin.GLOBAL
    file: Optional[str] = None
    line: int = 0
    character: int = 0
    category: str = "error"

    @property
    def ts_code(self) -> str:
        return f"TS{self.code}"


@dataclass
class CompileResult:
    """Outcome of compiling the whole virtual document once."""
    diagnostics: list[Diagnostic] = field(default_factory=list)
    emitted_text: str = ""
    emit_skipped: bool = False

    @property
    def ok(self) -> bool:
        return not self.diagnostics and not self.emit_skipped


class CompilerError(RuntimeError):
    """Raised when the compiler itself could not be run."""


class CompilerNotFoundError(CompilerError):
    """Raised when no TypeScript compiler executable can be located."""


class LanguageService(ABC):
    """
    Compiles a VirtualDocument under a CompilerOptionSet.

    Every compile runs the compiler, since files the program imports may have
    changed on disk. The last result is kept, keyed on the document's cache key,
    the effective options and the type-check switch, and ``reuse=True`` returns
    it for an unchanged re-query.
    """

    def __init__(self):
        self._cache_key: Optional[tuple] = None
        self._cached: Optional[CompileResult] = None

    def compile(
        self,
        document: VirtualDocument,
        options: CompilerOptionSet,
        type_check: bool = True,
        reuse: bool = False,
    ) -> CompileResult:
        key = (document.cache_key, options.fingerprint(), type_check)
        if reuse and key == self._cache_key and self._cached is not None:
            logger.debug("Reusing compile result for document version %d", document.version)
            return self._cached

        result = self._compile(document.text, options.effective, type_check)
        self._cache_key, self._cached = key, result
        return result

    @abstractmethod
    def _compile(self, source: str, options: dict[str, Any], type_check: bool) -> CompileResult:
        """Compile ``source`` as the synthetic file and emit the whole program."""

    def close(self) -> None:
        """Release files or processes held by the service."""


def find_tsc(working_dir: str | Path, explicit: Optional[str] = None) -> str:
    """
    Locate the tsc executable.

    Order: ``explicit``, the nearest ``node_modules/.bin/tsc`` at or above
    ``working_dir``, then ``tsc`` on PATH.
    """
    if explicit:
        found = shutil.which(explicit)
        if found is None and Path(explicit).is_file():
            found = str(Path(explicit))
        if found is None:
            raise CompilerNotFoundError(f"TypeScript compiler not found: {explicit}")
        return found

    start = Path(working_dir).resolve()
    for directory in (start, *start.parents):
        local = directory / "node_modules" / ".bin" / "tsc"
        if local.is_file():
            return str(local)

    found = shutil.which("tsc")
    if found is None:
        raise CompilerNotFoundError(
            "TypeScript compiler 'tsc' not found. Install with: npm install -g typescript"
        )
    return found


def parse_tsc_output(output: str, working_dir: str | Path, source_path: str | Path) -> list[Diagnostic]:
    """
    Parse ``tsc --pretty false`` output into diagnostics.

    Positions in the output are 1-based; the returned ones are 0-based.
    Indented lines continue the message of the diagnostic before them.
    """
    working_dir = Path(working_dir)
    source_path = Path(source_path).resolve()
    entries: list[dict[str, Any]] = []

    for raw_line in output.splitlines():
        line = raw_line.rstrip()
        if not line:
            continue

        located = _LOCATED_RE.match(line)
        if located:
            file_name = located.group("file")
            resolved = (working_dir / file_name).resolve()
            is_cell = resolved == source_path
            entries.append({
                "code": int(located.group("code")),
                "message": located.group("message"),
                "origin": FileOrigin.CURRENT_CELL if is_cell else FileOrigin.OTHER_FILE,
                "file": str(source_path) if is_cell else file_name,
                "line": int(located.group("line")) - 1,
                "character": int(located.group("col")) - 1,
                "category": located.group("category"),
            })
            continue

        fileless = _GLOBAL_RE.match(line)
        if fileless:
            entries.append({
                "code": int(fileless.group("code")),
                "message": fileless.group("message"),
                "origin": FileOrigin.GLOBAL,
                "category": fileless.group("category"),
            })
            continue

        if raw_line.startswith(" ") and entries:
            entries[-1]["message"] += "\n" + line.strip()

    return [Diagnostic(**entry) for entry in entries]


class TscLanguageService(LanguageService):
    """
    LanguageService backed by the ``tsc`` command-line compiler.

    The virtual document is written to a hidden file in the working directory
    so relative and package imports resolve as they would for a file the user
    wrote there. Each service gets its own file name, so sessions sharing a
    directory never see each other's program. Everything else the program
    references is read by tsc from the real filesystem. Output goes to a
    private scratch directory.
    """

    def __init__(self, working_dir: str | Path, tsc_path: Optional[str] = None, timeout: float = 60.0):
        super().__init__()
        self.working_dir = Path(working_dir).resolve()
        self.source_path: Optional[Path] = None
        self.timeout = timeout
        self._tsc_path = tsc_path
        self._tsc: Optional[str] = None
        self._scratch: Optional[Path] = None

    @property
    def tsc(self) -> str:
        if self._tsc is None:
            self._tsc = find_tsc(self.working_dir, self._tsc_path)
            logger.info("Using TypeScript compiler %s", self._tsc)
        return self._tsc

    def _source_file(self) -> Path:
        if self.source_path is None:
            fd, name = tempfile.mkstemp(prefix=SOURCE_PREFIX, suffix=SOURCE_SUFFIX, dir=self.working_dir)
            os.close(fd)
            self.source_path = Path(name)
            logger.debug("Virtual document file is %s", self.source_path)
        return self.source_path

    def _scratch_dir(self) -> Path:
        if self._scratch is None:
            self._scratch = Path(tempfile.mkdtemp(prefix="notebook_ts_"))
        return self._scratch

    def _write_project(self, source_path: Path, options: dict[str, Any], type_check: bool) -> tuple[Path, Path]:
        scratch = self._scratch_dir()
        out_dir = scratch / "out"
        shutil.rmtree(out_dir, ignore_errors=True)

        compiler_options = dict(options)
        compiler_options["outDir"] = str(out_dir)
        compiler_options["noEmit"] = False
        if not type_check:
            compiler_options["noCheck"] = True

        config_path = scratch / "tsconfig.json"
        config_path.write_text(
            json.dumps({"compilerOptions": compiler_options, "files": [str(source_path)]}, indent=2),
            encoding="utf-8",
        )
        return config_path, out_dir

    def _read_emitted(self, source_path: Path, out_dir: Path) -> Optional[str]:
        matches = sorted(out_dir.rglob(source_path.stem + ".js"))
        if not matches:
            return None
        return matches[0].read_text(encoding="utf-8")

    def _compile(self, source: str, options: dict[str, Any], type_check: bool) -> CompileResult:
        try:
            source_path = self._source_file()
            source_path.write_text(source, encoding="utf-8")
            config_path, out_dir = self._write_project(source_path, options, type_check)
        except OSError as e:
            logger.error("Cannot write compiler input: %s", e)
            raise CompilerError(f"Cannot write compiler input: {e}") from e

        cmd = [self.tsc, "-p", str(config_path), "--pretty", "false"]
        logger.debug("Running %s", " ".join(cmd))
        try:
            proc = subprocess.run(
                cmd,
                cwd=str(self.working_dir),
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            logger.error("tsc timed out after %.1fs", self.timeout)
            raise CompilerError(f"TypeScript compiler timed out after {self.timeout:g}s") from e
        except FileNotFoundError as e:
            raise CompilerNotFoundError(f"Cannot run TypeScript compiler: {self.tsc}") from e
        except (OSError, UnicodeDecodeError) as e:
            logger.error("tsc could not be run: %s", e)
            raise CompilerError(f"Cannot run TypeScript compiler: {e}") from e

        diagnostics = parse_tsc_output(proc.stdout + proc.stderr, self.working_dir, source_path)
        if proc.returncode != 0 and not diagnostics:
            logger.error("tsc failed: status=%d, stderr=%s", proc.returncode, proc.stderr.strip())
            raise CompilerError(
                f"TypeScript compiler exited with status {proc.returncode}: "
                f"{(proc.stderr or proc.stdout).strip()}"
            )

        try:
            emitted = self._read_emitted(source_path, out_dir)
        except (OSError, UnicodeDecodeError) as e:
            logger.error("Cannot read compiler output: %s", e)
            raise CompilerError(f"Cannot read compiler output: {e}") from e

        logger.debug("tsc finished: %d diagnostics, emitted=%s", len(diagnostics), emitted is not None)
        return CompileResult(
            diagnostics=diagnostics,
            emitted_text=emitted or "",
            emit_skipped=emitted is None,
        )

    def close(self) -> None:
        if self.source_path is not None:
            self.source_path.unlink(missing_ok=True)
            self.source_path = None
        if self._scratch is not None:
            shutil.rmtree(self._scratch, ignore_errors=True)
            self._scratch = None
