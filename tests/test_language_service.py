"""
Tests for the tsc-backed language service.
"""

import json
import shutil
import subprocess
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from notebook_ts.config import KernelConfig
from notebook_ts.document import VirtualDocument
from notebook_ts.language_service import (
    SOURCE_PREFIX,
    CompilerError,
    CompilerNotFoundError,
    FileOrigin,
    TscLanguageService,
    find_tsc,
    parse_tsc_output,
)
from notebook_ts.options import CompilerOptionSet
from notebook_ts.transpiler import TranspileError, TranspileSession

from conftest import CELL_FILE, FakeLanguageService, write_tsconfig


class TestParseTscOutput:
    """Test cases for parse_tsc_output()."""

    def setup_method(self):
        self.working_dir = Path("/work")
        self.source = self.working_dir / CELL_FILE

    def test_cell_diagnostic(self):
        output = f"{CELL_FILE}(3,5): error TS2322: Type 'string' is not assignable to type 'number'.\n"
        [diagnostic] = parse_tsc_output(output, self.working_dir, self.source)
        assert diagnostic.code == 2322
        assert diagnostic.origin == FileOrigin.CURRENT_CELL
        assert diagnostic.line == 2
        assert diagnostic.character == 4
        assert diagnostic.category == "error"

    def test_other_file(self):
        output = "src/lib.ts(10,1): error TS1005: ';' expected.\n"
        [diagnostic] = parse_tsc_output(output, self.working_dir, self.source)
        assert diagnostic.origin == FileOrigin.OTHER_FILE
        assert diagnostic.file == "src/lib.ts"
        assert diagnostic.line == 9

    def test_other_session_file_is_not_the_cell(self):
        output = ".notebook_ts_other.ts(1,1): error TS1005: ';' expected.\n"
        [diagnostic] = parse_tsc_output(output, self.working_dir, self.source)
        assert diagnostic.origin == FileOrigin.OTHER_FILE

    def test_global(self):
        output = "error TS5023: Unknown compiler option 'foo'.\n"
        [diagnostic] = parse_tsc_output(output, self.working_dir, self.source)
        assert diagnostic.origin == FileOrigin.GLOBAL
        assert diagnostic.file is None
        assert diagnostic.message == "Unknown compiler option 'foo'."

    def test_continuation_lines(self):
        output = (
            f"{CELL_FILE}(1,7): error TS2322: Type '{{ a: string; }}' is not assignable.\n"
            "  Types of property 'a' are incompatible.\n"
            "    Type 'string' is not assignable to type 'number'.\n"
            "error TS5023: Unknown compiler option 'foo'.\n"
        )
        first, second = parse_tsc_output(output, self.working_dir, self.source)
        assert first.message.splitlines() == [
            "Type '{ a: string; }' is not assignable.",
            "Types of property 'a' are incompatible.",
            "Type 'string' is not assignable to type 'number'.",
        ]
        assert second.code == 5023

    def test_ignores_summary(self):
        assert parse_tsc_output("Found 2 errors in the same file.\n", self.working_dir, self.source) == []


class TestFindTsc:
    """Test cases for find_tsc()."""

    def test_local_node_modules(self, tmp_path):
        local = tmp_path / "node_modules" / ".bin" / "tsc"
        local.parent.mkdir(parents=True)
        local.write_text("")
        nested = tmp_path / "notebooks"
        nested.mkdir()
        assert find_tsc(nested) == str(local)

    def test_path_lookup(self, tmp_path):
        with patch("notebook_ts.language_service.shutil.which", return_value="/usr/bin/tsc"):
            assert find_tsc(tmp_path) == "/usr/bin/tsc"

    def test_not_found(self, tmp_path):
        with patch("notebook_ts.language_service.shutil.which", return_value=None):
            with pytest.raises(CompilerNotFoundError):
                find_tsc(tmp_path)

    def test_explicit_missing(self, tmp_path):
        with pytest.raises(CompilerNotFoundError):
            find_tsc(tmp_path, explicit=str(tmp_path / "no-tsc"))


class TestTscLanguageService:
    """Test cases for TscLanguageService with tsc mocked out."""

    def setup_method(self):
        self.doc = VirtualDocument()
        self.options = CompilerOptionSet(base={"module": "commonjs", "target": "es2017"})

    def _fake_run(self, emitted="var x = 1;\n", stdout="", returncode=0):
        """``{source}`` in ``stdout`` is replaced by the name of the compiled file."""
        def run(cmd, **kwargs):
            config_path = Path(cmd[cmd.index("-p") + 1])
            config = json.loads(config_path.read_text())
            source = Path(config["files"][0])
            self.seen_config = config
            self.seen_source = source.read_text()
            if emitted is not None:
                out_dir = Path(config["compilerOptions"]["outDir"])
                out_dir.mkdir(parents=True, exist_ok=True)
                (out_dir / (source.stem + ".js")).write_text(emitted)
            return subprocess.CompletedProcess(
                cmd, returncode, stdout=stdout.format(source=source.name), stderr=""
            )
        return MagicMock(side_effect=run)

    def _service(self, working_dir, **kwargs):
        service = TscLanguageService(working_dir, **kwargs)
        service._tsc = "tsc"
        return service

    def test_compile_success(self, tmp_path):
        service = self._service(tmp_path, tsc_path="tsc")
        self.doc.stage("let x = 1;")
        fake = self._fake_run()
        with patch("notebook_ts.language_service.subprocess.run", fake):
            result = service.compile(self.doc, self.options)

        assert result.ok
        assert result.emitted_text == "var x = 1;\n"
        assert self.seen_source == "let x = 1;"
        assert self.seen_config["compilerOptions"]["module"] == "commonjs"
        assert "noCheck" not in self.seen_config["compilerOptions"]
        assert fake.call_args.kwargs["cwd"] == str(tmp_path.resolve())

        source_path = service.source_path
        assert source_path.parent == tmp_path.resolve()
        assert source_path.name.startswith(SOURCE_PREFIX)
        service.close()
        assert not source_path.exists()

    def test_compile_with_diagnostics(self, tmp_path):
        service = self._service(tmp_path)
        self.doc.stage("let x: number = 'a';")
        stdout = "{source}(1,5): error TS2322: Type 'string' is not assignable to type 'number'.\n"
        with patch("notebook_ts.language_service.subprocess.run", self._fake_run(stdout=stdout, returncode=2)):
            result = service.compile(self.doc, self.options)

        assert not result.ok
        assert result.diagnostics[0].origin == FileOrigin.CURRENT_CELL
        service.close()

    def test_emit_skipped(self, tmp_path):
        service = self._service(tmp_path)
        self.doc.stage("let x = 1;")
        with patch("notebook_ts.language_service.subprocess.run", self._fake_run(emitted=None)):
            result = service.compile(self.doc, self.options)

        assert result.emit_skipped
        assert not result.ok
        service.close()

    def test_type_check_off_sets_no_check(self, tmp_path):
        service = self._service(tmp_path)
        self.doc.stage("let x = 1;")
        with patch("notebook_ts.language_service.subprocess.run", self._fake_run()):
            service.compile(self.doc, self.options, type_check=False)

        assert self.seen_config["compilerOptions"]["noCheck"] is True
        service.close()

    def test_services_in_one_directory_use_separate_files(self, tmp_path):
        first, second = self._service(tmp_path), self._service(tmp_path)
        first_doc, second_doc = VirtualDocument(), VirtualDocument()
        first_doc.stage("let a = 1;")
        second_doc.stage("let b = 2;")

        with patch("notebook_ts.language_service.subprocess.run", self._fake_run()):
            first.compile(first_doc, self.options)
            second.compile(second_doc, self.options)
            assert first.source_path != second.source_path

            first.compile(first_doc, self.options)
            assert self.seen_source == "let a = 1;"

        second.close()
        assert first.source_path.read_text() == "let a = 1;"
        first.close()

    def test_recompiles_unless_reuse_requested(self, tmp_path):
        service = self._service(tmp_path)
        self.doc.stage("let x = 1;")
        fake = self._fake_run()
        with patch("notebook_ts.language_service.subprocess.run", fake):
            first = service.compile(self.doc, self.options)
            service.compile(self.doc, self.options)
            assert fake.call_count == 2

            again = service.compile(self.doc, self.options, reuse=True)
            assert fake.call_count == 2
            assert again.emitted_text == first.emitted_text

            service.compile(self.doc, CompilerOptionSet(base={"module": "commonjs"}), reuse=True)
            assert fake.call_count == 3
        service.close()

    def test_failure_without_diagnostics(self, tmp_path):
        service = self._service(tmp_path)
        self.doc.stage("let x = 1;")
        crashed = MagicMock(return_value=subprocess.CompletedProcess([], 1, stdout="", stderr="boom"))
        with patch("notebook_ts.language_service.subprocess.run", crashed):
            with pytest.raises(CompilerError, match="boom"):
                service.compile(self.doc, self.options)
        service.close()

    def test_timeout(self, tmp_path):
        service = self._service(tmp_path, timeout=0.5)
        self.doc.stage("let x = 1;")
        slow = MagicMock(side_effect=subprocess.TimeoutExpired(cmd="tsc", timeout=0.5))
        with patch("notebook_ts.language_service.subprocess.run", slow):
            with pytest.raises(CompilerError, match="timed out"):
                service.compile(self.doc, self.options)
        service.close()

    def test_undecodable_output(self, tmp_path):
        service = self._service(tmp_path)
        self.doc.stage("let x = 1;")
        garbled = MagicMock(side_effect=UnicodeDecodeError("utf-8", b"\xff", 0, 1, "invalid start byte"))
        with patch("notebook_ts.language_service.subprocess.run", garbled):
            with pytest.raises(CompilerError, match="Cannot run"):
                service.compile(self.doc, self.options)
        service.close()

    def test_unwritable_working_dir(self, tmp_path):
        service = self._service(tmp_path / "missing")
        self.doc.stage("let x = 1;")
        with pytest.raises(CompilerError, match="Cannot write compiler input"):
            service.compile(self.doc, self.options)
        service.close()

    def test_unreadable_output(self, tmp_path):
        service = self._service(tmp_path)
        self.doc.stage("let x = 1;")
        with patch("notebook_ts.language_service.subprocess.run", self._fake_run()):
            with patch.object(TscLanguageService, "_read_emitted", side_effect=PermissionError("denied")):
                with pytest.raises(CompilerError, match="Cannot read compiler output"):
                    service.compile(self.doc, self.options)
        service.close()


class TestLanguageServiceCache:
    """Idempotent re-query through the base class cache."""

    def test_same_document_same_result(self):
        service = FakeLanguageService()
        doc = VirtualDocument()
        doc.stage("let x = 1;")
        options = CompilerOptionSet(base={"module": "commonjs"})

        first = service.compile(doc, options)
        second = service.compile(doc, options, reuse=True)
        assert second is first
        assert len(service.calls) == 1

    def test_plain_compile_always_runs(self):
        service = FakeLanguageService()
        doc = VirtualDocument()
        doc.stage("let x = 1;")
        options = CompilerOptionSet(base={"module": "commonjs"})

        service.compile(doc, options)
        service.compile(doc, options)
        assert len(service.calls) == 2

    def test_type_check_switch_invalidates(self):
        service = FakeLanguageService()
        doc = VirtualDocument()
        doc.stage("let x = 1;")
        options = CompilerOptionSet(base={"module": "commonjs"})

        service.compile(doc, options)
        service.compile(doc, options, type_check=False, reuse=True)
        assert len(service.calls) == 2


@pytest.mark.skipif(shutil.which("tsc") is None, reason="tsc is not installed")
class TestRealCompiler:
    """The four-cell scenario against the real TypeScript compiler."""

    def test_scenario(self, tmp_path):
        write_tsconfig(tmp_path, {
            "module": "commonjs",
            "target": "es2017",
            "esModuleInterop": True,
            "types": [],
        })
        session = TranspileSession(KernelConfig(working_dir=tmp_path))
        try:
            first = session.transpile("let x = 1;")
            assert "x = 1" in first

            second = session.transpile("let y = x + 1;")
            assert "y = x + 1" in second
            assert "x = 1" not in second

            with pytest.raises(TranspileError) as exc_info:
                session.transpile('let x = "a";')
            # tsc flags both declarations; the earlier one is a committed line
            assert "Line 1, Character 5" in exc_info.value.message

            fourth = session.transpile("const z: number = x;")
            assert "z = x" in fourth
        finally:
            session.close()
