"""
Compiler option resolution: project tsconfig.json plus per-cell directives.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from notebook_ts.file_watcher import FileWatcher
from notebook_ts.pragma import PragmaOverride

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "tsconfig.json"

# Used when no tsconfig.json is found above the working directory.
DEFAULT_COMPILER_OPTIONS: dict[str, Any] = {
    "module": "commonjs",
    "target": "es2017",
    "esModuleInterop": True,
}

# Options holding paths relative to the tsconfig.json that declares them.
PATH_OPTIONS = {
    "baseUrl",
    "rootDir",
    "rootDirs",
    "outDir",
    "declarationDir",
    "typeRoots",
    "tsBuildInfoFile",
}

_IMPORT_RE = re.compile(r"^\s*import\s", re.MULTILINE)
_UNSET = object()


class ConfigError(Exception):
    """Raised when a project configuration file cannot be used."""


class ProjectConfig(BaseModel):
    """The parts of tsconfig.json the kernel reads."""
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    compiler_options: dict[str, Any] = Field(default_factory=dict, alias="compilerOptions")
    extends: Optional[str] = None


@dataclass(frozen=True)
class CompilerOptionSet:
    """Options for one compile: base, then permanent patches, then transient ones."""
    base: dict[str, Any] = field(default_factory=dict)
    permanent_patches: dict[str, Any] = field(default_factory=dict)
    transient: dict[str, Any] = field(default_factory=dict)
    source_mtime: Optional[float] = None
    config_path: Optional[Path] = None

    @property
    def effective(self) -> dict[str, Any]:
        merged = dict(self.base)
        merged.update(self.permanent_patches)
        merged.update(self.transient)
        return merged

    def fingerprint(self) -> str:
        """Stable text key of the effective options."""
        return json.dumps(self.effective, sort_keys=True, default=str)


def find_config_file(start: str | Path, filename: str = CONFIG_FILENAME) -> Optional[Path]:
    """Search ``filename`` in ``start`` and each of its parents."""
    current = Path(start).resolve()
    for directory in (current, *current.parents):
        candidate = directory / filename
        if candidate.is_file():
            return candidate
    return None


def _absolutize(options: dict[str, Any], base_dir: Path) -> dict[str, Any]:
    resolved = dict(options)
    for key in PATH_OPTIONS & resolved.keys():
        value = resolved[key]
        if isinstance(value, str):
            resolved[key] = str((base_dir / value).resolve())
        elif isinstance(value, list):
            resolved[key] = [
                str((base_dir / item).resolve()) if isinstance(item, str) else item
                for item in value
            ]
    return resolved


def _resolve_extends(base_dir: Path, extends: str) -> Path:
    if not (extends.startswith(".") or Path(extends).is_absolute()):
        raise ConfigError(f"'extends' of a package ({extends!r}) is not supported")

    candidate = (base_dir / extends).resolve()
    if not candidate.is_file() and candidate.suffix != ".json":
        candidate = candidate.with_name(candidate.name + ".json")
    if not candidate.is_file():
        raise ConfigError(f"Extended configuration not found: {extends}")
    return candidate


def load_project_config(path: str | Path, _seen: tuple[Path, ...] = ()) -> dict[str, Any]:
    """
    Read the compiler options of a tsconfig.json file.

    Relative ``extends`` chains are followed, parents first. Path-valued
    options come back absolute.

    Raises:
        ConfigError: if the file cannot be read or is not a valid configuration
    """
    path = Path(path).resolve()
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        config = ProjectConfig.model_validate_json(text)
    except ValidationError as e:
        errors = "; ".join(err["msg"] for err in e.errors())
        raise ConfigError(f"{path}: {errors}") from e

    options: dict[str, Any] = {}
    if config.extends:
        parent = _resolve_extends(path.parent, config.extends)
        if parent in _seen or parent == path:
            raise ConfigError(f"Circular 'extends' in {path}")
        options.update(load_project_config(parent, _seen + (path,)))

    options.update(_absolutize(config.compiler_options, path.parent))
    return options


class OptionResolver:
    """
    Owns the project-level compiler options of one session.

    The configuration file is located lazily on first use and re-read whenever
    it changes on disk. Problems with it never fail a compile: they turn into
    warnings, collected until the session takes them with ``take_warnings``.
    """

    def __init__(
        self,
        working_dir: str | Path,
        interop_warning: bool = True,
        defaults: Optional[dict[str, Any]] = None,
    ):
        """
        Args:
            working_dir: Directory the tsconfig.json search starts from
            interop_warning: Warn about imports without esModuleInterop
            defaults: Options used when no configuration file exists
        """
        self.working_dir = Path(working_dir).resolve()
        self.interop_warning = interop_warning
        self.defaults = dict(DEFAULT_COMPILER_OPTIONS if defaults is None else defaults)
        if not interop_warning and defaults is None:
            self.defaults["esModuleInterop"] = False

        self.config_path: Optional[Path] = None
        self._watcher: Optional[FileWatcher] = None
        self._base: Optional[dict[str, Any]] = None
        self._permanent: dict[str, Any] = {}
        self._warnings: list[str] = []
        self._announced_module: Any = _UNSET

    @property
    def base(self) -> dict[str, Any]:
        self._refresh()
        return dict(self._base)

    @property
    def permanent_patches(self) -> dict[str, Any]:
        return dict(self._permanent)

    def warn(self, message: str) -> None:
        """Queue ``message`` unless the same one is already waiting."""
        if message in self._warnings:
            return
        logger.warning(message)
        self._warnings.append(message)

    def take_warnings(self) -> list[str]:
        """Return and clear the queued warnings."""
        warnings, self._warnings = self._warnings, []
        return warnings

    def _refresh(self) -> None:
        if self._base is None:
            self.config_path = find_config_file(self.working_dir)
            if self.config_path is None:
                self._base = dict(self.defaults)
                self.warn(
                    f"Configuration is not found! Default configuration will be used: "
                    f"{json.dumps(self.defaults)}"
                )
                return
            logger.info("Using project configuration %s", self.config_path)
            self._watcher = FileWatcher(self.config_path)
            self._load_base()
        elif self._watcher is not None and self._watcher.check():
            logger.info("Project configuration %s changed, reloading", self.config_path)
            self._watcher.acknowledge_changes()
            self._load_base()

    def _load_base(self) -> None:
        try:
            options = load_project_config(self.config_path)
        except ConfigError as e:
            self.warn(f"Error parsing configuration file! {e}")
            if self._base is None:
                self._base = dict(self.defaults)
            return
        self._base = options
        self._announced_module = _UNSET

    def resolve(self, code: str, override: Optional[PragmaOverride] = None) -> CompilerOptionSet:
        """
        Build the option set for compiling ``code`` with ``override`` applied.

        Permanent patches of this cell take part in this compile but only
        survive into later cells once ``commit`` is called with the result.
        """
        self._refresh()
        override = override or PragmaOverride()

        permanent = dict(self._permanent)
        permanent.update(override.permanent)
        option_set = CompilerOptionSet(
            base=dict(self._base),
            permanent_patches=permanent,
            transient=override.transient,
            source_mtime=self._watcher.mtime if self._watcher is not None else None,
            config_path=self.config_path,
        )
        self._check_options(code, option_set.effective)
        return option_set

    def _check_options(self, code: str, effective: dict[str, Any]) -> None:
        if self.interop_warning and not effective.get("esModuleInterop") and _IMPORT_RE.search(code):
            self.warn(
                "The option 'esModuleInterop' is not true! Import statements may not work "
                "as expected. Consider adding 'esModuleInterop' to your tsconfig.json or "
                "'%esModuleInterop! true' at the top of the cell."
            )

        module = effective.get("module")
        if isinstance(module, str) and module.lower() == "commonjs":
            self._announced_module = _UNSET
        elif module != self._announced_module:
            self._announced_module = module
            self.warn(
                f"The option 'module' is {json.dumps(module)}, not \"commonjs\"! "
                "Emitted code may not run in the kernel."
            )

    def commit(self, option_set: CompilerOptionSet) -> None:
        """Keep the permanent patches of an accepted cell for later cells."""
        if option_set.permanent_patches != self._permanent:
            logger.debug("Permanent option patches now %s", option_set.permanent_patches)
        self._permanent = dict(option_set.permanent_patches)
