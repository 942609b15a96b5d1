"""
Pragma parsing: leading ``%`` directive lines at the top of a cell.

A directive looks like ``%<key>[!] <value>``:

    %async
    %strict! true
    %target "es2020"

Kernel-level keys (``async``, ``asynchronous``, ``typecheck``) switch kernel
behaviour for the cell. Every other key is a compiler option whose value is a
JSON literal. A trailing ``!`` makes the option stick for later cells too.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Optional

PRAGMA_MARKER = "%"
PERMANENT_SUFFIX = "!"

ASYNC_KEYS = {"async", "asynchronous"}
TYPECHECK_KEYS = {"typecheck"}


class PragmaError(ValueError):
    """Raised when a directive line cannot be decoded."""


@dataclass(frozen=True)
class OptionPatch:
    """A single compiler-option override from a directive line."""
    name: str
    value: Any
    permanent: bool = False


@dataclass
class PragmaOverride:
    """Everything the directive lines of one cell asked for."""
    patches: list[OptionPatch] = field(default_factory=list)
    asynchronous: bool = False
    type_check: Optional[bool] = None

    @property
    def transient(self) -> dict[str, Any]:
        return {p.name: p.value for p in self.patches if not p.permanent}

    @property
    def permanent(self) -> dict[str, Any]:
        return {p.name: p.value for p in self.patches if p.permanent}

    def options(self) -> dict[str, Any]:
        """All patched options for this cell, later lines winning."""
        return {p.name: p.value for p in self.patches}

    def is_empty(self) -> bool:
        return not self.patches and not self.asynchronous and self.type_check is None


def _parse_value(key: str, raw: str) -> Any:
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        raise PragmaError(
            f"Invalid value for directive '{PRAGMA_MARKER}{key}': {raw!r} "
            f"is not a JSON literal ({e.msg})"
        ) from e


def parse_directive(line: str, override: PragmaOverride) -> None:
    """Decode one directive line into ``override``."""
    body = line[len(PRAGMA_MARKER):]
    keyword, _, value = body.strip().partition(" ")
    value = value.strip()

    if not keyword or keyword == PERMANENT_SUFFIX:
        raise PragmaError(f"Empty directive: {line!r}")

    permanent = keyword.endswith(PERMANENT_SUFFIX)
    name = keyword[: -len(PERMANENT_SUFFIX)] if permanent else keyword
    lowered = name.lower()

    if lowered in ASYNC_KEYS:
        override.asynchronous = True
        return

    if lowered in TYPECHECK_KEYS:
        flag = _parse_value(keyword, value or "true")
        if not isinstance(flag, bool):
            raise PragmaError(
                f"Directive '{PRAGMA_MARKER}{keyword}' expects true or false, got {value!r}"
            )
        override.type_check = flag
        return

    override.patches.append(
        OptionPatch(name=name, value=_parse_value(keyword, value), permanent=permanent)
    )


def parse_pragmas(raw_code: str) -> tuple[str, PragmaOverride]:
    """
    Split a raw cell into compilable code and its directive overrides.

    Args:
        raw_code: Cell text as typed by the user

    Returns:
        Tuple of (cleaned code, PragmaOverride). The cleaned code has every
        leading directive line removed.

    Raises:
        PragmaError: if a directive value is not a valid literal
    """
    override = PragmaOverride()
    lines = raw_code.split("\n")

    if not lines[0].startswith(PRAGMA_MARKER):
        return raw_code, override

    index = 0
    while index < len(lines) and lines[index].startswith(PRAGMA_MARKER):
        parse_directive(lines[index], override)
        index += 1

    return "\n".join(lines[index:]), override
