"""
Output differencing: the part of a whole-program emission a new cell added.
"""

import difflib


def added_lines(previous: str, new: str) -> list[str]:
    """Lines inserted into or replaced in ``new`` relative to ``previous``, in order."""
    old_lines = previous.splitlines()
    new_lines = new.splitlines()
    matcher = difflib.SequenceMatcher(None, old_lines, new_lines, autojunk=False)

    added = []
    for tag, _i1, _i2, j1, j2 in matcher.get_opcodes():
        if tag in ("insert", "replace"):
            added.extend(new_lines[j1:j2])
    return added


def extract_new(previous: str, new: str) -> str:
    """
    Return the slice of ``new`` that ``previous`` did not already contain.

    The compiler always emits the whole program, so the code for a new cell is
    whatever the line diff marks as added. Each returned line ends with a
    newline; no additions give an empty string.
    """
    lines = added_lines(previous, new)
    if not lines:
        return ""
    return "\n".join(lines) + "\n"
