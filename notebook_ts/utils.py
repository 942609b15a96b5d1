"""
Utility functions for notebook-ts.
"""

from typing import Any

from rich.syntax import Syntax
from rich.text import Text

from notebook_ts.kernel import JAVASCRIPT_MIME


def format_output(output: dict[str, Any]) -> str:
    """
    Format an output dictionary for display (plain text).

    Args:
        output: Output dictionary from ExecutionResult

    Returns:
        Formatted string for display
    """
    output_type = output.get("type", "")

    if output_type == "execute_result":
        data = output.get("data", {})
        if JAVASCRIPT_MIME in data:
            return data[JAVASCRIPT_MIME]
        return data.get("text/plain", "")

    elif output_type == "error":
        ename = output.get("ename", "Error")
        evalue = output.get("evalue", "")
        return f"{ename}: {evalue}"

    elif output_type == "display_data":
        data = output.get("data", {})
        return data.get("text/plain", str(data))

    return str(output)


def format_rich_output(output: dict[str, Any]):
    """
    Format an output dictionary as a Rich renderable.

    Args:
        output: Output dictionary from ExecutionResult

    Returns:
        Rich renderable object for console display
    """
    output_type = output.get("type", "")

    if output_type == "execute_result":
        data = output.get("data", {})
        code = data.get(JAVASCRIPT_MIME, data.get("text/plain", ""))
        if not code.strip():
            return Text("(no new code)", style="dim italic")
        return Syntax(code.rstrip("\n"), "javascript", theme="monokai", line_numbers=False)

    elif output_type == "error":
        ename = output.get("ename", "Error")
        evalue = output.get("evalue", "")

        error_text = Text()
        error_text.append(f"{ename}", style="bold red")
        error_text.append(f":\n{evalue}", style="red")
        return error_text

    elif output_type == "display_data":
        data = output.get("data", {})
        return Text(data.get("text/plain", str(data)), style="cyan")

    return Text(str(output), style="dim")


def get_cell_status(cell) -> tuple[str, str]:
    """
    Get status indicator and style for a cell.

    Returns:
        Tuple of (indicator_string, rich_style)
    """
    if cell.outputs:
        has_error = any(o.get("type") == "error" for o in cell.outputs)
        if has_error:
            return ("err", "red")
        return ("ok", "green")
    elif cell.execution_count is not None:
        return ("ok", "green")
    return ("--", "dim")
