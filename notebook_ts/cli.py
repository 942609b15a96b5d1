"""
CLI interface for notebook-ts.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.prompt import Prompt
from rich.syntax import Syntax
from rich.status import Status

from notebook_ts.config import KernelConfig
from notebook_ts.kernel import TypeScriptKernel
from notebook_ts.notebook import NOTEBOOK_SUFFIX, CellType, Notebook
from notebook_ts.utils import format_output, format_rich_output, get_cell_status


console = Console()


def _setup_logging(debug: bool) -> None:
    level = logging.DEBUG if debug else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=debug)],
        force=True,
    )


def _build_kernel(ctx: click.Context) -> TypeScriptKernel:
    return TypeScriptKernel(config=ctx.obj["config"])


def _print_result(result, label: str) -> None:
    for output in result.outputs:
        rich_out = format_rich_output(output)
        if output.get("type") == "error":
            console.print(Panel(
                rich_out,
                title="[red]Error[/red]",
                title_align="left",
                border_style="red",
                padding=(0, 1),
            ))
        else:
            console.print(Panel(
                rich_out,
                title=f"[blue]{label}[/blue]",
                title_align="left",
                border_style="blue",
                padding=(0, 1),
            ))


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.option(
    "--working-dir", "-C",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory for tsconfig.json lookup and module resolution",
)
@click.option("--tsc", "tsc_path", default=None, help="Path of the tsc executable")
@click.option("--off-es-module-interop", is_flag=True, help="Turn off the 'esModuleInterop' warning and default")
@click.option("--no-typecheck", is_flag=True, help="Skip semantic checking unless a cell asks for it")
@click.option("--timeout", type=float, default=60.0, show_default=True, help="Seconds per compiler run")
@click.pass_context
def main(
    ctx: click.Context,
    debug: bool,
    working_dir: Optional[Path],
    tsc_path: Optional[str],
    off_es_module_interop: bool,
    no_typecheck: bool,
    timeout: float,
):
    """notebook-ts: Incremental TypeScript compilation for notebook cells."""
    _setup_logging(debug)
    ctx.ensure_object(dict)
    ctx.obj["config"] = KernelConfig(
        working_dir=(working_dir or Path.cwd()).resolve(),
        tsc_path=tsc_path,
        interop_warning=not off_es_module_interop,
        type_check=not no_typecheck,
        timeout=timeout,
    )


@main.command()
@click.argument("path", type=click.Path(), default=f"notebook{NOTEBOOK_SUFFIX}")
@click.option("--name", "-n", default=None, help="Notebook name")
def new(path: str, name: str):
    """Create a new notebook."""
    if name is None:
        name = Path(path).stem

    nb = Notebook.new(name=name)
    nb.add_cell(
        type=CellType.CODE,
        source="// Welcome to notebook-ts!\nlet greeting: string = \"hello\";\n",
    )
    nb.add_cell(
        type=CellType.MARKDOWN,
        source="## Notes\n\nAdd your notes here.",
    )
    nb.save(Path(path))

    console.print(Panel(
        f"[green]Created:[/green] {path}\n"
        f"[dim]Name:[/dim] {name}\n"
        f"[dim]Cells:[/dim] 2 (1 code, 1 markdown)",
        title="[bold blue]notebook-ts[/bold blue]",
        border_style="green",
    ))
    console.print(f"\n[dim]Run with:[/dim] notebook-ts run {path}")


@main.command()
@click.argument("path", type=click.Path(exists=True))
@click.option("--stop-on-error/--keep-going", default=True, help="Stop at the first rejected cell")
@click.pass_context
def run(ctx: click.Context, path: str, stop_on_error: bool):
    """Transpile every code cell of a notebook in order."""
    nb = Notebook.load(Path(path))
    nb.clear_outputs()
    kernel = _build_kernel(ctx)

    nb_name = nb.metadata.get("name", Path(path).stem)
    console.print(Panel(
        f"[bold]{nb_name}[/bold]  [dim]{path}[/dim]",
        title="[bold blue]notebook-ts[/bold blue]",
        border_style="blue",
    ))
    console.print()

    code_cells = nb.code_cells()
    if not code_cells:
        console.print("[yellow]No code cells to transpile[/yellow]")
        return

    success_count = 0
    try:
        for cell_idx, cell in code_cells:
            console.print(f"[dim]--- Cell {cell_idx} ---[/dim]")
            console.print(Syntax(cell.source, "typescript", theme="monokai", line_numbers=True))

            with Status("Compiling...", console=console, spinner="dots"):
                result = kernel.execute_cell(cell.source)

            cell.outputs = result.outputs
            cell.execution_count = result.execution_count

            status, style = get_cell_status(cell)
            _print_result(result, f"Out [{result.execution_count}] [{style}]{status}[/{style}]")
            console.print()

            if result.success:
                success_count += 1
            elif stop_on_error:
                break
    finally:
        kernel.shutdown()

    if Path(path).suffix != ".ts":
        nb.save(Path(path))

    total = len(code_cells)
    if success_count == total:
        console.print(f"[green]All {total} cells transpiled successfully[/green]")
    else:
        console.print(f"[yellow]Transpiled {success_count}/{total} cells[/yellow]")
        sys.exit(1)


@main.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.option("--plain", is_flag=True, help="Print bare JavaScript without decoration")
@click.pass_context
def transpile(ctx: click.Context, path: str, plain: bool):
    """Transpile a notebook, or a .ts script whose cells are separated by '// %%' lines."""
    cells = [cell.source for _, cell in Notebook.load(Path(path)).code_cells()]
    kernel = _build_kernel(ctx)
    failed = False

    try:
        for index, source in enumerate(cells):
            result = kernel.execute_cell(source)
            if plain:
                for output in result.outputs:
                    stream = sys.stdout if result.success else sys.stderr
                    stream.write(format_output(output))
                    if not result.success:
                        stream.write("\n")
            else:
                _print_result(result, f"Cell {index}")
            if not result.success:
                failed = True
                break
    finally:
        kernel.shutdown()

    if failed:
        sys.exit(1)


@main.command()
@click.pass_context
def repl(ctx: click.Context):
    """Compile cells typed at the prompt. An empty line submits a cell."""
    kernel = _build_kernel(ctx)
    console.print(Panel(
        "Type TypeScript; an empty line submits the cell.\n"
        "Enter [bold cyan]:quit[/bold cyan] to leave, "
        "[bold cyan]:reset[/bold cyan] to start over.",
        title="[bold blue]notebook-ts[/bold blue]",
        border_style="cyan",
    ))

    try:
        while True:
            lines = []
            prompt = f"In [{kernel.execution_count + 1}]"
            while True:
                line = Prompt.ask(prompt if not lines else "...", default="", show_default=False)
                if not line:
                    break
                lines.append(line)

            source = "\n".join(lines)
            if source.strip() == ":quit":
                break
            if source.strip() == ":reset":
                kernel.reset()
                console.print("[dim]Session reset[/dim]")
                continue
            if not source.strip():
                continue

            result = kernel.execute_cell(source)
            _print_result(result, f"Out [{result.execution_count}]")
    except (EOFError, KeyboardInterrupt):
        pass
    finally:
        kernel.shutdown()

    console.print("\n[green]Goodbye![/green]")


if __name__ == "__main__":
    main()
