"""Terminal output formatting for the december CLI."""

from __future__ import annotations

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

# force_terminal=False lets rich auto-detect TTY (important for tests).
_console = Console()


def _rich_tty() -> bool:
    """Return True when attached to a real terminal."""
    return _console.is_terminal


def print_msg(text: str = "", **kwargs) -> None:
    _console.print(text, highlight=False, **kwargs)


def print_error(text: str) -> None:
    _console.print(f"[bold red]Error:[/bold red] {text}", highlight=False)


def print_delta(text: str) -> None:
    """Write streamed text without a trailing newline."""
    _console.print(text, end="", markup=False, highlight=False, soft_wrap=True)


def print_init_complete(config_path: str, provider: str, model: str) -> None:
    print_msg(f"Initialized december at {config_path}")
    print_msg(f"  Provider: {provider}")
    print_msg(f"  Model: {model}")
    print_msg()
    print_msg("Next: export your API key and run `december chat`.")


def print_status_line(label: str, marker: str, detail: str) -> None:
    """Print a single status line with marker."""
    color_map = {
        "[OK]": "[green][OK][/green]",
        "[!!]": "[yellow][!!][/yellow]",
        "[X]": "[red][X][/red]",
    }
    styled_marker = color_map.get(marker, marker)
    _console.print(f"  {label} {styled_marker} {detail}", highlight=False)


def print_corpus(stats: dict, instructions_dir: str) -> None:
    """Print the instruction corpus summary."""
    loaded = stats["core_instructions_loaded"]
    print_msg(f"Instructions: {instructions_dir}")
    print_status_line("core.txt", "[OK]" if loaded else "[X]", "loaded" if loaded else "missing")
    print_msg()

    if _rich_tty():
        table = Table(title="Instruction Corpus", show_header=True, header_style="bold")
        table.add_column("Collection")
        table.add_column("Document")
        for name in stats["available_examples"]:
            table.add_row("examples", name)
        for name in stats["available_context"]:
            table.add_row("context", name)
        _console.print(table)
    else:
        print(f"Examples ({len(stats['available_examples'])}):")
        for name in stats["available_examples"]:
            print(f"  {name}")
        print(f"Context ({len(stats['available_context'])}):")
        for name in stats["available_context"]:
            print(f"  {name}")


def print_analysis(analysis: dict) -> None:
    """Print the selection made for one message."""
    print_msg(f"Message: {analysis['message']}")
    print_msg(f"  Examples: {', '.join(analysis['examples']) or '-'}")
    print_msg(f"  Context: {', '.join(analysis['context']) or '-'}")
    print_msg(f"  Prompt length: {analysis['prompt_length']:,} characters")


def print_tool_processing(message: str, tool_calls: list[dict]) -> None:
    print_msg()
    print_msg(f"[dim]{message}[/dim]")
    for call in tool_calls:
        names = ", ".join(call["examples"] + call["context"])
        print_msg(f"[dim]  load_examples: {names}[/dim]")


def print_tool_errors(errors: list[str]) -> None:
    for error in errors:
        print_msg(f"[yellow]Could not load requested documents:[/yellow] {error}")


def print_turn_summary(commands_executed: int, errors: list[str]) -> None:
    """Print command execution results after a turn."""
    if not commands_executed:
        return
    body = f"{commands_executed} command(s) executed"
    if errors:
        body += "\n" + "\n".join(f"- {e}" for e in errors)

    if _rich_tty():
        _console.print(
            Panel(body, border_style="yellow" if errors else "green", expand=False),
            highlight=False,
        )
    else:
        print(body)
