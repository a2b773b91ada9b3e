"""Interactive chat shell for december."""

from __future__ import annotations

from prompt_toolkit import PromptSession
from prompt_toolkit.history import InMemoryHistory
from prompt_toolkit.key_binding import KeyBindings

from december import terminal_ui as ui
from december.llm_clients import TokenUsage
from december.orchestrator import ASSISTANT, DONE, TOOL_PROCESSING, Orchestrator


async def render_turn(events) -> str:
    """Print a streamed turn as it grows and return the finalized reply.

    The done event carries command-cleaned text, which is reprinted when it
    differs from what was streamed.
    """
    shown = ""
    final = ""
    async for event in events:
        if event.type == ASSISTANT:
            content = event.data.content
            if not content.startswith(shown):
                ui.print_msg()
                shown = ""
            ui.print_delta(content[len(shown):])
            shown = content
        elif event.type == TOOL_PROCESSING:
            ui.print_tool_processing(event.data["message"], event.data["tool_calls"])
            shown = ""
        elif event.type == DONE:
            final = event.data.content
            ui.print_msg()
            if final != shown:
                ui.print_msg()
                ui.print_msg(final, markup=False)
            ui.print_tool_errors(event.detail.get("tool_errors", []))
            ui.print_turn_summary(event.detail["commands_executed"], event.detail["errors"])
    return final


class ChatShell:
    """Streams each turn through the orchestrator against one environment.

    ``/usage`` prints token usage, ``/docs`` lists the instruction corpus,
    ``exit`` or ``quit`` leaves.
    """

    def __init__(self, orchestrator: Orchestrator, environment_id: str, usage: TokenUsage | None = None):
        self.orchestrator = orchestrator
        self.environment_id = environment_id
        self.usage = usage
        self.session = PromptSession(history=InMemoryHistory())
        self.key_bindings = self._build_key_bindings()

    async def run(self) -> None:
        """Main loop. Returns on exit, EOF or Ctrl-C."""
        self._print_welcome()
        while True:
            try:
                user_input = (
                    await self.session.prompt_async("december> ", key_bindings=self.key_bindings)
                ).strip()
            except (EOFError, KeyboardInterrupt):
                break
            if not user_input:
                continue
            if user_input.lower() in ("exit", "quit", "/quit"):
                break
            if user_input.startswith("/"):
                self._handle_slash_command(user_input)
                continue
            await self.run_turn(user_input)
        ui.print_msg("\n[dim cyan]Goodbye.[/dim cyan]")

    async def run_turn(self, text: str) -> str:
        return await render_turn(self.orchestrator.send_message_stream(self.environment_id, text))

    def _handle_slash_command(self, text: str) -> None:
        cmd = text.lstrip("/").split()[0].lower() if text.strip("/ ") else ""
        if cmd == "usage" and self.usage is not None:
            ui.print_msg(self.usage.summary())
        elif cmd == "docs":
            selector = self.orchestrator.selector
            ui.print_corpus(selector.stats(), str(selector.store.root))
        else:
            ui.print_msg("Commands: /usage, /docs, /quit")

    def _build_key_bindings(self):
        kb = KeyBindings()

        @kb.add("c-l")
        def _clear_screen(event):
            event.app.renderer.clear()

        return kb

    def _print_welcome(self) -> None:
        from december import __version__

        ui.print_msg(f"[bold cyan]december[/bold cyan] [dim]v{__version__}[/dim]")
        ui.print_msg(f"[cyan]Environment:[/cyan] {self.environment_id}")
        ui.print_msg("[dim]Type /quit to exit, or just ask for a change.[/dim]")
        ui.print_msg()
