"""
CLI for december.

Usage:
    december init [path]
    december chat
    december send "add a dark mode toggle" --stream
    december analyze "fix the broken button component"
    december docs
"""

import argparse
import asyncio
import logging
import os
import shutil
import sys
from pathlib import Path

from . import __version__
from . import terminal_ui as ui
from .config_manager import AgentConfig, ConfigManager
from .context_selector import ContextSelector
from .documents import DocumentStore
from .llm_clients import PROVIDERS, TokenUsage, create_client
from .orchestrator import Orchestrator
from .sandbox import LocalDirectorySandbox
from .sessions import SessionStore
from .shell import ChatShell, render_turn

DEFAULT_ENVIRONMENT = "."


def _load_config(args) -> tuple[Path, AgentConfig]:
    project_path = Path(getattr(args, "path", ".") or ".").resolve()
    config = ConfigManager(str(project_path)).load_config()
    if getattr(args, "provider", None):
        config.provider = args.provider
    if getattr(args, "model", None):
        config.model = args.model
    return project_path, config


def build_selector(config: AgentConfig) -> ContextSelector:
    return ContextSelector(DocumentStore(config.resolved_instructions_dir))


def build_orchestrator(project_path: Path, config: AgentConfig):
    """Wire client, sandbox, selector and session store from config."""
    usage = TokenUsage()
    client = create_client(
        usage,
        provider=config.provider,
        model=config.model,
        base_url=config.base_url,
        max_tokens=config.max_tokens,
    )
    orchestrator = Orchestrator(
        client=client,
        sandbox=LocalDirectorySandbox(project_path / config.workspace_dir),
        selector=build_selector(config),
        sessions=SessionStore(),
        temperature=config.temperature,
        max_tokens=config.max_tokens,
    )
    return orchestrator, usage


def cmd_init(args):
    """Create .december/config.yaml in the project."""
    cm = ConfigManager(args.path)
    if cm.is_initialized():
        if not args.force:
            ui.print_error(f".december/ already exists at {cm.december_dir}")
            ui.print_msg("Use --force to overwrite.")
            sys.exit(1)
        shutil.rmtree(cm.december_dir, ignore_errors=True)

    config = AgentConfig()
    if args.provider:
        config.provider = args.provider
    if args.model:
        config.model = args.model
    elif config.provider == "anthropic":
        from .llm_clients import DEFAULT_ANTHROPIC_MODEL

        config.model = DEFAULT_ANTHROPIC_MODEL
    cm.initialize(config)
    ui.print_init_complete(str(cm.config_path), config.provider, config.model)


def cmd_chat(args):
    """Interactive streamed conversation."""
    project_path, config = _load_config(args)
    orchestrator, usage = build_orchestrator(project_path, config)
    asyncio.run(ChatShell(orchestrator, args.env, usage).run())
    ui.print_msg(usage.summary())


def cmd_send(args):
    """Run a single turn."""
    project_path, config = _load_config(args)
    orchestrator, usage = build_orchestrator(project_path, config)
    stream = config.stream if args.stream is None else args.stream

    if stream:
        asyncio.run(render_turn(orchestrator.send_message_stream(args.env, args.message)))
    else:
        result = asyncio.run(orchestrator.send_message(args.env, args.message))
        ui.print_msg(result.assistant_message.content, markup=False)
        ui.print_tool_errors(result.tool_errors)
        ui.print_turn_summary(result.commands_executed, result.command_errors)
    ui.print_msg()
    ui.print_msg(usage.summary())


def cmd_analyze(args):
    """Show which documents a message selects, without calling a model."""
    _, config = _load_config(args)
    ui.print_analysis(build_selector(config).analyze(args.message))


def cmd_docs(args):
    """List the instruction corpus."""
    _, config = _load_config(args)
    ui.print_corpus(build_selector(config).stats(), config.resolved_instructions_dir)


def _configure_logging(debug: bool) -> None:
    if debug or os.environ.get("DECEMBER_DEBUG"):
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="december: conversational code-generation agent"
    )
    parser.add_argument(
        "--version", action="version", version=f"december {__version__}"
    )
    parser.add_argument("--debug", action="store_true", help="Verbose logging to stderr")
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Common arguments
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--path", default=".", help="Project path (default: current directory)")
    common.add_argument("--provider", choices=PROVIDERS, default=None, help="Provider override")
    common.add_argument("--model", default=None, help="Model override")

    # init command
    p_init = subparsers.add_parser("init", help="Initialize .december/ project config")
    p_init.add_argument("path", nargs="?", default=".", help="Project path (default: current directory)")
    p_init.add_argument("--provider", choices=PROVIDERS, default=None, help="Provider (default: openai)")
    p_init.add_argument("--model", default=None, help="Model name")
    p_init.add_argument("--force", action="store_true", help="Overwrite existing .december/")
    p_init.set_defaults(func=cmd_init)

    # chat command
    p_chat = subparsers.add_parser("chat", parents=[common], help="Interactive chat session")
    p_chat.add_argument("--env", default=DEFAULT_ENVIRONMENT, help="Environment directory inside the workspace")
    p_chat.set_defaults(func=cmd_chat)

    # send command
    p_send = subparsers.add_parser("send", parents=[common], help="Send one message")
    p_send.add_argument("message", help="Message to send")
    p_send.add_argument("--env", default=DEFAULT_ENVIRONMENT, help="Environment directory inside the workspace")
    p_send.add_argument("--stream", dest="stream", action="store_true", default=None, help="Stream the reply")
    p_send.add_argument("--no-stream", dest="stream", action="store_false", help="Wait for the full reply")
    p_send.set_defaults(func=cmd_send)

    # analyze command
    p_analyze = subparsers.add_parser("analyze", parents=[common], help="Show context selection for a message")
    p_analyze.add_argument("message", help="Message to analyze")
    p_analyze.set_defaults(func=cmd_analyze)

    # docs command
    p_docs = subparsers.add_parser("docs", parents=[common], help="List the instruction corpus")
    p_docs.set_defaults(func=cmd_docs)

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    _configure_logging(args.debug)

    try:
        args.func(args)
    except KeyboardInterrupt:
        print("\nInterrupted.")
        sys.exit(130)
    except EnvironmentError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except RuntimeError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
