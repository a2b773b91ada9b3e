"""Apply parsed commands to a sandbox and fold the outcome into the reply."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from december.commands import (
    AddDependencyCommand,
    Command,
    DeleteCommand,
    RenameCommand,
    WriteCommand,
    describe,
    parse_commands,
)
from december.sandbox import Sandbox

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommandOutcome:
    command: Command
    success: bool
    error: str | None = None


@dataclass
class ExecutionReport:
    outcomes: list[CommandOutcome] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return all(outcome.success for outcome in self.outcomes)

    @property
    def errors(self) -> list[str]:
        return [outcome.error for outcome in self.outcomes if outcome.error]


@dataclass
class ProcessedResponse:
    cleaned_response: str
    commands_executed: int
    errors: list[str] = field(default_factory=list)


async def _apply(command: Command, sandbox: Sandbox, environment_id: str) -> str | None:
    """Run one command; return an error message or None on success."""
    if isinstance(command, WriteCommand):
        if not command.file_path:
            return "Invalid write command: missing file path"
        await sandbox.write_file(environment_id, command.file_path, command.content)
        return None

    # Parsed and attempted, but not actioned yet.
    if isinstance(command, RenameCommand):
        if not command.old_path or not command.new_path:
            return "Invalid rename command: missing old or new path"
        logger.info("Rename operation: %s -> %s", command.old_path, command.new_path)
        return "Rename operation not yet implemented"
    if isinstance(command, DeleteCommand):
        if not command.file_path:
            return "Invalid delete command: missing file path"
        logger.info("Delete operation: %s", command.file_path)
        return "Delete operation not yet implemented"
    if isinstance(command, AddDependencyCommand):
        if not command.package:
            return "Invalid add-dependency command: missing package"
        logger.info("Add dependency: %s", command.package)
        return "Add dependency operation not yet implemented"

    return f"Unknown command type: {getattr(command, 'type', type(command).__name__)}"


async def execute_commands(
    commands: list[Command],
    sandbox: Sandbox,
    environment_id: str,
) -> ExecutionReport:
    """Apply ``commands`` strictly in order; a failure never stops the rest."""
    report = ExecutionReport()
    for command in commands:
        try:
            error = await _apply(command, sandbox, environment_id)
        except Exception as e:
            logger.exception("Error executing %s command", command.type)
            error = f"Error executing {command.type} command: {e}"
        if error is None:
            logger.info("Executed %s command: %s", command.type, describe(command))
        report.outcomes.append(CommandOutcome(command=command, success=error is None, error=error))
    return report


async def process_response(text: str, sandbox: Sandbox, environment_id: str) -> ProcessedResponse:
    """Parse commands out of a final reply, run them, and return the cleaned prose.

    A reply without commands is returned untouched.
    """
    parsed = parse_commands(text)
    if not parsed.has_commands:
        logger.debug("No commands found in response")
        return ProcessedResponse(cleaned_response=text, commands_executed=0)

    logger.info("Found %d commands", len(parsed.commands))
    report = await execute_commands(parsed.commands, sandbox, environment_id)
    if report.errors:
        logger.error("Command errors: %s", report.errors)
    return ProcessedResponse(
        cleaned_response=parsed.cleaned,
        commands_executed=len(parsed.commands),
        errors=report.errors,
    )
