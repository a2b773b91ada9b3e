"""
Command protocol embedded in assistant replies.

Commands:
    <dec-write file_path="app/page.tsx">...full content...</dec-write>
    <dec-rename from="a.ts" to="b.ts" />
    <dec-delete file_path="a.ts" />
    <dec-add-dependency package="zod@3" />

Wrappers (not commands, only affect the cleaned prose):
    <dec-code>     unwrapped, body kept
    <dec-thinking> removed with its body
    <dec-error>    unwrapped, body kept
    <dec-success>  unwrapped, body kept
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Union

from december.tags import TagMatch, remove_spans, scan, unwrap

logger = logging.getLogger(__name__)

WRITE_TAG = "dec-write"
RENAME_TAG = "dec-rename"
DELETE_TAG = "dec-delete"
ADD_DEPENDENCY_TAG = "dec-add-dependency"

# (tag, keep body) applied in this order after command elements are removed.
WRAPPER_RULES = (
    ("dec-code", True),
    ("dec-thinking", False),
    ("dec-error", True),
    ("dec-success", True),
)


@dataclass(frozen=True)
class WriteCommand:
    file_path: str
    content: str
    type: str = field(default="write", init=False)

    def to_markup(self) -> str:
        return f'<{WRITE_TAG} file_path="{self.file_path}">\n{self.content}\n</{WRITE_TAG}>'


@dataclass(frozen=True)
class RenameCommand:
    old_path: str
    new_path: str
    type: str = field(default="rename", init=False)

    def to_markup(self) -> str:
        return f'<{RENAME_TAG} from="{self.old_path}" to="{self.new_path}" />'


@dataclass(frozen=True)
class DeleteCommand:
    file_path: str
    type: str = field(default="delete", init=False)

    def to_markup(self) -> str:
        return f'<{DELETE_TAG} file_path="{self.file_path}" />'


@dataclass(frozen=True)
class AddDependencyCommand:
    package: str
    type: str = field(default="add-dependency", init=False)

    def to_markup(self) -> str:
        return f'<{ADD_DEPENDENCY_TAG} package="{self.package}" />'


Command = Union[WriteCommand, RenameCommand, DeleteCommand, AddDependencyCommand]


@dataclass
class ParsedResponse:
    commands: list[Command]
    cleaned: str

    @property
    def has_commands(self) -> bool:
        return bool(self.commands)


def _write(match: TagMatch) -> Command | None:
    path = match.attrs.get("file_path")
    if not path:
        return None
    return WriteCommand(file_path=path, content=(match.body or "").strip())


def _rename(match: TagMatch) -> Command | None:
    old_path = match.attrs.get("from")
    new_path = match.attrs.get("to")
    if not old_path or not new_path:
        return None
    return RenameCommand(old_path=old_path, new_path=new_path)


def _delete(match: TagMatch) -> Command | None:
    path = match.attrs.get("file_path")
    if not path:
        return None
    return DeleteCommand(file_path=path)


def _add_dependency(match: TagMatch) -> Command | None:
    package = match.attrs.get("package")
    if not package:
        return None
    return AddDependencyCommand(package=package)


# tag -> (self-closing?, builder)
COMMAND_GRAMMAR = {
    WRITE_TAG: (False, _write),
    RENAME_TAG: (True, _rename),
    DELETE_TAG: (True, _delete),
    ADD_DEPENDENCY_TAG: (True, _add_dependency),
}


def scan_commands(text: str) -> list[tuple[TagMatch, Command]]:
    """Every command element in ``text`` ordered by source position."""
    found = []
    for tag, (self_closing, build) in COMMAND_GRAMMAR.items():
        for match in scan(text, tag, self_closing=self_closing):
            command = build(match)
            if command is None:
                logger.debug("Ignoring malformed <%s> at offset %d", tag, match.start)
                continue
            found.append((match, command))
    found.sort(key=lambda item: item[0].start)

    # Markup quoted inside a write body is file content, not a command.
    kept = []
    covered_to = 0
    for match, command in found:
        if match.start < covered_to:
            continue
        kept.append((match, command))
        covered_to = match.end
    return kept


def clean_response(text: str, matches: list[TagMatch]) -> str:
    """Remove command elements, then apply the wrapper rules in order."""
    cleaned = remove_spans(text, matches)
    for tag, keep_body in WRAPPER_RULES:
        cleaned = unwrap(cleaned, tag, keep_body=keep_body)
    return cleaned.strip()


def parse_commands(text: str) -> ParsedResponse:
    """Extract commands in source order and the prose left once protocol markup is gone."""
    found = scan_commands(text)
    for _, command in found:
        logger.info("Parsed %s command: %s", command.type, describe(command))
    return ParsedResponse(
        commands=[command for _, command in found],
        cleaned=clean_response(text, [match for match, _ in found]),
    )


def render_commands(commands: list[Command]) -> str:
    return "\n".join(command.to_markup() for command in commands)


def describe(command: Command) -> str:
    if isinstance(command, RenameCommand):
        return f"{command.old_path} -> {command.new_path}"
    if isinstance(command, AddDependencyCommand):
        return command.package
    return command.file_path
