"""In-band request from the model for more background documents.

    <load_examples>
      <examples>component_creation_examples.md, nextjs_examples.md</examples>
      <context>shadcn_documentation.md</context>
    </load_examples>
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from december.context_selector import CONTEXT_SECTION, EXAMPLES_SECTION, format_section
from december.documents import CONTEXT, EXAMPLES, DocumentStore, DocumentStoreError
from december.tags import TagMatch, remove_spans, scan

logger = logging.getLogger(__name__)

LOAD_EXAMPLES = "load_examples"

_LOAD_EXAMPLES_BODY = re.compile(
    r"\s*<examples>(?P<examples>.*?)</examples>(?:\s*<context>(?P<context>.*?)</context>)?\s*",
    re.DOTALL,
)


@dataclass(frozen=True)
class ToolCall:
    examples: tuple[str, ...]
    context: tuple[str, ...] = ()
    type: str = field(default=LOAD_EXAMPLES, init=False)

    def to_markup(self) -> str:
        inner = f"<examples>{', '.join(self.examples)}</examples>"
        if self.context:
            inner += f"<context>{', '.join(self.context)}</context>"
        return f"<{LOAD_EXAMPLES}>{inner}</{LOAD_EXAMPLES}>"

    def to_dict(self) -> dict:
        return {"type": self.type, "examples": list(self.examples), "context": list(self.context)}


@dataclass(frozen=True)
class ToolResult:
    success: bool
    content: str | None = None
    error: str | None = None


def _split_names(raw: str | None) -> tuple[str, ...]:
    if not raw:
        return ()
    return tuple(name.strip() for name in raw.split(",") if name.strip())


def _well_formed(text: str) -> list[tuple[TagMatch, re.Match]]:
    found = []
    for match in scan(text, LOAD_EXAMPLES):
        body = _LOAD_EXAMPLES_BODY.fullmatch(match.body or "")
        if body is not None:
            found.append((match, body))
    return found


def parse_tool_calls(text: str) -> list[ToolCall]:
    """ToolCalls in order of appearance.

    An element whose example list is empty yields nothing, even when it
    names context documents.
    """
    calls = []
    for _, body in _well_formed(text):
        examples = _split_names(body.group("examples"))
        if not examples:
            continue
        calls.append(ToolCall(examples=examples, context=_split_names(body.group("context"))))
    return calls


def strip_tool_calls(text: str) -> str:
    """Remove every well-formed load_examples element and trim."""
    return remove_spans(text, [match for match, _ in _well_formed(text)]).strip()


def execute_tool_call(call: ToolCall, store: DocumentStore) -> ToolResult:
    logger.info(
        "Executing tool call %s: examples=%s context=%s",
        call.type,
        ", ".join(call.examples),
        ", ".join(call.context),
    )
    if call.type != LOAD_EXAMPLES:
        return ToolResult(success=False, error=f"Unknown tool type: {call.type}")

    try:
        content = ""
        examples_content = store.load_many(EXAMPLES, list(call.examples))
        if examples_content:
            content += format_section(EXAMPLES_SECTION, examples_content)
        if call.context:
            context_content = store.load_many(CONTEXT, list(call.context))
            if context_content:
                content += format_section(CONTEXT_SECTION, context_content)
    except DocumentStoreError as e:
        logger.error("Error executing tool call: %s", e)
        return ToolResult(success=False, error=str(e))

    return ToolResult(success=True, content=content)


@dataclass
class ToolProcessing:
    tool_calls: list[ToolCall]
    results: list[ToolResult]

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)

    @property
    def loaded_content(self) -> str:
        """Joined content of the successful results that loaded anything."""
        return "\n\n".join(r.content for r in self.results if r.success and r.content)

    @property
    def errors(self) -> list[str]:
        return [r.error for r in self.results if not r.success and r.error]


def process_tool_calls(text: str, store: DocumentStore) -> ToolProcessing:
    calls = parse_tool_calls(text)
    return ToolProcessing(tool_calls=calls, results=[execute_tool_call(c, store) for c in calls])
