"""Keyword-driven selection of background documents for a user utterance."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace

from december.documents import CONTEXT, EXAMPLES, DocumentStore, DocumentStoreError

logger = logging.getLogger(__name__)


EXAMPLE_TRIGGERS: dict[str, tuple[str, ...]] = {
    "refactoring_examples.md": (
        "refactor", "reorganize", "restructure", "extract", "split", "break down",
        "move function", "separate", "modularize", "clean up code",
    ),
    "dependency_management_examples.md": (
        "install", "package", "dependency", "library", "npm", "yarn", "add package",
        "update package", "version", "import", "module",
    ),
    "file_operations_examples.md": (
        "create file", "delete file", "rename file", "move file", "file structure",
        "directory", "folder", "organize files", "file extension",
    ),
    "component_creation_examples.md": (
        "component", "create component", "new component", "ui component",
        "react component", "button", "form", "modal", "card", "layout",
    ),
    "error_handling_examples.md": (
        "error", "bug", "fix", "debug", "exception", "try catch", "validation",
        "error boundary", "handle error", "error message",
    ),
    "state_management_examples.md": (
        "state", "usestate", "context", "redux", "zustand", "react query",
        "data flow", "global state", "local state", "state update",
    ),
    "ui_implementation_examples.md": (
        "style", "css", "tailwind", "design", "responsive", "layout",
        "animation", "theme", "color", "spacing", "typography",
    ),
    "nextjs_examples.md": (
        "next.js", "nextjs", "app router", "routing", "api route", "server component",
        "client component", "ssr", "ssg", "isr", "metadata", "dynamic route",
    ),
}

CONTEXT_TRIGGERS: dict[str, tuple[str, ...]] = {
    "shadcn_documentation.md": (
        "shadcn", "ui component", "button", "card", "dialog", "form",
        "input", "select", "accordion", "alert", "badge", "sidebar",
    ),
    "common_errors.md": (
        "error", "bug", "issue", "problem", "fix", "debug", "troubleshoot",
        "not working", "broken", "failed", "exception",
    ),
    "package_information.md": (
        "package", "dependency", "library", "install", "version",
        "npm", "yarn", "import", "module", "available packages",
    ),
    "project_structure.md": (
        "structure", "organization", "directory", "folder", "file structure",
        "organize", "architecture", "file permissions", "allowed files",
    ),
}

# Context documents unioned into every selection whose utterance contains
# one of these words, whatever the trigger tables decided.
FORCED_CONTEXT: dict[str, tuple[str, ...]] = {
    "common_errors.md": ("error", "bug", "issue"),
    "shadcn_documentation.md": ("component", "ui", "button"),
}

FALLBACK_INSTRUCTIONS = """You are December, an AI coding agent working inside a Next.js project.

Answer the user's request directly. When you need to change the project, emit commands:
- <dec-write file_path="path/to/file">full file content</dec-write> to create or overwrite a file
- <dec-rename from="old/path" to="new/path" /> to rename a file
- <dec-delete file_path="path/to/file" /> to delete a file
- <dec-add-dependency package="name@version" /> to add a package

Always write complete file contents. Keep explanations short."""

CODEBASE_HEADER = "Current codebase structure and content:"
EXAMPLES_SECTION = "REQUESTED EXAMPLES"
CONTEXT_SECTION = "REQUESTED CONTEXT"


def format_section(title: str, body: str) -> str:
    """Delimited prompt section: a rule, a banner, then the body."""
    return f"\n\n---\n\n# {title}\n{body}"


def _matches(message: str, triggers: tuple[str, ...]) -> bool:
    return any(trigger in message for trigger in triggers)


@dataclass(frozen=True)
class ContextSelection:
    """Example and context document names judged relevant to one utterance."""

    examples: tuple[str, ...] = ()
    context: tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.examples and not self.context


@dataclass(frozen=True)
class AssembledPrompt:
    """System prompt text for one model call.

    Each phase of a turn derives a new value through ``with_section`` or
    ``with_codebase`` rather than editing a shared string.
    """

    text: str
    examples: tuple[str, ...] = ()
    context: tuple[str, ...] = ()
    sections: tuple[str, ...] = field(default=())

    @property
    def is_empty(self) -> bool:
        return not self.text.strip()

    def with_section(self, title: str, body: str) -> AssembledPrompt:
        return replace(
            self,
            text=f"{self.text}\n\n---\n\n# {title}\n\n{body}",
            sections=self.sections + (title,),
        )

    def with_codebase(self, code_context: str) -> AssembledPrompt:
        return replace(self, text=f"{self.text}\n\n{CODEBASE_HEADER}\n{code_context}")


class ContextSelector:
    def __init__(
        self,
        store: DocumentStore,
        example_triggers: dict[str, tuple[str, ...]] | None = None,
        context_triggers: dict[str, tuple[str, ...]] | None = None,
        forced_context: dict[str, tuple[str, ...]] | None = None,
    ):
        self.store = store
        self.example_triggers = EXAMPLE_TRIGGERS if example_triggers is None else example_triggers
        self.context_triggers = CONTEXT_TRIGGERS if context_triggers is None else context_triggers
        self.forced_context = FORCED_CONTEXT if forced_context is None else forced_context

    def select(self, utterance: str) -> ContextSelection:
        """Pick example/context documents whose trigger phrases occur in ``utterance``."""
        message = utterance.lower()
        logger.debug("Analyzing user request for context loading: %s", utterance[:100])

        examples = [
            name for name, triggers in self.example_triggers.items() if _matches(message, triggers)
        ]
        context = [
            name for name, triggers in self.context_triggers.items() if _matches(message, triggers)
        ]

        for name, words in self.forced_context.items():
            if name not in context and _matches(message, words):
                context.append(name)

        for name in examples:
            logger.info("Selected example file: %s", name)
        for name in context:
            logger.info("Selected context file: %s", name)

        return ContextSelection(examples=tuple(examples), context=tuple(context))

    def render_core_instructions(self) -> str:
        try:
            return self.store.load_core()
        except DocumentStoreError as e:
            logger.error("Core instructions unavailable: %s", e)
            return ""

    def render_fallback(self) -> str:
        """Static fallback prompt, then core instructions, then the built-in text."""
        try:
            fallback = self.store.load_fallback()
        except DocumentStoreError as e:
            logger.error("Fallback prompt unavailable: %s", e)
            fallback = ""
        return fallback or self.render_core_instructions() or FALLBACK_INSTRUCTIONS

    def _render_collection(self, kind: str, names: tuple[str, ...]) -> str:
        if not names:
            return ""
        try:
            return self.store.load_many(kind, list(names))
        except DocumentStoreError as e:
            logger.error("Skipping requested %s: %s", kind, e)
            return ""

    def render_selection(self, examples=(), context=()) -> AssembledPrompt:
        """Core instructions followed by the requested examples and context blocks."""
        examples = tuple(examples)
        context = tuple(context)
        prompt = self.render_core_instructions()

        examples_content = self._render_collection(EXAMPLES, examples)
        if examples_content:
            prompt += format_section(EXAMPLES_SECTION, examples_content)

        context_content = self._render_collection(CONTEXT, context)
        if context_content:
            prompt += format_section(CONTEXT_SECTION, context_content)

        logger.info(
            "Assembled prompt with %d example files and %d context files (%d characters)",
            len(examples),
            len(context),
            len(prompt),
        )
        return AssembledPrompt(text=prompt, examples=examples, context=context)

    def assemble(self, utterance: str) -> AssembledPrompt:
        """Select for ``utterance`` and render, degrading to fallback instructions."""
        selection = self.select(utterance)
        if selection.is_empty:
            logger.info("No relevant examples found, loading core instructions only")
        prompt = self.render_selection(selection.examples, selection.context)
        if prompt.is_empty:
            logger.warning("Assembled prompt is empty, using fallback instructions")
            prompt = replace(prompt, text=self.render_fallback())
        return prompt

    def stats(self) -> dict:
        """Corpus availability summary."""
        try:
            examples = self.store.list_examples()
            context = self.store.list_context()
        except OSError as e:
            logger.error("Error reading instruction corpus: %s", e)
            examples, context = [], []
        return {
            "available_examples": examples,
            "available_context": context,
            "core_instructions_loaded": bool(self.render_core_instructions()),
        }

    def analyze(self, utterance: str) -> dict:
        """Selection plus the size of the prompt it would assemble."""
        selection = self.select(utterance)
        prompt = self.assemble(utterance)
        return {
            "message": utterance,
            "examples": list(selection.examples),
            "context": list(selection.context),
            "prompt_length": len(prompt.text),
            "prompt_preview": prompt.text[:500],
        }
