"""
Document Store for december.

Read-only corpus of instructional documents laid out as:

    <root>/core.txt          core agent instructions
    <root>/fallback.txt      optional static prompt used when core is unavailable
    <root>/examples/*.md     worked examples
    <root>/context/*.md      reference material
"""

import logging
from pathlib import Path

logger = logging.getLogger(__name__)

CORE_FILENAME = "core.txt"
FALLBACK_FILENAME = "fallback.txt"
DOCUMENT_SUFFIX = ".md"

EXAMPLES = "examples"
CONTEXT = "context"
COLLECTIONS = (EXAMPLES, CONTEXT)


class DocumentStoreError(OSError):
    """The corpus backing store cannot be reached or read."""


def document_heading(name: str) -> str:
    """Human-readable heading for a document name.

    >>> document_heading("error_handling_examples.md")
    'ERROR HANDLING EXAMPLES'
    """
    stem = name[: -len(DOCUMENT_SUFFIX)] if name.endswith(DOCUMENT_SUFFIX) else name
    return stem.replace("_", " ").upper()


def _is_safe_name(name: str) -> bool:
    return bool(name) and "/" not in name and "\\" not in name and name not in (".", "..")


class DocumentStore:
    def __init__(self, root: str | Path):
        self.root = Path(root)

    def _require_root(self) -> None:
        if not self.root.is_dir():
            raise DocumentStoreError(f"Instruction corpus not found at {self.root}")

    def _read(self, path: Path) -> str:
        try:
            return path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise DocumentStoreError(f"Failed to read {path}: {e}") from e

    def load_core(self) -> str:
        """Return the core instructions, or "" when the core file is absent."""
        self._require_root()
        core_path = self.root / CORE_FILENAME
        if not core_path.is_file():
            logger.error("Core instructions file not found: %s", core_path)
            return ""
        logger.debug("Loading core instructions from %s", core_path)
        return self._read(core_path)

    def load_fallback(self) -> str:
        """Return the static fallback prompt, or "" when it is absent."""
        self._require_root()
        fallback_path = self.root / FALLBACK_FILENAME
        if not fallback_path.is_file():
            logger.warning("Fallback prompt file not found: %s", fallback_path)
            return ""
        return self._read(fallback_path)

    def list_documents(self, kind: str) -> list[str]:
        if kind not in COLLECTIONS:
            raise ValueError(f"Unknown document collection '{kind}'. Available: {', '.join(COLLECTIONS)}")
        collection = self.root / kind
        if not collection.is_dir():
            return []
        return sorted(p.name for p in collection.iterdir() if p.is_file() and p.suffix == DOCUMENT_SUFFIX)

    def list_examples(self) -> list[str]:
        return self.list_documents(EXAMPLES)

    def list_context(self) -> list[str]:
        return self.list_documents(CONTEXT)

    def load_many(self, kind: str, names: list[str]) -> str:
        """Concatenate the named documents of one collection under headings.

        Each found document contributes ``"\\n\\n## HEADING\\n\\n<content>"``.
        Missing, unsafe or unreadable documents are skipped with a warning. Raises
        DocumentStoreError only when the store itself is unreachable.
        """
        if kind not in COLLECTIONS:
            raise ValueError(f"Unknown document collection '{kind}'. Available: {', '.join(COLLECTIONS)}")
        self._require_root()

        parts = []
        for name in names:
            if not _is_safe_name(name):
                logger.warning("Refusing %s document name: %r", kind, name)
                continue
            path = self.root / kind / name
            if not path.is_file():
                logger.warning("%s file not found: %s", kind.capitalize(), name)
                continue
            try:
                content = self._read(path)
            except DocumentStoreError as e:
                logger.warning("Skipping unreadable %s file %s: %s", kind, name, e)
                continue
            parts.append(f"\n\n## {document_heading(name)}\n\n{content}")
            logger.info("Loaded %s file: %s", kind, name)
        return "".join(parts)
