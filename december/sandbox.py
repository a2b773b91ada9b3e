"""
Sandbox / file-store capability consumed by the agent.

The orchestrator only needs a snapshot of the current project and a way to
write files. ``LocalDirectorySandbox`` backs environments with directories
under one workspace root, which is what the CLI uses.
"""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from typing import Any, Protocol

logger = logging.getLogger(__name__)

# Directories to skip
SKIP_DIRS = {
    "node_modules", ".git", "__pycache__", ".venv", "venv", "env",
    ".tox", ".pytest_cache", ".mypy_cache", "dist", "build",
    ".next", ".nuxt", "vendor", "target", ".cargo",
    "coverage", ".coverage", "htmlcov", ".december",
}

# Max file size to inline in a snapshot (100KB)
MAX_FILE_SIZE = 100_000


class SandboxError(OSError):
    """A sandbox operation was refused or failed."""


class Sandbox(Protocol):
    async def get_snapshot(self, environment_id: str) -> Any: ...

    async def write_file(self, environment_id: str, path: str, content: str) -> None: ...


class LocalDirectorySandbox:
    """Each environment id is a directory under ``workspace``.

    The id ``"."`` maps to the workspace itself.
    """

    def __init__(self, workspace: str | Path):
        self.workspace = Path(workspace).resolve()

    def environment_root(self, environment_id: str) -> Path:
        root = (self.workspace / environment_id).resolve()
        if root != self.workspace and self.workspace not in root.parents:
            raise SandboxError(f"Environment '{environment_id}' is outside {self.workspace}")
        return root

    def _resolve(self, environment_id: str, path: str) -> Path:
        root = self.environment_root(environment_id)
        target = (root / path.lstrip("/")).resolve()
        if root not in target.parents:
            raise SandboxError(f"Path '{path}' escapes environment '{environment_id}'")
        return target

    # Filesystem work runs in a worker thread to keep other turns moving.

    async def write_file(self, environment_id: str, path: str, content: str) -> None:
        target = self._resolve(environment_id, path)
        await asyncio.to_thread(self._write_sync, target, content)
        logger.info("Successfully wrote file: %s", path)

    async def get_snapshot(self, environment_id: str) -> list[dict]:
        """Nested tree of ``{"name", "type", "path"[, "content"|"children"]}`` nodes."""
        root = self.environment_root(environment_id)
        return await asyncio.to_thread(self._snapshot_sync, root)

    @staticmethod
    def _write_sync(target: Path, content: str) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")

    def _snapshot_sync(self, root: Path) -> list[dict]:
        if not root.is_dir():
            return []
        return self._walk(root, root)

    def _walk(self, directory: Path, root: Path) -> list[dict]:
        nodes = []
        try:
            with os.scandir(directory) as it:
                entries = sorted(it, key=lambda e: (not e.is_dir(), e.name))
        except OSError as e:
            logger.warning("Cannot list %s: %s", directory, e)
            return nodes

        for entry in entries:
            path = Path(entry.path)
            rel_path = path.relative_to(root).as_posix()
            if entry.is_dir():
                if entry.name in SKIP_DIRS:
                    continue
                nodes.append({
                    "name": entry.name,
                    "type": "directory",
                    "path": rel_path,
                    "children": self._walk(path, root),
                })
                continue

            node = {"name": entry.name, "type": "file", "path": rel_path}
            try:
                size = path.stat().st_size
                if size > MAX_FILE_SIZE:
                    node["content"] = f"[FILE TOO LARGE: {size:,} bytes, skipped]"
                else:
                    node["content"] = path.read_text(encoding="utf-8", errors="replace")
            except OSError as e:
                node["content"] = f"[READ ERROR: {e}]"
            nodes.append(node)
        return nodes
