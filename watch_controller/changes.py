"""Filesystem change handling.

Each watched project gets a ``ChangeReactor`` consuming a stream of
``ChangeBatch`` values. The default stream comes from ``watch_project``,
built on watchfiles, which re-crawls the project after every batch so the
reactor always receives a complete, fresh file index.
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
from pathlib import Path
from typing import AsyncIterable, AsyncIterator, Callable

from watchfiles import Change, awatch

from .models import (
    ChangeBatch,
    ChangeEvent,
    ChangeType,
    FileIndex,
    ModuleMap,
    ProjectConfig,
)

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_MS = 100
IGNORED_DIRECTORIES = frozenset(
    {".git", ".hg", "__pycache__", ".pytest_cache", ".mypy_cache", ".tox", ".venv", "node_modules"}
)

_CHANGE_TYPES = {
    Change.added: ChangeType.ADDED,
    Change.modified: ChangeType.MODIFIED,
    Change.deleted: ChangeType.DELETED,
}


def is_valid_path(project_config: ProjectConfig, file_path: str) -> bool:
    """Whether a change to ``file_path`` should trigger a re-run."""
    path = Path(os.path.abspath(file_path))
    coverage_dir = Path(
        os.path.abspath(os.path.join(project_config.root_dir, project_config.coverage_directory))
    )
    if project_config.coverage_directory and (
        path == coverage_dir or coverage_dir in path.parents
    ):
        return False
    if path.suffix in project_config.snapshot_extensions:
        return False
    if any(part in IGNORED_DIRECTORIES for part in path.parts):
        return False
    if any(re.search(pattern, file_path) for pattern in project_config.watch_path_ignore_patterns):
        return False
    roots = [Path(os.path.abspath(root)) for root in project_config.watch_roots]
    return any(path == root or root in path.parents for root in roots)


def _module_name(root: Path, path: Path) -> str | None:
    try:
        relative = path.relative_to(root).with_suffix("")
    except ValueError:
        return None
    parts = list(relative.parts)
    if parts and parts[-1] == "__init__":
        parts.pop()
    if not parts or not all(part.isidentifier() for part in parts):
        return None
    return ".".join(parts)


def crawl_project(project_config: ProjectConfig) -> tuple[FileIndex, ModuleMap]:
    """Index every module file under the project's roots."""
    files: list[str] = []
    modules: dict[str, str] = {}
    root_dir = Path(os.path.abspath(project_config.root_dir))
    for root in project_config.watch_roots:
        for dirpath, dirnames, filenames in os.walk(os.path.abspath(root)):
            dirnames[:] = sorted(d for d in dirnames if d not in IGNORED_DIRECTORIES)
            for filename in filenames:
                if not filename.endswith(project_config.module_file_extensions):
                    continue
                path = Path(dirpath) / filename
                files.append(str(path))
                name = _module_name(root_dir, path)
                if name is not None:
                    modules.setdefault(name, str(path))
    return FileIndex.from_paths(files), ModuleMap(modules)


async def watch_project(
    project_config: ProjectConfig,
    *,
    debounce_ms: int = DEFAULT_DEBOUNCE_MS,
    stop_event: asyncio.Event | None = None,
) -> AsyncIterator[ChangeBatch]:
    """Yield a ``ChangeBatch`` for every debounced batch of changes."""
    async for changes in awatch(
        *project_config.watch_roots,
        stop_event=stop_event,
        debounce=debounce_ms,
        recursive=True,
    ):
        events = tuple(
            ChangeEvent(_CHANGE_TYPES[change], path)
            for change, path in sorted(changes, key=lambda c: c[1])
        )
        file_index, module_map = await asyncio.to_thread(crawl_project, project_config)
        yield ChangeBatch(events=events, file_index=file_index, module_map=module_map)


ChangeHandler = Callable[[int, ChangeBatch], None]


class ChangeReactor:
    """Feeds relevant change batches of one project into the session."""

    def __init__(
        self,
        index: int,
        project_config: ProjectConfig,
        source: AsyncIterable[ChangeBatch],
        on_change: ChangeHandler,
    ) -> None:
        self.index = index
        self.project_config = project_config
        self._source = source
        self._on_change = on_change
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def relevant_events(self, batch: ChangeBatch) -> list[ChangeEvent]:
        return [
            event for event in batch.events if is_valid_path(self.project_config, event.file_path)
        ]

    def handle_batch(self, batch: ChangeBatch) -> bool:
        """Process one batch; returns whether it was passed on."""
        relevant = self.relevant_events(batch)
        if not relevant:
            logger.debug("Project %d: ignoring %d irrelevant changes", self.index, len(batch.events))
            return False
        logger.info("Project %d: %d relevant changes", self.index, len(relevant))
        self._on_change(self.index, batch)
        return True

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._consume())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def _consume(self) -> None:
        try:
            async for batch in self._source:
                self.handle_batch(batch)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("Change source for project %d failed: %s", self.index, e, exc_info=True)
