"""Files changed since the last commit, for ``watch`` mode runs."""

from __future__ import annotations

import asyncio
import logging
import subprocess
from dataclasses import dataclass, field
from pathlib import Path

from .exceptions import ChangedFilesError
from .models import ProjectConfig, RunConfiguration, WatchMode

logger = logging.getLogger(__name__)


@dataclass
class ChangedFiles:
    """Changed paths (absolute) and the repositories they were found in."""

    repos: set[str] = field(default_factory=set)
    changed_files: set[str] = field(default_factory=set)


class NotARepoError(ChangedFilesError):
    pass


async def _run_git(root: Path, *args: str) -> str:
    """Run a git command in ``root`` and return its stdout.

    Raises:
        NotARepoError: If ``root`` is not inside a git repository.
        ChangedFilesError: If git fails or is missing.
    """
    try:
        process = await asyncio.create_subprocess_exec(
            "git",
            "-C",
            str(root),
            *args,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
        )
    except FileNotFoundError as e:
        raise ChangedFilesError("git not found in PATH", root=str(root), cause=e) from e

    stdout, stderr = await process.communicate()
    if process.returncode != 0:
        error = stderr.decode(errors="replace").strip()
        if "not a git repository" in error.lower():
            raise NotARepoError(f"Not a git repository: {root}", root=str(root))
        raise ChangedFilesError(
            f"Git command failed: {error}",
            root=str(root),
            returncode=process.returncode,
        )
    return stdout.decode(errors="replace")


async def _changed_files_for_root(root: Path) -> tuple[str, set[str]] | None:
    try:
        top = (await _run_git(root, "rev-parse", "--show-toplevel")).strip()
    except NotARepoError:
        logger.debug("%s is not a git repository", root)
        return None
    top_path = Path(top)
    try:
        tracked = await _run_git(top_path, "diff", "--name-only", "HEAD")
    except ChangedFilesError as e:
        # A repository without commits has no HEAD to diff against.
        logger.debug("No HEAD in %s: %s", top, e)
        tracked = await _run_git(top_path, "ls-files")
    untracked = await _run_git(top_path, "ls-files", "--others", "--exclude-standard")
    files = {
        str(top_path / line.strip())
        for line in (tracked + "\n" + untracked).splitlines()
        if line.strip()
    }
    return top, files


async def get_changed_files(
    config: RunConfiguration,
    project_configs: list[ProjectConfig],
) -> ChangedFiles | None:
    """Compute changed files, or None when the run does not need them."""
    if config.mode != WatchMode.WATCH or config.no_scm:
        return None

    roots = {Path(root).resolve() for pc in project_configs for root in pc.watch_roots}
    results = await asyncio.gather(*(_changed_files_for_root(root) for root in sorted(roots)))

    changed = ChangedFiles()
    for result in results:
        if result is None:
            continue
        repo, files = result
        changed.repos.add(repo)
        changed.changed_files |= files
    logger.debug(
        "Found %d changed files in %d repositories",
        len(changed.changed_files),
        len(changed.repos),
    )
    return changed
