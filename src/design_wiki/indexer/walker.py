"""File walker for discovering documents in WIKI_ROOT."""

import logging
import os
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path

from design_wiki.indexer.models import FileTreeNode

logger = logging.getLogger(__name__)


@dataclass
class DocumentFile:
    """A discovered document."""

    path: Path  # Absolute path
    relative_path: str  # Relative to WIKI_ROOT, "/" separated


def to_relative_path(wiki_root: Path, path: Path | str) -> str | None:
    """
    Convert a path to a "/"-separated path relative to wiki_root.

    Returns None when the path is not inside wiki_root.
    """
    try:
        relative = Path(path).relative_to(wiki_root)
    except ValueError:
        return None
    return relative.as_posix()


def is_hidden(relative_path: str) -> bool:
    """True if any component of the path starts with a dot."""
    return any(part.startswith(".") for part in relative_path.split("/"))


def is_document(relative_path: str, extension: str = ".md") -> bool:
    """True if the path names a visible document file."""
    return relative_path.endswith(extension) and not is_hidden(relative_path)


def walk_wiki_root(wiki_root: Path, extension: str = ".md") -> Iterator[DocumentFile]:
    """
    Walk WIKI_ROOT and yield every visible document.

    Hidden files and directories are skipped. Unreadable directories are
    logged and skipped rather than aborting the walk.
    """
    if not wiki_root.is_dir():
        return

    def _on_error(error: OSError) -> None:
        logger.warning("Cannot read directory %s: %s", error.filename, error)

    for dirpath, dirnames, filenames in os.walk(wiki_root, onerror=_on_error):
        # Prune hidden directories in place so os.walk skips them
        dirnames[:] = sorted(d for d in dirnames if not d.startswith("."))

        for filename in sorted(filenames):
            if filename.startswith(".") or not filename.endswith(extension):
                continue
            file_path = Path(dirpath) / filename
            relative_path = to_relative_path(wiki_root, file_path)
            if relative_path is None:
                continue
            yield DocumentFile(path=file_path, relative_path=relative_path)


def build_file_tree(
    wiki_root: Path,
    extension: str = ".md",
    relative_path: str = "",
) -> list[FileTreeNode]:
    """
    Build the document tree below wiki_root.

    Directories come first, then files; each group is sorted by name.
    """
    directory = wiki_root / relative_path if relative_path else wiki_root
    if not directory.is_dir():
        return []

    try:
        entries = list(directory.iterdir())
    except OSError as e:
        logger.warning("Cannot list directory %s: %s", directory, e)
        return []

    nodes: list[FileTreeNode] = []
    for entry in entries:
        if entry.name.startswith("."):
            continue

        entry_path = f"{relative_path}/{entry.name}" if relative_path else entry.name

        if entry.is_dir():
            nodes.append(
                FileTreeNode(
                    name=entry.name,
                    path=entry_path,
                    is_directory=True,
                    children=build_file_tree(wiki_root, extension, entry_path),
                )
            )
        elif entry.name.endswith(extension):
            nodes.append(FileTreeNode(name=entry.name, path=entry_path))

    nodes.sort(key=lambda n: (not n.is_directory, n.name))
    return nodes
