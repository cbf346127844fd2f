"""MCP tools for the design-wiki server.

This module defines the tools exposed by the MCP server:
- get_index: The whole term/formula index
- search_terms: Substring search over term aliases
- read_file: Read a document by path
- write_file: Create or overwrite a document
- list_files: The document tree
"""

import logging
from pathlib import Path

from fastmcp import FastMCP

from design_wiki.config import Config
from design_wiki.indexer import Indexer, build_file_tree
from design_wiki.indexer.walker import is_hidden

logger = logging.getLogger(__name__)


def _validate_path(base_path: Path, requested_path: Path) -> Path:
    """Validate that requested_path is within base_path (prevent directory traversal).

    Raises:
        ValueError: If the path is outside base_path
    """
    base_abs = base_path.resolve()
    requested_abs = requested_path.resolve()
    try:
        requested_abs.relative_to(base_abs)
    except ValueError as e:
        raise ValueError(f"Path '{requested_path}' is outside allowed directory") from e
    return requested_abs


def read_document(wiki_root: Path, path: str) -> dict:
    """Read a document below wiki_root, never raising on bad input."""
    result = {"path": path, "content": None, "exists": False, "error": None}

    if not path:
        result["error"] = "Missing path"
        return result

    try:
        full_path = _validate_path(wiki_root, wiki_root / path)
    except (ValueError, OSError) as e:
        result["error"] = f"Invalid path: {e}"
        return result

    if not full_path.exists():
        result["error"] = "Document not found"
        return result
    if not full_path.is_file():
        result["error"] = "Path is not a file"
        return result

    result["exists"] = True
    try:
        result["content"] = full_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        result["error"] = f"Error reading file: {e}"
    return result


def write_document(wiki_root: Path, path: str, content: str, extension: str = ".md") -> dict:
    """Write a document below wiki_root, creating parent directories.

    Only visible files with the document extension can be written, so every
    write lands in the index. Never raises on bad input.
    """
    result = {"path": path, "success": False, "error": None}

    if not path:
        result["error"] = "Missing path"
        return result
    if not path.endswith(extension):
        result["error"] = f"Invalid path: only {extension} documents can be written"
        return result

    try:
        full_path = _validate_path(wiki_root, wiki_root / path)
    except (ValueError, OSError) as e:
        result["error"] = f"Invalid path: {e}"
        return result

    relative_path = full_path.relative_to(wiki_root.resolve()).as_posix()
    if is_hidden(relative_path):
        result["error"] = "Invalid path: hidden files cannot be written"
        return result
    result["path"] = relative_path

    if full_path.is_dir():
        result["error"] = "Path is a directory"
        return result

    try:
        full_path.parent.mkdir(parents=True, exist_ok=True)
        full_path.write_text(content, encoding="utf-8")
    except OSError as e:
        result["error"] = f"Error writing file: {e}"
        return result

    logger.info("Wrote document: %s", relative_path)
    result["success"] = True
    return result


def register_tools(mcp: FastMCP, indexer: Indexer, config: Config) -> None:
    """Register all wiki tools with the FastMCP server.

    Args:
        mcp: FastMCP server instance
        indexer: Index to serve queries from
        config: Configuration (document root and extension)
    """

    @mcp.tool()
    def get_index() -> dict:
        """Return the full wiki index.

        Returns:
            Index with:
            - terms: alias -> list of term definitions
            - formulas: calculated value -> list of formulas
            - scopes: all known scopes
            - buildTime: last build time in epoch milliseconds
        """
        return indexer.snapshot().to_dict()

    @mcp.tool()
    def search_terms(query: str) -> list[dict]:
        """Search terms whose name or alias contains the query.

        Matching is a case-insensitive substring match. An empty query
        returns no results.

        Args:
            query: Text to look for in term aliases
        """
        return [term.to_dict() for term in indexer.search(query)]

    @mcp.tool()
    def read_file(path: str) -> dict:
        """Read the raw Markdown of a wiki document.

        Args:
            path: Path relative to the wiki root (e.g., "combat/spell.md")

        Returns:
            Dict with path, content, exists and error.
        """
        return read_document(config.wiki_root, path)

    @mcp.tool()
    def write_file(path: str, content: str) -> dict:
        """Create or overwrite a wiki document and re-index it.

        Args:
            path: Path relative to the wiki root, ending in the document
                extension (e.g., "combat/spell.md")
            content: Full Markdown content to write

        Returns:
            Dict with path, success and error.
        """
        result = write_document(config.wiki_root, path, content, config.extension)
        if result["success"]:
            indexer.update_file(result["path"])
        return result

    @mcp.tool()
    def list_files() -> list[dict]:
        """List the wiki document tree, directories first."""
        return [node.to_dict() for node in build_file_tree(config.wiki_root, config.extension)]
