"""
design-wiki - live term index for a game-design wiki.

Watches a directory of Markdown documents, extracts the terms, aliases and
formulas they define, and keeps an in-memory index in sync with the files.

Stack:
- Python + FastMCP (tool surface)
- watchdog (filesystem events)
- Markdown (source of truth)
"""

__version__ = "0.1.0"
