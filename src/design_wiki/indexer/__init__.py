"""
Indexer module for design-wiki.

Parses the wiki documents and keeps an in-memory index of the terms and
formulas they define.
"""

from design_wiki.indexer.indexer import Indexer
from design_wiki.indexer.locking import ReadWriteLock
from design_wiki.indexer.models import FileTreeNode, Formula, IndexSnapshot, Term
from design_wiki.indexer.parser import ParseResult, parse_document, parse_file
from design_wiki.indexer.walker import DocumentFile, build_file_tree, walk_wiki_root

__all__ = [
    "DocumentFile",
    "FileTreeNode",
    "Formula",
    "IndexSnapshot",
    "Indexer",
    "ParseResult",
    "ReadWriteLock",
    "Term",
    "build_file_tree",
    "parse_document",
    "parse_file",
    "walk_wiki_root",
]
