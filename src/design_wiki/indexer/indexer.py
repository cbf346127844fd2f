"""In-memory index of wiki terms and formulas."""

import copy
import logging
import threading
import time
from pathlib import Path

from design_wiki.indexer.locking import ReadWriteLock
from design_wiki.indexer.models import Formula, IndexSnapshot, Term
from design_wiki.indexer.parser import DEFAULT_EXTENSION, ParseResult, parse_file
from design_wiki.indexer.walker import walk_wiki_root

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


def _insert(
    terms: dict[str, list[Term]],
    formulas: dict[str, list[Formula]],
    result: ParseResult,
) -> None:
    for term in result.terms:
        for alias in term.aliases:
            terms.setdefault(alias, []).append(term)
    for formula in result.formulas:
        for value in formula.calculated_values:
            formulas.setdefault(value, []).append(formula)


def _drop_path(mapping: dict, relative_path: str) -> None:
    """Remove entries from relative_path; keys left empty are deleted."""
    for key in list(mapping):
        kept = [entry for entry in mapping[key] if entry.file_path != relative_path]
        if kept:
            mapping[key] = kept
        else:
            del mapping[key]


class Indexer:
    """
    Index of the terms and formulas defined under WIKI_ROOT.

    The filesystem is always the source of truth; the index lives only in
    memory and can be rebuilt at any time.

    Thread Safety:
        All state sits behind a reader/writer lock. Files are read and parsed
        before the write lock is taken, so searches keep running against the
        previous state while a rebuild walks the tree. Writers (rebuild,
        update_file, remove_file) are serialized by a separate mutex, so an
        update that arrives during a rebuild is applied after the swap.
    """

    def __init__(self, wiki_root: Path, extension: str = DEFAULT_EXTENSION):
        """
        Initialize the indexer.

        Args:
            wiki_root: Path to the document root
            extension: Only files ending with this suffix are indexed
        """
        self.wiki_root = wiki_root
        self.extension = extension
        self._lock = ReadWriteLock()
        self._writer = threading.Lock()
        self._terms: dict[str, list[Term]] = {}
        self._formulas: dict[str, list[Formula]] = {}
        self._scopes: list[str] = []
        self._build_time = 0

    def _parse(self, path: Path, relative_path: str) -> ParseResult | None:
        """Parse one file, or None if it cannot be read."""
        try:
            return parse_file(path, relative_path, self.extension)
        except FileNotFoundError:
            logger.debug("File vanished before it could be read: %s", relative_path)
            return None
        except UnicodeDecodeError as e:
            logger.warning(
                "Skipping file with invalid UTF-8 encoding: %s (%s)",
                relative_path,
                e,
            )
            return None
        except OSError as e:
            logger.warning("Cannot read %s: %s", relative_path, e)
            return None

    def _resolve(self, relative_path: str) -> Path | None:
        """Absolute path for relative_path, or None if it escapes the root."""
        full_path = self.wiki_root / relative_path
        try:
            full_path.resolve().relative_to(self.wiki_root.resolve())
        except ValueError:
            logger.warning("Ignoring path outside wiki root: %s", relative_path)
            return None
        except OSError as e:
            logger.warning("Cannot resolve path %s: %s", relative_path, e)
            return None
        return full_path

    def rebuild(self) -> int:
        """
        Rebuild the whole index from the filesystem.

        Returns the number of documents indexed.

        Raises:
            FileNotFoundError: If WIKI_ROOT does not exist. The previous
                index is kept.
            NotADirectoryError: If WIKI_ROOT is not a directory.
        """
        if not self.wiki_root.exists():
            raise FileNotFoundError(f"Wiki root does not exist: {self.wiki_root}")
        if not self.wiki_root.is_dir():
            raise NotADirectoryError(f"Wiki root is not a directory: {self.wiki_root}")

        logger.info("Starting full rebuild of %s", self.wiki_root)

        terms: dict[str, list[Term]] = {}
        formulas: dict[str, list[Formula]] = {}
        scopes: set[str] = set()
        count = 0

        with self._writer:
            for document in walk_wiki_root(self.wiki_root, self.extension):
                result = self._parse(document.path, document.relative_path)
                if result is None:
                    continue
                if result.scope:
                    scopes.add(result.scope)
                _insert(terms, formulas, result)
                count += 1

            with self._lock.write_locked():
                self._terms = terms
                self._formulas = formulas
                self._scopes = sorted(scopes)
                self._build_time = _now_ms()

        logger.info("Rebuild complete: %d documents indexed", count)
        return count

    def update_file(self, relative_path: str) -> None:
        """
        Re-index a single file.

        Existing entries for the file are always dropped. If the file no
        longer exists this is a plain removal. The scope list is only
        recomputed by rebuild().
        """
        full_path = self._resolve(relative_path)
        result = None
        with self._writer:
            if full_path is not None and full_path.is_file():
                result = self._parse(full_path, relative_path)

            with self._lock.write_locked():
                _drop_path(self._terms, relative_path)
                _drop_path(self._formulas, relative_path)
                if result is not None:
                    _insert(self._terms, self._formulas, result)
                self._build_time = _now_ms()

        if result is None:
            logger.debug("Removed %s from index (not readable)", relative_path)
        else:
            logger.debug(
                "Indexed %s: %d terms, %d formulas",
                relative_path,
                len(result.terms),
                len(result.formulas),
            )

    def remove_file(self, relative_path: str) -> None:
        """Remove every entry that came from relative_path."""
        with self._writer, self._lock.write_locked():
            _drop_path(self._terms, relative_path)
            _drop_path(self._formulas, relative_path)
            self._build_time = _now_ms()
        logger.debug("Removed %s from index", relative_path)

    # Query methods

    def snapshot(self) -> IndexSnapshot:
        """Return a deep copy of the current index."""
        with self._lock.read_locked():
            return IndexSnapshot.capture(
                self._terms, self._formulas, self._scopes, self._build_time
            )

    def search(self, query: str) -> list[Term]:
        """
        Find terms whose aliases contain query (case-insensitive).

        An empty query matches nothing. Each (file, term) pair appears once.
        Order across different aliases is not defined.
        """
        if not query:
            return []

        needle = query.lower()
        results: list[Term] = []
        seen: set[tuple[str, str]] = set()

        with self._lock.read_locked():
            for alias, terms in self._terms.items():
                if needle not in alias.lower():
                    continue
                for term in terms:
                    if term.key in seen:
                        continue
                    seen.add(term.key)
                    results.append(copy.deepcopy(term))

        return results

    def all_terms(self) -> list[Term]:
        """Every indexed term once, de-duplicated by (file, term)."""
        results: list[Term] = []
        seen: set[tuple[str, str]] = set()
        with self._lock.read_locked():
            for terms in self._terms.values():
                for term in terms:
                    if term.key not in seen:
                        seen.add(term.key)
                        results.append(copy.deepcopy(term))
        return results

    def get_term(self, alias: str) -> list[Term]:
        """Terms registered under exactly this alias."""
        with self._lock.read_locked():
            return copy.deepcopy(self._terms.get(alias, []))

    def get_formulas(self, calculated_value: str) -> list[Formula]:
        """Formulas that compute the given [value]."""
        with self._lock.read_locked():
            return copy.deepcopy(self._formulas.get(calculated_value, []))

    @property
    def scopes(self) -> list[str]:
        with self._lock.read_locked():
            return list(self._scopes)

    @property
    def build_time(self) -> int:
        with self._lock.read_locked():
            return self._build_time
