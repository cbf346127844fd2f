"""Parser for wiki documents: front matter, terms and formulas.

Each extraction pass is an independent function over the same text, so the
patterns can be tested and changed in isolation. None of them raise on
malformed input; at worst they return empty results.
"""

import logging
import re
from pathlib import Path
from typing import NamedTuple

import yaml

from design_wiki.indexer.models import Formula, Term

logger = logging.getLogger(__name__)

DEFAULT_EXTENSION = ".md"

# ---\n key: value \n--- at the very start of the file
FRONTMATTER_PATTERN = re.compile(r"\A---\n(.+?)\n---", re.DOTALL)

# 【term】：definition (full-width or ASCII colon)
INLINE_TERM_PATTERN = re.compile(r"【([^】]+)】[：:]\s*(.+?)(?:\n|$)")

# %% expression %%
FORMULA_PATTERN = re.compile(r"%%\s*(.+?)\s*%%")

CALCULATED_VALUE_PATTERN = re.compile(r"\[([^\]]+)\]")
DESIGN_VALUE_PATTERN = re.compile(r"<([^>]+)>")

MORE_MARKER_PATTERN = re.compile(r"^\s*<!--\s*more\s*-->\s*$", re.IGNORECASE)


class ParseResult(NamedTuple):
    """Facts extracted from one document."""

    terms: list[Term]
    formulas: list[Formula]
    scope: str


def parse_frontmatter(text: str) -> dict[str, str | list[str]] | None:
    """
    Parse the key: value front matter block.

    Returns None when the document has no front matter. Lines without a colon
    are ignored; the value is everything after the first colon. An `alias:`
    written as a YAML block sequence is returned as a list of items.
    """
    match = FRONTMATTER_PATTERN.match(text)
    if match is None:
        return None

    block = match.group(1)
    data: dict[str, str | list[str]] = {}
    for line in block.split("\n"):
        key, sep, value = line.partition(":")
        if sep:
            data[key.strip()] = value.strip()

    # Older documents list aliases as a YAML block sequence
    if data.get("alias") == "":
        aliases = _yaml_alias_list(block)
        if aliases:
            data["alias"] = aliases

    return data


def _yaml_alias_list(block: str) -> list[str]:
    """Read `alias:` written as a YAML list, or [] if it is not one."""
    try:
        # BaseLoader keeps every scalar a string, so dates and numbers in
        # other keys are never constructed
        raw = yaml.load(block, Loader=yaml.BaseLoader)
    except yaml.YAMLError as e:
        logger.debug("Front matter is not valid YAML: %s", e)
        return []
    if not isinstance(raw, dict):
        return []
    aliases = raw.get("alias")
    if not isinstance(aliases, list):
        return []
    return [a.strip() for a in aliases if isinstance(a, str) and a.strip()]


def strip_frontmatter(text: str) -> str:
    """Remove the front matter block, if any."""
    return FRONTMATTER_PATTERN.sub("", text, count=1)


def file_term_name(relative_path: str, extension: str = DEFAULT_EXTENSION) -> str:
    """Canonical term name for a file: its base name without extension."""
    name = relative_path.removesuffix(extension)
    return name.rsplit("/", 1)[-1]


def split_aliases(term: str, alias_value: str | list[str] | None) -> list[str]:
    """Build the alias list for a file-level term, canonical name first.

    A string value is comma-separated; a list is taken item by item.
    """
    aliases = [term]
    if not alias_value:
        return aliases
    items = alias_value.split(",") if isinstance(alias_value, str) else alias_value
    for alias in items:
        alias = alias.strip()
        if alias and alias != term:
            aliases.append(alias)
    return aliases


def extract_definition(text: str) -> tuple[str, bool]:
    """
    Extract the definition body of a document.

    Scanning stops at a `<!-- more -->` line, which also sets the has-more
    flag. Blank lines, headings, horizontal rules and inline term lines are
    skipped.

    Returns:
        Tuple of (definition, has_more)
    """
    body = strip_frontmatter(text)

    kept: list[str] = []
    has_more = False
    for line in body.split("\n"):
        if MORE_MARKER_PATTERN.match(line):
            has_more = True
            break

        stripped = line.strip()
        if not stripped or line.startswith("#") or stripped.startswith("---"):
            continue
        if INLINE_TERM_PATTERN.search(line):
            continue

        kept.append(line)

    return "\n".join(kept).strip(), has_more


def extract_inline_terms(text: str, relative_path: str, scope: str = "") -> list[Term]:
    """Extract every 【term】：definition occurrence in the raw text."""
    terms: list[Term] = []
    for match in INLINE_TERM_PATTERN.finditer(text):
        name = match.group(1)
        terms.append(
            Term(
                term=name,
                aliases=[name],
                definition=match.group(2).strip(),
                scope=scope,
                file_path=relative_path,
                definition_type="inline",
            )
        )
    return terms


def extract_calculated_values(expression: str) -> list[str]:
    """Return the [xxx] tokens of an expression, in order."""
    return CALCULATED_VALUE_PATTERN.findall(expression)


def extract_design_values(expression: str) -> list[str]:
    """Return the <xxx> tokens of an expression, in order."""
    return DESIGN_VALUE_PATTERN.findall(expression)


def extract_formulas(text: str, relative_path: str, scope: str = "") -> list[Formula]:
    """Extract %% formulas %% that reference at least one value."""
    formulas: list[Formula] = []
    for match in FORMULA_PATTERN.finditer(text):
        expression = match.group(1).strip()
        calculated = extract_calculated_values(expression)
        design = extract_design_values(expression)
        if not calculated and not design:
            continue
        formulas.append(
            Formula(
                expression=expression,
                calculated_values=calculated,
                design_values=design,
                scope=scope,
                file_path=relative_path,
            )
        )
    return formulas


def parse_document(
    text: str,
    relative_path: str,
    extension: str = DEFAULT_EXTENSION,
) -> ParseResult:
    """
    Parse a wiki document into terms, formulas and its scope.

    Args:
        text: The full markdown content
        relative_path: Path relative to WIKI_ROOT (e.g., "combat/spell.md")
        extension: Document extension stripped from the file-level term name

    Returns:
        ParseResult with the file-level term (if any) first, then inline terms.
    """
    terms: list[Term] = []
    scope = ""

    frontmatter = parse_frontmatter(text)
    if frontmatter is not None:
        scope = str(frontmatter.get("scope", ""))
        name = file_term_name(relative_path, extension)
        definition, has_more = extract_definition(text)
        if definition:
            terms.append(
                Term(
                    term=name,
                    aliases=split_aliases(name, frontmatter.get("alias")),
                    definition=definition,
                    scope=scope,
                    file_path=relative_path,
                    definition_type="file",
                    has_more=has_more,
                )
            )

    terms.extend(extract_inline_terms(text, relative_path, scope))
    formulas = extract_formulas(text, relative_path, scope)

    return ParseResult(terms=terms, formulas=formulas, scope=scope)


def parse_file(
    path: Path,
    relative_path: str,
    extension: str = DEFAULT_EXTENSION,
) -> ParseResult:
    """
    Read and parse a document from disk.

    Raises:
        OSError: If the file cannot be read.
        UnicodeDecodeError: If the file is not valid UTF-8.
    """
    text = path.read_text(encoding="utf-8")
    return parse_document(text, relative_path, extension)
