"""Data models for the wiki index."""

import copy
from dataclasses import dataclass, field


@dataclass
class Term:
    """A named concept extracted from a document."""

    term: str = ""
    aliases: list[str] = field(default_factory=list)  # Always starts with term
    definition: str = ""
    scope: str = ""  # "" means global
    file_path: str = ""  # Relative to WIKI_ROOT, "/" separated
    definition_type: str = "file"  # file or inline
    has_more: bool = False  # Definition was cut at <!-- more -->

    @property
    def key(self) -> tuple[str, str]:
        """Identity used to de-duplicate terms across aliases."""
        return (self.file_path, self.term)

    def to_dict(self) -> dict:
        data = {
            "term": self.term,
            "aliases": list(self.aliases),
            "definition": self.definition,
            "scope": self.scope,
            "filePath": self.file_path,
            "definitionType": self.definition_type,
        }
        if self.has_more:
            data["hasMore"] = True
        return data


@dataclass
class Formula:
    """A design formula with its calculated and design placeholders."""

    expression: str = ""
    calculated_values: list[str] = field(default_factory=list)  # [xxx]
    design_values: list[str] = field(default_factory=list)  # <xxx>
    scope: str = ""
    file_path: str = ""

    def to_dict(self) -> dict:
        return {
            "expression": self.expression,
            "calculatedValues": list(self.calculated_values),
            "designValues": list(self.design_values),
            "scope": self.scope,
            "filePath": self.file_path,
        }


@dataclass
class IndexSnapshot:
    """Point-in-time copy of the index, safe to hand out to callers."""

    terms: dict[str, list[Term]] = field(default_factory=dict)
    formulas: dict[str, list[Formula]] = field(default_factory=dict)
    scopes: list[str] = field(default_factory=list)
    build_time: int = 0  # Unix epoch milliseconds

    def to_dict(self) -> dict:
        return {
            "terms": {
                alias: [t.to_dict() for t in terms]
                for alias, terms in self.terms.items()
            },
            "formulas": {
                name: [f.to_dict() for f in formulas]
                for name, formulas in self.formulas.items()
            },
            "scopes": list(self.scopes),
            "buildTime": self.build_time,
        }

    @classmethod
    def capture(
        cls,
        terms: dict[str, list[Term]],
        formulas: dict[str, list[Formula]],
        scopes: list[str],
        build_time: int,
    ) -> "IndexSnapshot":
        """Deep-copy live index state into a snapshot."""
        return cls(
            terms=copy.deepcopy(terms),
            formulas=copy.deepcopy(formulas),
            scopes=list(scopes),
            build_time=build_time,
        )


@dataclass
class FileTreeNode:
    """A file or directory in the document tree."""

    name: str
    path: str  # Relative to WIKI_ROOT
    is_directory: bool = False
    children: list["FileTreeNode"] | None = None

    def to_dict(self) -> dict:
        data: dict = {
            "name": self.name,
            "path": self.path,
            "isDirectory": self.is_directory,
        }
        if self.is_directory:
            data["children"] = [c.to_dict() for c in self.children or []]
        return data
