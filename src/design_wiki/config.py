"""Configuration module for design-wiki.

Loads configuration from environment variables with sensible defaults.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path


@dataclass
class Config:
    """Application configuration."""

    wiki_root: Path
    wiki_port: int = 3055
    extension: str = ".md"
    debounce_ms: int = 100
    webhook_urls: list[str] = field(default_factory=list)

    @classmethod
    def from_env(cls, root_override: Path | None = None) -> "Config":
        """Load configuration from environment variables.

        Args:
            root_override: If provided, overrides the WIKI_ROOT env var.
        """
        if root_override is not None:
            wiki_root = Path(root_override).expanduser()
        else:
            wiki_root = Path(os.getenv("WIKI_ROOT", "wiki-docs")).expanduser()
        wiki_root = wiki_root.absolute()

        port_str = os.getenv("WIKI_PORT", "3055")
        try:
            wiki_port = int(port_str)
            if not 1 <= wiki_port <= 65535:
                raise ValueError(f"Port must be between 1 and 65535, got {wiki_port}")
        except ValueError as e:
            raise ValueError(f"Invalid WIKI_PORT value '{port_str}': {e}") from e

        extension = os.getenv("WIKI_EXTENSION", ".md")
        if not extension.startswith(".") or len(extension) < 2:
            raise ValueError(
                f"Invalid WIKI_EXTENSION value '{extension}': must look like '.md'"
            )

        debounce_str = os.getenv("WIKI_DEBOUNCE_MS", "100")
        try:
            debounce_ms = int(debounce_str)
            if debounce_ms < 0:
                raise ValueError(f"Debounce must be >= 0, got {debounce_ms}")
        except ValueError as e:
            raise ValueError(f"Invalid WIKI_DEBOUNCE_MS value '{debounce_str}': {e}") from e

        webhook_urls = [
            url.strip()
            for url in os.getenv("WIKI_WEBHOOK_URLS", "").split(",")
            if url.strip()
        ]
        for url in webhook_urls:
            if not url.startswith(("http://", "https://")):
                raise ValueError(
                    f"Invalid WIKI_WEBHOOK_URLS entry '{url}': "
                    "URL must start with http:// or https://"
                )

        return cls(
            wiki_root=wiki_root,
            wiki_port=wiki_port,
            extension=extension,
            debounce_ms=debounce_ms,
            webhook_urls=webhook_urls,
        )
