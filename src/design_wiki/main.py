"""Main entry point for the design-wiki server."""

import argparse
import logging
import sys
from pathlib import Path

from fastmcp import FastMCP

from design_wiki.broadcast import BroadcastHub, WebhookSubscriber
from design_wiki.config import Config
from design_wiki.indexer import Indexer
from design_wiki.tools import register_tools
from design_wiki.watcher import WikiWatcher

logger = logging.getLogger(__name__)


def create_server(config: Config) -> tuple[FastMCP, WikiWatcher]:
    """Create the MCP server and the (not yet started) watcher.

    Args:
        config: Configuration instance with all settings.
    """
    mcp = FastMCP(
        name="designWiki",
        instructions=(
            "designWiki indexes a game-design wiki. Use search_terms to find term "
            "definitions by name or alias, get_index for every term and formula, "
            "list_files/read_file to browse the documents and write_file to edit them."
        ),
    )

    indexer = Indexer(config.wiki_root, config.extension)
    try:
        doc_count = indexer.rebuild()
        logger.info("Initial index complete: %d documents indexed", doc_count)
    except OSError as e:
        # Keep serving an empty index; a later rebuild can recover
        logger.error("Initial index failed: %s", e)

    hub = BroadcastHub()
    if config.webhook_urls:
        hub.subscribe(WebhookSubscriber(config.webhook_urls))
        logger.info("Webhook delivery enabled for %d URLs", len(config.webhook_urls))

    watcher = WikiWatcher(
        config.wiki_root,
        indexer,
        hub.broadcast,
        extension=config.extension,
        debounce_ms=config.debounce_ms,
    )

    logger.info("Registering tools...")
    register_tools(mcp, indexer, config)

    logger.info("Server configured successfully")
    return mcp, watcher


def main() -> None:
    """Main function - starts the server."""
    # Configure logging here to avoid side effects on import
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    parser = argparse.ArgumentParser(description="designWiki - live index for a design wiki")
    parser.add_argument(
        "--root",
        type=Path,
        default=None,
        help="Wiki document root (overrides WIKI_ROOT)",
    )
    parser.add_argument(
        "--no-watch",
        action="store_true",
        help="Do not watch the document root for changes",
    )
    args = parser.parse_args()

    try:
        config = Config.from_env(root_override=args.root)
    except ValueError as e:
        logger.error("Invalid configuration: %s", e)
        sys.exit(2)

    logger.info("=" * 50)
    logger.info("designWiki starting...")
    logger.info("  WIKI_ROOT:     %s", config.wiki_root)
    logger.info("  WIKI_PORT:     %s", config.wiki_port)
    logger.info("  DEBOUNCE:      %dms", config.debounce_ms)
    logger.info("  WATCH:         %s", "disabled" if args.no_watch else "enabled")
    logger.info("=" * 50)

    mcp, watcher = create_server(config)
    if not args.no_watch and not watcher.start():
        logger.warning("File watching unavailable, serving a static index")

    try:
        logger.info("Starting MCP server on port %s...", config.wiki_port)
        mcp.run(transport="sse", host="127.0.0.1", port=config.wiki_port)
    except KeyboardInterrupt:
        logger.info("Server stopped by user")
    except Exception:
        logger.exception("Server error")
        sys.exit(1)
    finally:
        watcher.stop()


if __name__ == "__main__":
    main()
