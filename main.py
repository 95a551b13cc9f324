"""
Storyloom - main entry point.

Commands:
- serve: run the FastAPI server (uvicorn)
- compile: print a player's compiled story
- preview: print the prompt a dynamic block would send to the LLM
- archive: archive the document store when it is older than DB_MAX_AGE_DAYS
"""

import argparse
import asyncio
import logging
import os
import sys
from typing import Optional

from dotenv import load_dotenv

from storyloom.infra.data_paths import ensure_directories, get_db_max_age_days
from storyloom.infra.logging_config import setup_logging

logger = logging.getLogger("storyloom")


def parse_args(argv: Optional[list] = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(description="Storyloom interactive story engine")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    serve_parser = subparsers.add_parser("serve", help="Run the API server")
    serve_parser.add_argument("--host", type=str, default="127.0.0.1", help="Bind host (default: 127.0.0.1)")
    serve_parser.add_argument("--port", type=int, default=8000, help="Bind port (default: 8000)")
    serve_parser.add_argument("--reload", action="store_true", default=False, help="Auto-reload on code changes")

    compile_parser = subparsers.add_parser("compile", help="Print a player's compiled story")
    compile_parser.add_argument("--player", type=str, default=None, help="Player id (omit for the bare story)")
    compile_parser.add_argument("--story-id", type=str, default="0", help="Story id(s), 0 for all (default: 0)")
    compile_parser.add_argument("--block-id", type=str, default=None, help="Stop before this block")

    preview_parser = subparsers.add_parser("preview", help="Print the prompt for a dynamic block")
    preview_parser.add_argument("--player", type=str, required=True, help="Player id")
    preview_parser.add_argument("--block-id", type=str, required=True, help="Dynamic block id")
    preview_parser.add_argument("--story-id", type=str, default="0", help="Story id(s), 0 for all (default: 0)")
    preview_parser.add_argument("--options", action="store_true", default=False, help="Generate options instead of text")

    archive_parser = subparsers.add_parser("archive", help="Archive the database if it is stale")
    archive_parser.add_argument(
        "--max-age-days",
        type=int,
        default=None,
        help="Archive when older than this many days (default: DB_MAX_AGE_DAYS)"
    )

    return parser.parse_args(argv)


async def run_compile(args: argparse.Namespace) -> str:
    from storyloom.api.dependencies import Services

    services = Services.build()
    try:
        return await services.interpreter.compile_story(args.player, args.block_id, args.story_id)
    finally:
        services.close()


async def run_preview(args: argparse.Namespace) -> str:
    from storyloom.api.dependencies import Services
    from storyloom.story.orchestrator import DynamicBlockRequest

    services = Services.build()
    try:
        request = DynamicBlockRequest(
            player_id=args.player,
            block_id=args.block_id,
            story_id=args.story_id,
            generate_options=args.options,
        )
        return await services.orchestrator.preview_prompt(request)
    finally:
        services.close()


async def run_archive(args: argparse.Namespace) -> Optional[str]:
    from storyloom.ledger.document_store import DocumentStore

    store = DocumentStore()
    try:
        max_age = args.max_age_days if args.max_age_days is not None else get_db_max_age_days()
        archived = await store.archive_if_stale(max_age)
        return str(archived) if archived else None
    finally:
        store.close()


def main(argv: Optional[list] = None) -> None:
    """Main entry point."""
    load_dotenv()
    args = parse_args(argv)

    log_level = os.getenv("LOG_LEVEL", "INFO").upper()
    setup_logging(log_level)
    ensure_directories()

    if args.command == "serve":
        import uvicorn

        logger.info(f"Starting API server on {args.host}:{args.port}")
        uvicorn.run("storyloom.api.main:app", host=args.host, port=args.port, reload=args.reload)
    elif args.command == "compile":
        print(asyncio.run(run_compile(args)))
    elif args.command == "preview":
        print(asyncio.run(run_preview(args)))
    elif args.command == "archive":
        archived = asyncio.run(run_archive(args))
        if archived:
            print(f"Archived to {archived}")
        else:
            print("Database is not stale, nothing archived")
    else:
        print("Usage: storyloom {serve,compile,preview,archive} [options]", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
