"""
Command line entry point for the chat streaming service.

Sub-commands:
- serve: run the HTTP streaming endpoint under uvicorn
- chat: interactive terminal client against a running server
- init-db: create the persistence schema
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

import uvicorn

from streamchat.client.terminal import run_terminal_chat
from streamchat.config import Configuration
from streamchat.history.repositories.sql_repo import AsyncSqlRepo
from streamchat.logging_utils import configure_logging, operation_context
from streamchat.server.app import create_app


def create_repository(config: Configuration) -> AsyncSqlRepo:
    """Create repository instance based on configuration."""
    db_path = config.get_repository_config()["path"]
    logging.info(f"Using AsyncSqlRepo with database path: {db_path}")
    return AsyncSqlRepo(db_path)


async def init_db(config: Configuration) -> None:
    async with operation_context("init_db", context={"config": "repository"}):
        async with create_repository(config) as repo:
            await repo.initialize()


def serve(config: Configuration, host: str | None, port: int | None) -> None:
    server_config = config.get_server_config()
    app = create_app(config)
    uvicorn.run(
        app,
        host=host or server_config["host"],
        port=port or server_config["port"],
        log_level=str(config.get_logging_config().get("level", "info")).lower(),
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="streamchat", description="Streaming LLM chat server and client"
    )
    parser.add_argument("--config", help="Path to a YAML config file")
    commands = parser.add_subparsers(dest="command", required=True)

    serve_parser = commands.add_parser("serve", help="Run the streaming endpoint")
    serve_parser.add_argument("--host")
    serve_parser.add_argument("--port", type=int)

    chat_parser = commands.add_parser("chat", help="Chat from the terminal")
    chat_parser.add_argument("--system", help="System prompt for the conversation")

    commands.add_parser("init-db", help="Create the persistence schema")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    config = Configuration(args.config)
    configure_logging(config.get_logging_config())

    try:
        if args.command == "serve":
            serve(config, args.host, args.port)
        elif args.command == "chat":
            asyncio.run(run_terminal_chat(config, system_prompt=args.system))
        elif args.command == "init-db":
            asyncio.run(init_db(config))
    except KeyboardInterrupt:
        logging.info("Keyboard interrupt received, shutting down...")
    return 0


def cli() -> None:
    sys.exit(main())


if __name__ == "__main__":
    cli()
