import argparse
import sys
from typing import Optional

from aiohttp import web
from dotenv import load_dotenv

from pricewatch.api import create_app
from pricewatch.config import Settings
from pricewatch.utils.logging_config import setup_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Product price tracking service")
    parser.add_argument("--host", help="Interface to bind (env HOST)")
    parser.add_argument("--port", type=int, help="Port to listen on (env PORT)")
    parser.add_argument("--database-url", help="Database connection URL")
    parser.add_argument("--log-dir", help="Directory for log files")
    parser.add_argument(
        "--no-cache",
        action="store_true",
        help="Serve every product listing straight from the database",
    )
    return parser


def load_settings(argv: Optional[list[str]] = None) -> Settings:
    """Settings from the environment, overridden by CLI arguments"""
    args = build_parser().parse_args(argv)
    settings = Settings.from_env()

    overrides = {
        "host": args.host,
        "port": args.port,
        "database_url": args.database_url,
        "log_dir": args.log_dir,
    }
    update = {k: v for k, v in overrides.items() if v is not None}
    if args.no_cache:
        update["cache_enabled"] = False
    return settings.model_copy(update=update)


def cli(argv: Optional[list[str]] = None) -> None:
    """Command Line Interface entry point"""
    # Load environment variables from .env file if present
    load_dotenv()

    settings = load_settings(argv)
    logger = setup_logging(settings.log_dir)

    if not settings.api_tokens:
        logger.warning("PRICEWATCH_API_TOKENS is empty, every API request will be rejected")

    web.run_app(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        print=None,
    )


if __name__ == "__main__":
    cli(sys.argv[1:])
