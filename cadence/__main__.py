"""
Cadence - Entry Point

Run with: python -m cadence [serve|sync]
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from cadence import __version__
from cadence.config import CadenceConfig, ConfigError, load_config
from cadence.server import CadenceServer


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for the application."""
    level = logging.DEBUG if verbose else logging.INFO

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # Reduce noise from third-party libraries
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("watchdog").setLevel(logging.WARNING)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="cadence",
        description="Cadence - index a music folder and stream it over HTTP",
    )

    parser.add_argument(
        "command",
        nargs="?",
        choices=("serve", "sync"),
        default="serve",
        help="serve: run the server (default); sync: index the music root once and exit",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose (debug) logging",
    )

    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=None,
        help="Path to a cadence.toml config file",
    )

    parser.add_argument(
        "--music",
        type=Path,
        default=None,
        help="Music root directory (overrides MUSIC_PATH)",
    )

    parser.add_argument(
        "--cache",
        type=Path,
        default=None,
        help="Cache directory (overrides CACHE_PATH)",
    )

    parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="Host address to bind to (default: 0.0.0.0)",
    )

    parser.add_argument(
        "-p",
        "--port",
        type=int,
        default=None,
        help="HTTP port (default: 4000)",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    return parser.parse_args(argv)


async def run_server(config: CadenceConfig) -> None:
    """Start and run the Cadence server."""
    server = CadenceServer(config)
    await server.run()


async def run_sync(config: CadenceConfig) -> None:
    """Index the music root once, log the report, and exit."""
    logger = logging.getLogger(__name__)
    server = CadenceServer(config)
    await server.open_library()
    try:
        report = await server.music_library.sync()
        logger.info(
            "Library: %d tracks, %d albums, %d artists (%d bytes scanned in %.2fs)",
            report.tracks,
            report.albums,
            report.artists,
            report.size_bytes,
            report.seconds,
        )
    finally:
        await server.library_db.close()


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the application."""
    args = parse_args(argv)
    setup_logging(verbose=args.verbose)

    logger = logging.getLogger(__name__)

    try:
        config = load_config(args.config).with_overrides(
            music_root=args.music,
            cache_root=args.cache,
            host=args.host,
            port=args.port,
        )
    except (ConfigError, FileNotFoundError) as e:
        logger.error("Invalid configuration: %s", e)
        return 1

    try:
        if args.command == "sync":
            if config.music_root is None:
                logger.error("No music root configured (use --music or MUSIC_PATH)")
                return 1
            asyncio.run(run_sync(config))
        else:
            logger.info("Starting Cadence...")
            asyncio.run(run_server(config))
    except KeyboardInterrupt:
        logger.info("Shutdown requested by user")
    except Exception as e:
        logger.exception("Fatal error: %s", e)
        return 1

    logger.info("Cadence stopped")
    return 0


if __name__ == "__main__":
    sys.exit(main())
