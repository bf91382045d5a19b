"""
Main entry point for the amenity heatmap service.

Provides a CLI for cached place queries, region scans, the scoring demo and
DynamoDB table setup.
"""

import argparse
import asyncio
import json
import sys
import traceback
from typing import Any

from amenity_heatmap.app import (
    build_coordinator,
    build_db,
    build_heatmap_service,
    build_repository,
)
from amenity_heatmap.config import HeatmapConfig, initialize_config
from amenity_heatmap.data.models import KEY_FIELDS
from amenity_heatmap.demo import run_demo
from amenity_heatmap.services.scoring import CommodityScorer
from amenity_heatmap.utils.error_handling import ValidationError
from amenity_heatmap.utils.helpers import split_csv
from amenity_heatmap.utils.logging import get_logger, setup_logging

# Initialize logger
logger = get_logger(__name__)


def setup_argparse() -> argparse.ArgumentParser:
    """
    Set up the argument parser for the CLI.

    Returns:
        Configured argument parser
    """
    parser = argparse.ArgumentParser(
        description="Amenity heatmap: cached place lookups and weighted scoring"
    )

    # System configuration arguments
    system_group = parser.add_argument_group("System Configuration")
    system_group.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
        help="Set the logging level",
    )
    system_group.add_argument(
        "--log-file",
        type=str,
        help="Path to write log file (optional)",
    )
    system_group.add_argument(
        "--config",
        type=str,
        help="Path to custom configuration file",
    )
    system_group.add_argument(
        "--memory",
        action="store_true",
        help="Use an in-process repository instead of DynamoDB",
    )

    commands = parser.add_subparsers(dest="command", required=True)

    query = commands.add_parser("query", help="Find places around a point")
    query.add_argument("--lat", type=float, required=True, help="Latitude")
    query.add_argument("--lng", type=float, required=True, help="Longitude")
    query.add_argument(
        "--radius", type=float, default=1000, help="Search radius in meters"
    )
    query.add_argument(
        "--types",
        type=str,
        default="",
        help="Comma separated amenity types (default: all)",
    )

    scan = commands.add_parser("scan", help="Score a region on a square grid")
    scan.add_argument("--north", type=float, required=True)
    scan.add_argument("--south", type=float, required=True)
    scan.add_argument("--east", type=float, required=True)
    scan.add_argument("--west", type=float, required=True)
    scan.add_argument(
        "--grid-size", type=int, default=4, help="Squares per side (1-20)"
    )
    scan.add_argument(
        "--weights",
        type=str,
        required=True,
        help="Comma separated weights (0-100), one per amenity type",
    )
    scan.add_argument(
        "--types",
        type=str,
        default="",
        help="Comma separated amenity types (default: all)",
    )

    commands.add_parser("demo", help="Run the scoring demo on a fixed dataset")
    commands.add_parser("init-db", help="Create the DynamoDB table if missing")

    return parser


async def run_query(args: argparse.Namespace, config: HeatmapConfig) -> int:
    """Run a place query and print the places as JSON."""
    coordinator = build_coordinator(config, _repo_override(args, config))
    result = await coordinator.query(
        args.lat, args.lng, args.radius, split_csv(args.types)
    )
    _print_json(
        {
            "count": result.count,
            "perType": result.per_type,
            "places": [
                p.model_dump(mode="json", exclude=KEY_FIELDS) for p in result.places
            ],
        }
    )
    return 0


async def run_scan(args: argparse.Namespace, config: HeatmapConfig) -> int:
    """Scan a region and print the scores as JSON."""
    service = build_heatmap_service(config, _repo_override(args, config))
    bounds = {
        "north": args.north,
        "south": args.south,
        "east": args.east,
        "west": args.west,
    }
    result = await service.scan(
        bounds, args.grid_size, split_csv(args.weights), split_csv(args.types)
    )
    _print_json(
        {
            "commodityTypes": result.commodity_types,
            "baseScores": result.base_scores,
            "aggregatedScores": result.aggregated_scores,
            "heatmap": [p.model_dump(mode="json") for p in result.heatmap],
            "summary": result.summary.model_dump(mode="json"),
        }
    )
    return 0


def initialize_database(config: HeatmapConfig) -> int:
    """Create the DynamoDB table if it does not exist."""
    logger.info("Initializing DynamoDB table...")
    try:
        build_db(config).create_table_if_not_exists()
    except Exception as e:
        logger.error(f"Error initializing DynamoDB table: {e}")
        print(f"\nERROR: Failed to initialize DynamoDB table: {e}")
        return 1
    logger.info("DynamoDB table initialized successfully")
    return 0


def _repo_override(args: argparse.Namespace, config: HeatmapConfig):
    if args.memory:
        return build_repository(config, memory=True)
    return None


def _print_json(data: dict[str, Any]) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False))


async def main(argv: list[str] | None = None) -> int:
    """
    Main entry point function.

    Returns:
        Exit code (0 for success, non-zero for errors)
    """
    try:
        parser = setup_argparse()
        args = parser.parse_args(argv)

        # Basic logging first to capture initialization errors
        setup_logging(log_level=args.log_level or "INFO", log_file=args.log_file)

        config = initialize_config(
            custom_config_path=args.config,
            validate=args.command in ("query", "scan"),
            raise_on_error=False,
        )
        setup_logging(
            log_level=args.log_level or config.system.log_level,
            log_file=args.log_file,
        )

        if args.command == "demo":
            run_demo(CommodityScorer(config.scoring))
            return 0
        if args.command == "init-db":
            return initialize_database(config)
        if args.command == "query":
            return await run_query(args, config)
        return await run_scan(args, config)

    except ValidationError as e:
        logger.error(f"Invalid input: {e}")
        print(f"\nError: {e}")
        return 2
    except HeatmapConfig.ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        print(f"\nConfiguration Error: {e}")
        return 1
    except FileNotFoundError as e:
        logger.error(f"File not found: {e}")
        print(f"\nError: {e}")
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 0
    except Exception as e:
        logger.error(f"Error in main function: {e!s}\n{traceback.format_exc()}")
        print(f"\nError: {e!s}")
        return 1


def run() -> None:
    """Console script entry point."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
