"""Tests for the CLI entry point."""

import json
from unittest.mock import AsyncMock, patch

import pytest

from amenity_heatmap.main import main, setup_argparse
from amenity_heatmap.utils import LogLevel, setup_logging


@pytest.fixture(autouse=True)
def restore_logging():
    """main() reinstalls log sinks on the captured stderr."""
    yield
    setup_logging(LogLevel.DEBUG)


def test_parse_query_args():
    args = setup_argparse().parse_args(
        ["--memory", "query", "--lat", "35.68", "--lng", "139.76", "--types", "gas"]
    )
    assert args.command == "query"
    assert args.memory is True
    assert args.radius == 1000
    assert args.types == "gas"


@pytest.mark.asyncio
async def test_demo_command(capsys):
    assert await main(["demo"]) == 0
    out = capsys.readouterr().out
    assert "grid_1" in out
    assert "SUMMARY STATISTICS" in out


@pytest.mark.asyncio
async def test_query_command_with_memory_repository(capsys, make_place):
    provider = AsyncMock()
    provider.search_nearby = AsyncMock(return_value=[make_place("p1")])

    with patch("amenity_heatmap.app.GooglePlacesProvider", return_value=provider):
        code = await main(
            [
                "--memory",
                "query",
                "--lat",
                "35.6812",
                "--lng",
                "139.7671",
                "--types",
                "restaurant",
            ]
        )

    assert code == 0
    data = json.loads(capsys.readouterr().out)
    assert data["count"] == 1
    assert data["places"][0]["external_id"] == "p1"


@pytest.mark.asyncio
async def test_invalid_scan_input_exit_code():
    code = await main(
        [
            "--memory",
            "scan",
            "--north",
            "45.0",
            "--south",
            "46.0",
            "--east",
            "-73.5",
            "--west",
            "-73.6",
            "--weights",
            "50,50,50,50,50",
        ]
    )
    assert code == 2
