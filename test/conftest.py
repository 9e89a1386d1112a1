#
# conftest.py - zone_transit_tools: pytest configuration file
# Copyright DeGirum Corp. 2025
#
# Contains common pytest configuration and common test fixtures
#
import sys, os, tempfile, pytest, pathlib

# add current directory to sys.path to debug tests locally without package installation
sys.path.insert(0, os.getcwd())

import zone_transit_tools
import logging


def pytest_addoption(parser):
    """Add custom command line options for pytest"""

    parser.addoption(
        "--loglevel",
        action="store",
        default=None,
        help="Set log level (e.g. DEBUG, INFO, WARNING)",
    )


def pytest_configure(config):
    """Configure pytest with custom options"""

    loglevel = config.getoption("--loglevel")
    if loglevel:
        zone_transit_tools.logger_add_handler(
            level=getattr(logging, loglevel.upper(), logging.ERROR)
        )


@pytest.fixture
def temp_dir():
    """Temporary directory fixture with cleanup"""
    with tempfile.TemporaryDirectory() as directory:
        yield pathlib.Path(directory)
        # cleanup happens automatically when the block exits


@pytest.fixture
def square_zone():
    """Counting zone covering [0.25, 0.75] of both frame dimensions"""
    return zone_transit_tools.CountingZone(
        [(0.25, 0.25), (0.75, 0.25), (0.75, 0.75), (0.25, 0.75)]
    )
