"""Command line interface"""

from capregistry.cli.main import cli, configure_logging

__all__ = ["cli", "configure_logging"]
