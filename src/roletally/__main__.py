"""CLI entrypoint for running roletally as a module."""

from roletally.cli import cli
from roletally.logging import setup_logging

if __name__ == "__main__":
    setup_logging()
    cli()
