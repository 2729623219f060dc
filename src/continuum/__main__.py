"""Allow ``python -m continuum``."""

from continuum.cli import cli

if __name__ == "__main__":
    cli()
