"""``synthspine`` command line."""

from synthspine.cli.app import app

__all__ = ["app"]
