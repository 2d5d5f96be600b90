"""Typer operator CLI (``warmspine``)."""

from warmspine.cli.app import app

__all__ = ["app"]
