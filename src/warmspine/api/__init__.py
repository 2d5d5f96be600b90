"""Read-only reports API."""

from warmspine.api.app import create_app

__all__ = ["create_app"]
