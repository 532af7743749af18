"""HTTP surface for orders and live streams."""

from .app import create_app

__all__ = ["create_app"]
