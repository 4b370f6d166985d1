"""HTTP surface for ContentHub."""

from ContentHub.api.app import create_app

__all__ = ["create_app"]
