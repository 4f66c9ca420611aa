"""tokenfolio.api — FastAPI HTTP surface over the pricing engine."""

from tokenfolio.api.app import create_app

__all__ = ["create_app"]
