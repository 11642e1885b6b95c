"""Authentication backend for the TE Management application."""

from .api import app

__all__ = ["app"]
