"""HTTP service exposing the gallery, artifacts and refresh channel."""

from .app import create_app, run_service

__all__ = ["create_app", "run_service"]
