"""HTTP API."""

from discovery.api.app import create_app


__all__ = ["create_app"]
