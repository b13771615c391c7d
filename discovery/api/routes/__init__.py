"""API routers."""

from discovery.api.routes import admin, discovery, moderation


__all__ = ["admin", "discovery", "moderation"]
