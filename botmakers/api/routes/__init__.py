"""API route modules."""

from botmakers.api.routes import admin, connections, integrations, tools

__all__ = ["admin", "connections", "integrations", "tools"]
