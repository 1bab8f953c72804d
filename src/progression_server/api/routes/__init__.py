"""Router modules of the progression server API."""

from progression_server.api.routes.register import register_routes

__all__ = ["register_routes"]
