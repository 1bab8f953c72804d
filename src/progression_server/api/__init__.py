"""HTTP API for the progression server."""
