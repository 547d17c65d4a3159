"""HTTP layer: users resource, health checks, OpenAPI docs and error handlers."""
