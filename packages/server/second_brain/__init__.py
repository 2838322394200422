"""Second Brain API server."""
