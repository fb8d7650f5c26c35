"""HTTP API for meshrelay."""
