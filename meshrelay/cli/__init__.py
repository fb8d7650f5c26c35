"""CLI module for meshrelay."""
