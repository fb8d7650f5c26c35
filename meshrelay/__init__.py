"""MeshRelay - chat relay between ACS threads and a streaming AI backend."""

__version__ = "0.1.0"
__logo__ = "🕸️"
