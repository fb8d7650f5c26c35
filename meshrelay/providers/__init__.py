"""Generation backend clients."""

from meshrelay.providers.stream_client import StreamAssembler, StreamingBackendClient, parse_stream_frame

__all__ = ["StreamAssembler", "StreamingBackendClient", "parse_stream_frame"]
