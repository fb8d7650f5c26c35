"""Chat transport and event publishing clients."""

from meshrelay.transport.acs import AcsError, AcsTransport, parse_connection_string
from meshrelay.transport.base import ChatTransport, IssuedToken, ThreadParticipant
from meshrelay.transport.eventgrid import EventGridError, EventGridPublisher

__all__ = [
    "AcsError",
    "AcsTransport",
    "ChatTransport",
    "EventGridError",
    "EventGridPublisher",
    "IssuedToken",
    "ThreadParticipant",
    "parse_connection_string",
]
