"""Application services: orchestration, delivery and the AI event bridge."""

from meshrelay.services.delivery import ReplyDelivery
from meshrelay.services.event_bridge import AiEventBridge, UserMessagePayload
from meshrelay.services.orchestrator import ChatOrchestrator, OrchestratorError

__all__ = ["AiEventBridge", "ChatOrchestrator", "OrchestratorError", "ReplyDelivery", "UserMessagePayload"]
