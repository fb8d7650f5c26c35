"""Bot identity caching."""

from meshrelay.identity.bot_identity import BotIdentityCache

__all__ = ["BotIdentityCache"]
