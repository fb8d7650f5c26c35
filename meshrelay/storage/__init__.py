"""User / thread directory."""

from meshrelay.storage.directory import ChatThread, ChatUser, Directory, InMemoryDirectory, seed_directory

__all__ = ["ChatThread", "ChatUser", "Directory", "InMemoryDirectory", "seed_directory"]
