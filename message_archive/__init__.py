"""
Message Archive - browse and search the messages in an unencrypted iOS backup.

This package provides functionality to:
- Validate a backup folder and locate its message store
- Rebuild a local, searchable index from that message store
- Analyze and visualize conversations stored in the index
"""

__version__ = "0.1.0"

from message_archive.config import get_config, Config
from message_archive.index_store import IndexStore

__all__ = [
    "get_config",
    "Config",
    "IndexStore",
]
