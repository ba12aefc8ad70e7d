"""
Classification Infrastructure Layer
===================================

YAML snapshot managers with watchdog hot reload.
"""

from incident_desk.classification.infrastructure.external import (
    WatchedYAMLManager,
    KeywordConfigManager,
    UserDirectoryManager,
)

__all__ = [
    "WatchedYAMLManager",
    "KeywordConfigManager",
    "UserDirectoryManager",
]
