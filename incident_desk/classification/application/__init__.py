"""
Classification Application Layer
================================

Contains:
- Services: TeamClassifier and ClassificationService
- DTOs: request/response models for the classification API
- Provider interfaces for keyword and user directory snapshots
"""

from incident_desk.classification.application.dto import (
    ClassifyRequest,
    ClassifyResponse,
    ReloadRequest,
    ReloadResponse,
)
from incident_desk.classification.application.services import (
    IKeywordProvider,
    IUserDirectoryProvider,
    StaticKeywordProvider,
    StaticUserDirectoryProvider,
    TeamClassifier,
    ClassificationService,
)

__all__ = [
    # DTOs
    "ClassifyRequest",
    "ClassifyResponse",
    "ReloadRequest",
    "ReloadResponse",
    # Providers
    "IKeywordProvider",
    "IUserDirectoryProvider",
    "StaticKeywordProvider",
    "StaticUserDirectoryProvider",
    # Services
    "TeamClassifier",
    "ClassificationService",
]
