"""
Core Module
===========

Framework-agnostic building blocks shared by every module.
"""

from incident_desk.core.exceptions import (
    ApplicationException,
    DomainException,
    RepositoryException,
    ValidationException,
    ResourceNotFoundException,
    PermissionDeniedException,
    PreconditionFailedException,
    AlreadyConfirmedException,
    ConfigurationException,
    ExternalServiceException,
    TransportException,
)

__all__ = [
    "ApplicationException",
    "DomainException",
    "RepositoryException",
    "ValidationException",
    "ResourceNotFoundException",
    "PermissionDeniedException",
    "PreconditionFailedException",
    "AlreadyConfirmedException",
    "ConfigurationException",
    "ExternalServiceException",
    "TransportException",
]
