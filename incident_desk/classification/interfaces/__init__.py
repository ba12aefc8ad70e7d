"""
Classification Interfaces Layer
===============================

FastAPI route handlers for the classification module.
"""

from incident_desk.classification.interfaces.controllers import router as classification_router

__all__ = ["classification_router"]
