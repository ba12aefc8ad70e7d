"""
Incident Interfaces Layer
=========================

API controllers (routes) for the ticket lifecycle.
"""

from incident_desk.incidents.interfaces.controllers import router as incidents_router

__all__ = ["incidents_router"]
