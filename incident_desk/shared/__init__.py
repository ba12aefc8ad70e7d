"""
Shared Kernel Module
====================

Shared infrastructure used across all bounded contexts (Classification
and Incidents).

Architecture Pattern: Modular Monolith
- Each module (classification, incidents) is a bounded context
- Shared kernel contains only generic infrastructure

DO NOT add ticket or classification rules to the shared kernel.
"""

__version__ = "1.0.0"
