"""
Classification Module
=====================

Bounded Context for routing free-text reports to departments.

Responsibilities:
- Normalize text and compare it with length-adaptive fuzzy matching
- Detect target teams (explicit reference, mentioned users, keyword scoring)
- Hold hot-reloadable keyword vocabularies and the user directory
"""

__version__ = "1.0.0"
