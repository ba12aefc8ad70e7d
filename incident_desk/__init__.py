"""
Incident Desk
=============

Chat-driven hotel incident routing: classifies free-text reports to
departments and tracks each ticket until every assigned team confirms.
"""

__version__ = "1.0.0"
