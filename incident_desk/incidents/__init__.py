"""
Incidents Module
================

Bounded Context for the ticket lifecycle.

Responsibilities:
- Open tickets for classified reports and notify the assigned teams
- Track per-team confirmations until every team is done
- Cancellation, feedback requests, edits and reminders
"""

__version__ = "1.0.0"
