"""Incident Desk test suite."""
