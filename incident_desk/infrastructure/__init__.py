"""Infrastructure shared by every module (database)."""
