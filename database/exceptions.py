"""Database exceptions."""

class DatabaseError(Exception):
    """Raised when a datastore operation fails unexpectedly."""
    pass

class DatabaseSchemaError(DatabaseError):
    """Raised when schema creation or migration fails."""
    pass
