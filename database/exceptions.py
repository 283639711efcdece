"""Database-level exceptions."""


class DatabaseError(Exception):
    """Raised when a database operation fails for infrastructure reasons."""
    pass


class DatabaseSchemaError(DatabaseError):
    """Raised when the schema cannot be loaded, created or migrated."""
    pass
