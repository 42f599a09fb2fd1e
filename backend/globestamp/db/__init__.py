"""Database models and repository abstractions.

``globestamp.db.models`` holds the drawing, bounds and activity records.
``globestamp.db.database`` holds the repository protocols with in-memory
and PostgreSQL implementations, and the factories used for dependency
injection.

Example:
    Use in a service or FastAPI dependency:
        >>> from globestamp.db import database
        >>> repo = database.get_drawing_repository(settings)
"""
