"""
Health check schema.
"""

from pydantic import BaseModel


class HealthResponse(BaseModel):
    """
    Health check payload.

    Attributes:
        status: "healthy" or "degraded"
        app_name: Application name
        environment: development, staging or production
        database: True if the database answered
        redis: True if Redis answered
        scheduler: True if the periodic sweep is running
    """

    status: str
    app_name: str
    environment: str
    database: bool
    redis: bool
    scheduler: bool
