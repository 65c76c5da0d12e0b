"""API Endpoints for server information."""

from fastapi import APIRouter
from pydantic import BaseModel, Field

from metastore.config import get_settings, validate_settings

app_info = APIRouter(tags=["informational"])


class HealthResponse(BaseModel):
    status: str = Field(description="Always 'ok' if the server is running")
    environment: str = Field(description="The deployment environment")
    max_image_size: int = Field(description="Maximum size of a project image in bytes")
    allowed_origins: list[str] = Field(description="Origins that may call the API from a browser")
    warnings: list[str] = Field(description="A list of configuration warnings")


@app_info.get("/health")
def health() -> HealthResponse:
    """Check that the server is up, and show the limits it enforces."""
    settings = get_settings()
    return HealthResponse(
        status="ok",
        environment=settings.environment.value,
        max_image_size=settings.max_image_size,
        allowed_origins=settings.allowed_origins or [],
        warnings=[w for w in [validate_settings()] if w],
    )
