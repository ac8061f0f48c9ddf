"""Health check endpoint."""

from beartype import beartype
from fastapi import APIRouter
from pydantic import BaseModel, ConfigDict, Field

router = APIRouter()


class HealthResponse(BaseModel):
    """Liveness response."""

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        validate_assignment=True,
        str_strip_whitespace=True,
        validate_default=True,
    )

    status: str = Field(default="OK")


@router.get("/health", response_model=HealthResponse)
@beartype
async def health_check() -> HealthResponse:
    """Report that the process is serving requests."""
    return HealthResponse(status="OK")
