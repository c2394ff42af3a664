from fastapi import APIRouter, status

from rolegate.schemas.verification import HealthCheck

router = APIRouter()


@router.get(
    "/health",
    tags=["health"],
    response_model=HealthCheck,
    status_code=status.HTTP_200_OK,
)
def get_health() -> HealthCheck:
    """Liveness probe, no dependency is touched."""
    return HealthCheck(status="oke")
