from fastapi import APIRouter, Request, status
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from sitecraft.platform.logger import get_logger
from sitecraft.platform.response import api_response

logger = get_logger(__name__)

router = APIRouter()


@router.get("/health", tags=["health"])
def health_check(request: Request):
    """Liveness plus a status-store round trip; 503 when the database is unreachable."""
    container = request.app.state.container
    try:
        with container.engine.connect() as connection:
            connection.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error(f"Health check: status store unreachable: {e}")
        return api_response(
            data={"status": "degraded", "service": "SiteCraft Analysis", "database": "unreachable"},
            message="Status store unreachable",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        )

    return api_response(
        data={"status": "ok", "service": "SiteCraft Analysis", "database": "ok"},
        message="Service is healthy",
        status_code=status.HTTP_200_OK,
    )
