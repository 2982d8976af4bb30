"""Health check endpoint."""

from fastapi import APIRouter, Request

router = APIRouter(tags=["health"])


@router.get("/health")
def health(request: Request) -> dict:
    """Return API health status."""
    engine = getattr(request.app.state, "engine", None)
    return {
        "status": "ok",
        "engine": engine is not None,
        "connections": engine.connections.total_connections if engine else 0,
    }
