"""API routers."""

from roadheat.routers.health import router as health_router
from roadheat.routers.heatmap import router as heatmap_router

__all__ = [
    "health_router",
    "heatmap_router",
]
