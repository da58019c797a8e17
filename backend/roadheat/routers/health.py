"""Health check endpoint."""

from fastapi import APIRouter, Request

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(request: Request) -> dict:
    """Report service liveness and background listener status."""
    state = request.app.state
    listener = getattr(state, "mqtt_listener", None)
    coordinator = getattr(state, "coordinator", None)
    hub = getattr(state, "notification_hub", None)
    return {
        "status": "ok",
        "subscriptions": coordinator.subscription_count if coordinator else 0,
        "mqtt": {
            "enabled": listener is not None,
            "running": listener.running if listener else False,
            "last_error": listener.last_error if listener else None,
            "signals_received": hub.signals_received if hub else 0,
        },
    }
