"""Heatmap API endpoints."""

import json
import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, Request, WebSocket, WebSocketDisconnect

from roadheat.conditions import (
    ACTIVITY_CONDITION_PRIORITY,
    ACTIVITY_DEFAULT_CONDITION,
    ACTIVITY_SCORE_WEIGHTS,
    CONDITION_REGISTRY,
    DEFAULT_ACTIVITY,
    LOW_DATA_THRESHOLD,
    ActivityType,
)
from roadheat.exceptions import InvalidQuery, ReportSourceUnavailable
from roadheat.schemas.heatmap import (
    ActivityInfo,
    ConditionInfo,
    ConditionsResponse,
    HeatmapCell,
    HeatmapUpdate,
    parse_query,
)
from roadheat.services.freshness import FreshnessCoordinator, Subscription, UpdateCallback
from roadheat.services.heatmap import HeatmapService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/heatmap", tags=["heatmap"])

VIEWPORT_FIELDS = ("zoom", "south", "north", "west", "east")


def get_heatmap_service(request: Request) -> HeatmapService:
    """Dependency that provides the heatmap service."""
    return request.app.state.heatmap_service


@router.get("/cells", response_model=list[HeatmapCell])
async def get_heatmap_cells(
    zoom: Annotated[int, Query(description="Map zoom level")],
    south: Annotated[float, Query(description="Southern edge (degrees)")],
    north: Annotated[float, Query(description="Northern edge (degrees)")],
    west: Annotated[float, Query(description="Western edge (degrees)")],
    east: Annotated[float, Query(description="Eastern edge (degrees)")],
    activity: Annotated[
        ActivityType | None, Query(description="Reweight scores for this activity")
    ] = None,
    service: HeatmapService = Depends(get_heatmap_service),
) -> list[HeatmapCell]:
    """Get aggregated heatmap cells for a viewport, highest score first."""
    try:
        query = parse_query(zoom=zoom, south=south, north=north, west=west, east=east)
    except InvalidQuery as e:
        raise HTTPException(status_code=400, detail=str(e))

    try:
        return await service.get_cells(query, activity=activity)
    except ReportSourceUnavailable as e:
        raise HTTPException(status_code=503, detail=str(e))


@router.get("/conditions", response_model=ConditionsResponse)
async def get_conditions() -> ConditionsResponse:
    """Get the condition registry and per-activity display metadata."""
    return ConditionsResponse(
        conditions=[
            ConditionInfo(
                condition=c.condition,
                label=c.label,
                condition_class=c.condition_class.value,
                half_life_days=c.half_life_days,
            )
            for c in CONDITION_REGISTRY.values()
        ],
        activities=[
            ActivityInfo(
                activity=activity,
                default_condition=ACTIVITY_DEFAULT_CONDITION[activity],
                condition_priority=list(ACTIVITY_CONDITION_PRIORITY[activity]),
                score_weights=dict(ACTIVITY_SCORE_WEIGHTS[activity]),
            )
            for activity in ActivityType
        ],
        low_data_threshold=LOW_DATA_THRESHOLD,
    )


def _handle_stream_message(
    coordinator: FreshnessCoordinator,
    subscription: Subscription | None,
    message: dict,
    send_update: UpdateCallback,
) -> Subscription | None:
    """Apply one client message to the stream's subscription.

    Message types:
        subscribe / viewport: {zoom, south, north, west, east, activity?}
        activity: {activity}
        submitted: {}
    """
    msg_type = message.get("type")

    if msg_type in ("subscribe", "viewport"):
        viewport = parse_query(**{field: message.get(field) for field in VIEWPORT_FIELDS})
        if message.get("activity"):
            activity = ActivityType(message["activity"])
        else:
            activity = subscription.activity if subscription else DEFAULT_ACTIVITY

        if subscription is None:
            return coordinator.subscribe(viewport, activity, send_update)
        if activity != subscription.activity:
            coordinator.update_activity(subscription, activity)
        coordinator.update_viewport(subscription, viewport)
        return subscription

    if subscription is None:
        raise ValueError("Send a viewport before other messages")

    if msg_type == "activity":
        coordinator.update_activity(subscription, ActivityType(message.get("activity")))
    elif msg_type == "submitted":
        coordinator.notify_submitted(subscription)
    else:
        raise ValueError(f"Unknown message type: {msg_type}")
    return subscription


@router.websocket("/ws")
async def heatmap_stream(websocket: WebSocket) -> None:
    """Stream heatmap updates for a viewport as it changes."""
    coordinator: FreshnessCoordinator = websocket.app.state.coordinator
    await websocket.accept()
    subscription: Subscription | None = None

    async def send_update(update: HeatmapUpdate) -> None:
        await websocket.send_json(update.model_dump(mode="json"))

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
                if not isinstance(message, dict):
                    raise ValueError("Message must be a JSON object")
                subscription = _handle_stream_message(
                    coordinator, subscription, message, send_update
                )
            except (InvalidQuery, ValueError) as e:
                await websocket.send_json({"error": str(e)})
    except WebSocketDisconnect:
        logger.debug("Heatmap stream client disconnected")
    finally:
        if subscription is not None:
            await coordinator.unsubscribe(subscription)
