"""Freshness coordinator: decides when heatmap cells are re-fetched.

Each viewport subscription is a small state machine driven by three event
sources: a repeating poll timer, a debounce timer for new-report signals,
and explicit triggers (viewport change, local submission). Timers are
``loop.call_later`` handles owned by the subscription, so arming and
cancelling them never blocks. Fetches run as tasks; every fetch carries a
sequence number and a result older than the newest accepted one is
discarded on arrival.
"""

import asyncio
import enum
import inspect
import itertools
import logging
from collections.abc import Awaitable, Callable

from roadheat.conditions import ActivityType
from roadheat.exceptions import ReportSourceUnavailable
from roadheat.schemas.heatmap import HeatmapCell, HeatmapQuery, HeatmapUpdate
from roadheat.services.activity import reweight_cells
from roadheat.services.notifications import NotificationHub

logger = logging.getLogger(__name__)

# Heatmap polling interval (seconds)
POLL_INTERVAL_SECONDS = 90.0

# Quiet period after the last new-report signal before refreshing (seconds)
REALTIME_DEBOUNCE_SECONDS = 5.0

FetchCells = Callable[[HeatmapQuery], Awaitable[list[HeatmapCell]]]
UpdateCallback = Callable[[HeatmapUpdate], Awaitable[None] | None]


class SubscriptionState(str, enum.Enum):
    """Refresh state of a subscription."""

    IDLE = "idle"
    POLLING = "polling"
    DEBOUNCING = "debouncing"
    CLOSED = "closed"


class Subscription:
    """Refresh state for one viewport subscriber.

    Owned exclusively by the coordinator; all methods must be called from
    the event loop thread.
    """

    def __init__(
        self,
        subscription_id: int,
        fetch_cells: FetchCells,
        callback: UpdateCallback,
        viewport: HeatmapQuery,
        activity: ActivityType,
        poll_interval: float = POLL_INTERVAL_SECONDS,
        debounce: float = REALTIME_DEBOUNCE_SECONDS,
    ):
        self.id = subscription_id
        self.viewport = viewport
        self.activity = ActivityType(activity)
        self.state = SubscriptionState.IDLE

        self._fetch_cells = fetch_cells
        self._callback = callback
        self._poll_interval = poll_interval
        self._debounce = debounce
        self._loop = asyncio.get_running_loop()

        self._sequence = 0  # last issued
        self._accepted_sequence = 0  # newest result accepted
        self._raw_cells: list[HeatmapCell] | None = None  # last good, unweighted
        self._last_error: str | None = None  # set while the newest accepted fetch failed

        self._poll_handle: asyncio.TimerHandle | None = None
        self._debounce_handle: asyncio.TimerHandle | None = None
        self._fetch_tasks: set[asyncio.Task] = set()
        self._queue: asyncio.Queue[HeatmapUpdate] = asyncio.Queue()
        self._delivery_task: asyncio.Task | None = None
        self._detach: Callable[[], None] | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self, hub: NotificationHub | None = None) -> None:
        """Attach to the notification hub and issue the first fetch."""
        self._delivery_task = asyncio.create_task(self._delivery_loop())
        if hub is not None:
            self._detach = hub.subscribe(self.on_report_inserted)
        self._refresh("subscribe")

    async def close(self) -> None:
        """Cancel timers and in-flight work. No callback fires afterwards."""
        if self.state is SubscriptionState.CLOSED:
            return
        self.state = SubscriptionState.CLOSED

        self._cancel_poll()
        if self._debounce_handle is not None:
            self._debounce_handle.cancel()
            self._debounce_handle = None
        if self._detach is not None:
            self._detach()
            self._detach = None

        tasks = list(self._fetch_tasks)
        if self._delivery_task is not None:
            tasks.append(self._delivery_task)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._fetch_tasks.clear()
        logger.debug(f"Closed heatmap subscription {self.id}")

    @property
    def closed(self) -> bool:
        return self.state is SubscriptionState.CLOSED

    @property
    def sequence(self) -> int:
        """Sequence number of the most recently issued fetch."""
        return self._sequence

    @property
    def accepted_sequence(self) -> int:
        """Sequence number of the newest accepted result."""
        return self._accepted_sequence

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------

    def update_viewport(self, viewport: HeatmapQuery) -> None:
        """Viewport settled: fetch now and restart the polling clock."""
        if self.closed:
            return
        self.viewport = viewport
        self._refresh("viewport")

    def notify_submitted(self) -> None:
        """A local submission succeeded: same effect as a viewport change."""
        if self.closed:
            return
        self._refresh("submitted")

    def update_activity(self, activity: ActivityType) -> None:
        """Reweight the last accepted cells for a new activity, without fetching."""
        if self.closed:
            return
        self.activity = ActivityType(activity)
        if self._raw_cells is not None:
            self._queue.put_nowait(
                HeatmapUpdate(
                    sequence=self._accepted_sequence,
                    activity=self.activity,
                    cells=reweight_cells(self._raw_cells, self.activity),
                    error=self._last_error,
                    stale=self._last_error is not None,
                )
            )

    def on_report_inserted(self) -> None:
        """New-report signal: (re)arm the debounce timer."""
        if self.closed:
            return
        if self._debounce_handle is not None:
            self._debounce_handle.cancel()
        self._debounce_handle = self._loop.call_later(self._debounce, self._on_debounce)
        self.state = SubscriptionState.DEBOUNCING

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------

    def _cancel_poll(self) -> None:
        if self._poll_handle is not None:
            self._poll_handle.cancel()
            self._poll_handle = None

    def _arm_poll(self) -> None:
        self._cancel_poll()
        self._poll_handle = self._loop.call_later(self._poll_interval, self._on_poll)

    def _on_poll(self) -> None:
        self._poll_handle = None
        if self.closed:
            return
        self._issue("poll")
        self._arm_poll()

    def _on_debounce(self) -> None:
        self._debounce_handle = None
        if self.closed:
            return
        self.state = SubscriptionState.POLLING
        self._refresh("notification")

    def _refresh(self, reason: str) -> None:
        """Immediate fetch followed by a fresh poll interval."""
        self._cancel_poll()
        self._issue(reason)
        self._arm_poll()
        if self.state is SubscriptionState.IDLE:
            self.state = SubscriptionState.POLLING

    # ------------------------------------------------------------------
    # Fetch and delivery
    # ------------------------------------------------------------------

    def _issue(self, reason: str) -> None:
        self._sequence += 1
        sequence = self._sequence
        logger.debug(f"Subscription {self.id}: fetch #{sequence} ({reason})")
        task = asyncio.create_task(self._fetch(sequence, self.viewport))
        self._fetch_tasks.add(task)
        task.add_done_callback(self._on_fetch_done)

    def _on_fetch_done(self, task: asyncio.Task) -> None:
        self._fetch_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                f"Subscription {self.id}: heatmap fetch failed unexpectedly",
                exc_info=exc,
            )

    async def _fetch(self, sequence: int, viewport: HeatmapQuery) -> None:
        try:
            cells = await self._fetch_cells(viewport)
        except ReportSourceUnavailable as e:
            self._accept_failure(sequence, str(e))
            return
        self._accept(sequence, cells)

    def _is_stale(self, sequence: int) -> bool:
        if sequence < self._accepted_sequence:
            logger.debug(
                f"Subscription {self.id}: discarding stale result #{sequence} "
                f"(already accepted #{self._accepted_sequence})"
            )
            return True
        return False

    def _accept(self, sequence: int, cells: list[HeatmapCell]) -> None:
        if self.closed or self._is_stale(sequence):
            return
        self._accepted_sequence = sequence
        self._raw_cells = cells
        self._last_error = None
        self._queue.put_nowait(
            HeatmapUpdate(
                sequence=sequence,
                activity=self.activity,
                cells=reweight_cells(cells, self.activity),
            )
        )

    def _accept_failure(self, sequence: int, error: str) -> None:
        """Report a failed fetch, keeping the last good cells on display."""
        if self.closed or self._is_stale(sequence):
            return
        logger.error(f"Subscription {self.id}: fetch #{sequence} failed: {error}")
        self._accepted_sequence = sequence
        self._last_error = error
        cells = reweight_cells(self._raw_cells, self.activity) if self._raw_cells else []
        self._queue.put_nowait(
            HeatmapUpdate(
                sequence=sequence,
                activity=self.activity,
                cells=cells,
                error=error,
                stale=True,
            )
        )

    async def _delivery_loop(self) -> None:
        """Deliver updates to the consumer one at a time, in acceptance order."""
        while True:
            update = await self._queue.get()
            if self.closed:
                return
            try:
                result = self._callback(update)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(f"Subscription {self.id}: update callback failed")


class FreshnessCoordinator:
    """Owns all viewport subscriptions and their refresh timers."""

    def __init__(
        self,
        fetch_cells: FetchCells,
        hub: NotificationHub | None = None,
        poll_interval: float = POLL_INTERVAL_SECONDS,
        debounce: float = REALTIME_DEBOUNCE_SECONDS,
    ):
        self._fetch_cells = fetch_cells
        self._hub = hub
        self._poll_interval = poll_interval
        self._debounce = debounce
        self._subscriptions: dict[int, Subscription] = {}
        self._ids = itertools.count(1)

    def subscribe(
        self,
        viewport: HeatmapQuery,
        activity: ActivityType,
        callback: UpdateCallback,
    ) -> Subscription:
        """Start refreshing a viewport. The first fetch is issued immediately."""
        subscription = Subscription(
            next(self._ids),
            self._fetch_cells,
            callback,
            viewport,
            activity,
            poll_interval=self._poll_interval,
            debounce=self._debounce,
        )
        self._subscriptions[subscription.id] = subscription
        subscription.start(self._hub)
        logger.info(
            f"Heatmap subscription {subscription.id} started "
            f"({len(self._subscriptions)} active)"
        )
        return subscription

    def _get(self, subscription: Subscription) -> Subscription:
        if self._subscriptions.get(subscription.id) is not subscription:
            raise KeyError(f"Unknown heatmap subscription {subscription.id}")
        return subscription

    def update_viewport(self, subscription: Subscription, viewport: HeatmapQuery) -> None:
        self._get(subscription).update_viewport(viewport)

    def update_activity(self, subscription: Subscription, activity: ActivityType) -> None:
        self._get(subscription).update_activity(activity)

    def notify_submitted(self, subscription: Subscription) -> None:
        self._get(subscription).notify_submitted()

    async def unsubscribe(self, subscription: Subscription) -> None:
        """Stop a subscription. Unknown or already-closed handles are ignored."""
        removed = self._subscriptions.pop(subscription.id, None)
        if removed is None:
            return
        await removed.close()
        logger.info(
            f"Heatmap subscription {subscription.id} stopped "
            f"({len(self._subscriptions)} active)"
        )

    async def close(self) -> None:
        """Stop every subscription."""
        subscriptions = list(self._subscriptions.values())
        self._subscriptions.clear()
        await asyncio.gather(
            *[subscription.close() for subscription in subscriptions],
            return_exceptions=True,
        )
        if subscriptions:
            logger.info(f"Stopped {len(subscriptions)} heatmap subscriptions")

    @property
    def subscription_count(self) -> int:
        return len(self._subscriptions)
