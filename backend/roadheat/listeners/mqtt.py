"""MQTT listener for new-report announcements."""

import asyncio
import logging

import aiomqtt

from roadheat.services.notifications import NotificationHub

logger = logging.getLogger(__name__)


class MqttReportListener:
    """Relay report-insert messages from an MQTT broker to the notification hub.

    Message payloads are ignored: every message on the topic is one
    "something changed" signal.
    """

    def __init__(
        self,
        hub: NotificationHub,
        host: str,
        port: int = 1883,
        topic: str = "roadheat/reports/inserted",
        username: str | None = None,
        password: str | None = None,
        reconnect_seconds: float = 10.0,
    ):
        self.hub = hub
        self.host = host.strip()
        self.port = port
        self.topic = topic
        self.username = username
        self.password = password
        self.reconnect_seconds = reconnect_seconds
        self.last_error: str | None = None
        self._running = False
        self._task: asyncio.Task | None = None

    async def start(self) -> None:
        """Start the MQTT subscription."""
        if self._running:
            return

        self._running = True
        self._task = asyncio.create_task(self._subscribe_loop())
        logger.info(f"Started MQTT report listener: {self.host}:{self.port} {self.topic}")

    async def stop(self) -> None:
        """Stop the MQTT subscription."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Stopped MQTT report listener")

    @property
    def running(self) -> bool:
        return self._running

    async def _subscribe_loop(self) -> None:
        """Main subscription loop with reconnection."""
        while self._running:
            try:
                async with aiomqtt.Client(
                    hostname=self.host,
                    port=self.port,
                    username=self.username,
                    password=self.password,
                ) as client:
                    await client.subscribe(self.topic)
                    logger.info(f"Subscribed to {self.topic} on {self.host}")
                    self.last_error = None

                    async for message in client.messages:
                        if not self._running:
                            break
                        self._handle_message(message)

            except aiomqtt.MqttError as e:
                self.last_error = str(e)
                logger.error(f"MQTT error on {self.host}: {e}")
            except asyncio.CancelledError:
                break
            except Exception as e:
                self.last_error = str(e)
                logger.error(f"Unexpected error in MQTT loop for {self.host}: {e}")

            if self._running:
                logger.info(f"Reconnecting to {self.host} in {self.reconnect_seconds} seconds...")
                await asyncio.sleep(self.reconnect_seconds)

    def _handle_message(self, message: aiomqtt.Message) -> None:
        """Turn one broker message into one hub signal."""
        logger.debug(f"Report insert announced on {message.topic}")
        self.hub.publish()
