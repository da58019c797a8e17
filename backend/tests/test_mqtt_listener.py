"""Tests for the MQTT report-insert listener."""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import aiomqtt
import pytest

from roadheat.listeners.mqtt import MqttReportListener
from roadheat.services.notifications import NotificationHub


@pytest.fixture
def hub():
    return MagicMock(spec=NotificationHub)


@pytest.fixture
def listener(hub):
    return MqttReportListener(hub, " broker.local ", topic="roadheat/reports/inserted")


class FakeClient:
    """Stands in for aiomqtt.Client, yielding a fixed list of messages."""

    instances: list["FakeClient"] = []

    def __init__(self, topics=(), block=False, **kwargs):
        self.kwargs = kwargs
        self.subscribe = AsyncMock()
        self._topics = topics
        self._block = block
        FakeClient.instances.append(self)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False

    @property
    def messages(self):
        return self._messages()

    async def _messages(self):
        for topic in self._topics:
            yield SimpleNamespace(topic=topic, payload=b"{}")
        if self._block:
            await asyncio.Event().wait()


def _client_factory(**fake_kwargs):
    def factory(**kwargs):
        return FakeClient(**fake_kwargs, **kwargs)

    return factory


class TestMqttReportListener:
    """Tests for MqttReportListener."""

    def test_host_is_stripped(self, listener):
        assert listener.host == "broker.local"

    def test_each_message_is_one_signal(self, listener, hub):
        listener._handle_message(SimpleNamespace(topic="roadheat/reports/inserted"))
        listener._handle_message(SimpleNamespace(topic="roadheat/reports/inserted"))
        assert hub.publish.call_count == 2

    @pytest.mark.asyncio
    async def test_messages_relayed_to_hub(self, listener, hub):
        FakeClient.instances = []
        listener._running = True

        async def stop_after_disconnect(delay):
            listener._running = False

        with (
            patch.object(aiomqtt, "Client", _client_factory(topics=["a", "b", "c"])),
            patch.object(asyncio, "sleep", new=AsyncMock(side_effect=stop_after_disconnect)),
        ):
            await listener._subscribe_loop()

        client = FakeClient.instances[0]
        assert client.kwargs["hostname"] == "broker.local"
        assert client.kwargs["port"] == 1883
        client.subscribe.assert_awaited_once_with("roadheat/reports/inserted")
        assert hub.publish.call_count == 3
        assert listener.last_error is None

    @pytest.mark.asyncio
    async def test_reconnects_after_broker_error(self, listener, hub):
        listener._running = True
        broken = MagicMock()
        broken.return_value.__aenter__.side_effect = aiomqtt.MqttError("Connection refused")
        sleeps = []

        async def fake_sleep(delay):
            sleeps.append(delay)
            if len(sleeps) == 2:
                listener._running = False

        with (
            patch.object(aiomqtt, "Client", broken),
            patch.object(asyncio, "sleep", new=AsyncMock(side_effect=fake_sleep)),
        ):
            await listener._subscribe_loop()

        assert broken.call_count == 2
        assert sleeps == [10.0, 10.0]
        assert "Connection refused" in listener.last_error
        hub.publish.assert_not_called()

    @pytest.mark.asyncio
    async def test_start_and_stop(self, listener):
        with patch.object(aiomqtt, "Client", _client_factory(block=True)):
            await listener.start()
            await asyncio.sleep(0)
            assert listener.running is True

            await listener.stop()

        assert listener.running is False
        assert listener._task is None

    @pytest.mark.asyncio
    async def test_start_twice_keeps_one_task(self, listener):
        with patch.object(aiomqtt, "Client", _client_factory(block=True)):
            await listener.start()
            task = listener._task
            await listener.start()
            assert listener._task is task
            await listener.stop()
