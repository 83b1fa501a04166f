"""Tests for the realtime client connection manager."""

import asyncio
import json

import pytest
import pytest_asyncio

from hr_notify.config.models import RealtimeConfig
from hr_notify.realtime import client as client_module
from hr_notify.realtime.client import (
    ALERT_TEXT_FINAL,
    ALERT_TEXT_RECONNECTING,
    ALERT_TITLE_CONNECTION,
    ALERT_TITLE_NOTIFICATION,
    ConnectionState,
    RealtimeClient,
    aiohttp_connector,
)
from hr_notify.realtime.exceptions import RealtimeConnectionError

URL = "ws://hr.example.com/ws"


def leave_frame(text: str) -> str:
    return json.dumps({"type": "LEAVE_REQUEST_UPDATE", "data": {"message": text}})


class FakeSocket:
    """Socket fed by the test: push frames, None to close, or an exception."""

    def __init__(self):
        self.inbox: "asyncio.Queue" = asyncio.Queue()
        self.closed = False

    async def receive(self):
        item = await self.inbox.get()
        if isinstance(item, Exception):
            raise item
        return item

    async def close(self):
        self.closed = True


class FakeConnector:
    """Connect factory returning scripted sockets or failures."""

    def __init__(self, outcomes=None, fail_by_default=True):
        self.outcomes = list(outcomes or [])
        self.fail_by_default = fail_by_default
        self.calls = 0

    async def __call__(self, url):
        self.calls += 1
        outcome = self.outcomes.pop(0) if self.outcomes else None
        if outcome is None:
            if self.fail_by_default:
                raise RealtimeConnectionError("connection refused")
            outcome = FakeSocket()
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


async def settle():
    """Let pending client tasks run."""
    for _ in range(10):
        await asyncio.sleep(0)


@pytest.fixture
def alerts():
    return []


@pytest.fixture
def sleeper():
    return RecordingSleep()


def make_client(connector, alerts, sleeper, **config):
    return RealtimeClient(
        URL,
        connect=connector,
        alert_sink=alerts.append,
        config=RealtimeConfig(**config),
        sleep=sleeper,
    )


class TestReconnection:
    """Test the bounded fixed-delay reconnection policy."""

    @pytest.mark.asyncio
    async def test_gives_up_after_five_attempts(self, alerts, sleeper):
        connector = FakeConnector()
        client = make_client(connector, alerts, sleeper)

        await client.start()
        await client.wait_for_state(ConnectionState.CLOSED_FINAL, timeout=2)

        assert connector.calls == 6
        assert sleeper.delays == [3.0] * 5
        assert client.reconnect_attempts == 5
        assert [a.description for a in alerts] == [ALERT_TEXT_RECONNECTING, ALERT_TEXT_FINAL]
        assert all(a.title == ALERT_TITLE_CONNECTION and a.variant == "destructive" for a in alerts)

        await client.close()

    @pytest.mark.asyncio
    async def test_no_reconnect_after_final(self, alerts, sleeper):
        connector = FakeConnector()
        client = make_client(connector, alerts, sleeper)

        await client.start()
        await client.wait_for_state(ConnectionState.CLOSED_FINAL, timeout=2)
        await settle()

        assert connector.calls == 6
        assert not client.reconnect_pending
        assert len(alerts) == 2

    @pytest.mark.asyncio
    async def test_configurable_limits(self, alerts, sleeper):
        connector = FakeConnector()
        client = make_client(connector, alerts, sleeper, max_reconnect_attempts=2, reconnect_delay_ms=500)

        await client.start()
        await client.wait_for_state(ConnectionState.CLOSED_FINAL, timeout=2)

        assert connector.calls == 3
        assert sleeper.delays == [0.5, 0.5]

    @pytest.mark.asyncio
    async def test_zero_attempts_fails_immediately(self, alerts, sleeper):
        client = make_client(FakeConnector(), alerts, sleeper, max_reconnect_attempts=0)

        await client.start()

        assert client.state == ConnectionState.CLOSED_FINAL
        assert sleeper.delays == []
        assert len(alerts) == 2

    @pytest.mark.asyncio
    async def test_open_resets_counter(self, alerts, sleeper):
        socket = FakeSocket()
        connector = FakeConnector(outcomes=[
            RealtimeConnectionError("down"),
            RealtimeConnectionError("down"),
            socket,
        ])
        client = make_client(connector, alerts, sleeper)

        await client.start()
        await client.wait_for_state(ConnectionState.OPEN, timeout=2)

        assert client.reconnect_attempts == 0
        assert sleeper.delays == [3.0, 3.0]
        assert len(alerts) == 1

        await client.close()

    @pytest.mark.asyncio
    async def test_open_grants_fresh_attempt_sequence(self, alerts, sleeper):
        socket = FakeSocket()
        connector = FakeConnector(outcomes=[
            RealtimeConnectionError("down"),
            RealtimeConnectionError("down"),
            socket,
        ])
        client = make_client(connector, alerts, sleeper)

        await client.start()
        await client.wait_for_state(ConnectionState.OPEN, timeout=2)
        calls_at_open = connector.calls
        delays_at_open = len(sleeper.delays)

        socket.inbox.put_nowait(RealtimeConnectionError("reset by peer"))
        await client.wait_for_state(ConnectionState.CLOSED_FINAL, timeout=2)

        assert connector.calls - calls_at_open == 5
        assert sleeper.delays[delays_at_open:] == [3.0] * 5
        assert [a.description for a in alerts] == [
            ALERT_TEXT_RECONNECTING,
            ALERT_TEXT_RECONNECTING,
            ALERT_TEXT_FINAL,
        ]

        await client.close()

    @pytest.mark.asyncio
    async def test_drop_after_open_alerts_again(self, alerts, sleeper):
        first = FakeSocket()
        second = FakeSocket()
        connector = FakeConnector(outcomes=[first, second])
        client = make_client(connector, alerts, sleeper)

        await client.start()
        assert client.state == ConnectionState.OPEN

        first.inbox.put_nowait(RealtimeConnectionError("reset by peer"))
        await settle()

        assert first.closed
        assert connector.calls == 2
        assert client.state == ConnectionState.OPEN
        assert [a.description for a in alerts] == [ALERT_TEXT_RECONNECTING]

        await client.close()

    @pytest.mark.asyncio
    async def test_clean_close_by_server_reconnects_without_alert(self, alerts, sleeper):
        first = FakeSocket()
        connector = FakeConnector(outcomes=[first, FakeSocket()])
        client = make_client(connector, alerts, sleeper)

        await client.start()
        first.inbox.put_nowait(None)
        await settle()

        assert connector.calls == 2
        assert sleeper.delays == [3.0]
        assert alerts == []

        await client.close()

    @pytest.mark.asyncio
    async def test_close_cancels_pending_reconnect(self, alerts):
        gate = asyncio.Event()

        async def blocking_sleep(delay):
            await gate.wait()

        connector = FakeConnector()
        client = RealtimeClient(URL, connect=connector, alert_sink=alerts.append, sleep=blocking_sleep)

        await client.start()
        assert client.state == ConnectionState.CLOSED_RETRYING
        assert client.reconnect_pending

        await client.close()
        gate.set()
        await settle()

        assert client.state == ConnectionState.DISCONNECTED
        assert not client.reconnect_pending
        assert connector.calls == 1

    @pytest.mark.asyncio
    async def test_context_manager_closes_socket(self, alerts, sleeper):
        socket = FakeSocket()
        connector = FakeConnector(outcomes=[socket])

        async with make_client(connector, alerts, sleeper) as client:
            assert client.state == ConnectionState.OPEN

        assert socket.closed
        assert client.state == ConnectionState.DISCONNECTED
        assert connector.calls == 1


class FakeClientSession:
    """Stands in for aiohttp.ClientSession; the handshake never completes."""

    instances = []

    def __init__(self, *args, **kwargs):
        self.closed = False
        FakeClientSession.instances.append(self)

    async def ws_connect(self, url, **kwargs):
        await asyncio.Event().wait()

    async def close(self):
        self.closed = True


class TestAiohttpConnector:
    """Test session cleanup in the default connect factory."""

    @pytest.fixture
    def sessions(self, monkeypatch):
        FakeClientSession.instances = []
        monkeypatch.setattr(client_module.aiohttp, "ClientSession", FakeClientSession)
        return FakeClientSession.instances

    @pytest.mark.asyncio
    async def test_cancelled_handshake_closes_session(self, sessions):
        connect = aiohttp_connector()

        task = asyncio.create_task(connect(URL))
        await settle()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert len(sessions) == 1
        assert sessions[0].closed

    @pytest.mark.asyncio
    async def test_client_close_during_start_releases_session(self, sessions, alerts):
        client = RealtimeClient(URL, alert_sink=alerts.append)

        starting = asyncio.create_task(client.start())
        await settle()
        starting.cancel()
        with pytest.raises(asyncio.CancelledError):
            await starting
        await client.close()

        assert len(sessions) == 1
        assert sessions[0].closed
        assert client.state == ConnectionState.DISCONNECTED


class TestNotifications:
    """Test inbound frames and the notification list."""

    @pytest_asyncio.fixture
    async def connected(self, alerts, sleeper):
        socket = FakeSocket()
        client = make_client(FakeConnector(outcomes=[socket]), alerts, sleeper)
        await client.start()
        yield client, socket
        await client.close()

    @pytest.mark.asyncio
    async def test_frame_becomes_unread_notification(self, connected, alerts):
        client, socket = connected

        socket.inbox.put_nowait(leave_frame("Urlaubsantrag genehmigt"))
        await settle()

        assert client.unread_count == 1
        notification = client.notifications[0]
        assert notification.message == "Urlaubsantrag genehmigt"
        assert notification.read is False
        assert notification.id
        assert alerts[-1].title == ALERT_TITLE_NOTIFICATION
        assert alerts[-1].description == "Urlaubsantrag genehmigt"

    @pytest.mark.asyncio
    async def test_newest_first(self, connected):
        client, socket = connected

        socket.inbox.put_nowait(leave_frame("first"))
        socket.inbox.put_nowait(leave_frame("second"))
        await settle()

        assert [n.message for n in client.notifications] == ["second", "first"]
        assert client.notifications[0].id != client.notifications[1].id

    @pytest.mark.asyncio
    async def test_malformed_frame_discarded(self, connected, alerts):
        client, socket = connected

        socket.inbox.put_nowait("not json")
        socket.inbox.put_nowait('{"type": "LEAVE_REQUEST_UPDATE", "data": {}}')
        await settle()

        assert client.notifications == []
        assert client.state == ConnectionState.OPEN
        assert alerts == []

    @pytest.mark.asyncio
    async def test_other_types_ignored(self, connected):
        client, socket = connected

        socket.inbox.put_nowait(json.dumps({"type": "connection", "status": "connected"}))
        socket.inbox.put_nowait(json.dumps({"type": "SYSTEM_NOTICE", "data": {"message": "Wartung"}}))
        await settle()

        assert client.notifications == []

    @pytest.mark.asyncio
    async def test_mark_all_as_read_idempotent(self, connected):
        client, socket = connected
        changes = []
        client.subscribe(changes.append)

        socket.inbox.put_nowait(leave_frame("a"))
        socket.inbox.put_nowait(leave_frame("b"))
        await settle()

        client.mark_all_as_read()
        after_first = client.notifications
        client.mark_all_as_read()

        assert client.unread_count == 0
        assert client.notifications == after_first
        assert len(changes) == 3

    @pytest.mark.asyncio
    async def test_mark_as_read(self, connected):
        client, socket = connected
        socket.inbox.put_nowait(leave_frame("a"))
        socket.inbox.put_nowait(leave_frame("b"))
        await settle()

        target = client.notifications[1]

        assert client.mark_as_read(target.id) is True
        assert client.unread_count == 1
        assert client.mark_as_read("unknown") is False

    @pytest.mark.asyncio
    async def test_snapshot_is_a_copy(self, connected):
        client, socket = connected
        socket.inbox.put_nowait(leave_frame("a"))
        await settle()

        client.notifications[0].read = True

        assert client.unread_count == 1

    @pytest.mark.asyncio
    async def test_unsubscribe(self, connected):
        client, socket = connected
        changes = []
        unsubscribe = client.subscribe(changes.append)
        unsubscribe()

        socket.inbox.put_nowait(leave_frame("a"))
        await settle()

        assert changes == []

    @pytest.mark.asyncio
    async def test_notification_alerts_can_be_disabled(self, alerts, sleeper):
        socket = FakeSocket()
        client = make_client(FakeConnector(outcomes=[socket]), alerts, sleeper, show_notification_alerts=False)
        await client.start()

        socket.inbox.put_nowait(leave_frame("a"))
        await settle()

        assert client.unread_count == 1
        assert alerts == []
        await client.close()

    @pytest.mark.asyncio
    async def test_notifications_survive_reconnect(self, alerts, sleeper):
        first = FakeSocket()
        connector = FakeConnector(outcomes=[first, FakeSocket()])
        client = make_client(connector, alerts, sleeper)
        await client.start()

        first.inbox.put_nowait(leave_frame("before drop"))
        first.inbox.put_nowait(None)
        await settle()

        assert connector.calls == 2
        assert [n.message for n in client.notifications] == ["before drop"]
        await client.close()
