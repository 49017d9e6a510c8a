"""Signal forwarding between connections."""

from relay.tests.helpers import LOBBY


class TestSignal:
    async def test_signal_reaches_target_with_sender_id(self, session_manager, connect):
        a = connect("A")
        b = connect("B")
        await session_manager.join(a, LOBBY, player_id=1, client_id=100)
        await session_manager.join(b, LOBBY, player_id=2, client_id=200)
        a_frames = list(a.sent_frames)

        await session_manager.signal(a, to="B", data="x")

        assert b.events_named("signal") == [[{"data": "x", "from": "A"}]]
        assert a.sent_frames == a_frames

    async def test_structured_payload_is_forwarded_untouched(self, session_manager, connect):
        a = connect("A")
        b = connect("B")
        payload = {"type": "offer", "sdp": "v=0\r\no=- 46117 2 IN IP4 127.0.0.1\r\n"}

        await session_manager.signal(a, to="B", data=payload)

        assert b.events_named("signal") == [[{"data": payload, "from": "A"}]]

    async def test_signal_to_unknown_target_is_dropped(self, session_manager, connect):
        a = connect("A")

        await session_manager.signal(a, to="nobody", data="x")

        assert not a.closed
        assert a.sent_frames == []

    async def test_signal_to_disconnected_target_is_dropped(self, session_manager, connect):
        a = connect("A")
        b = connect("B")
        await session_manager.disconnect(b)

        await session_manager.signal(a, to="B", data="x")

        assert b.sent_frames == []
        assert not a.closed

    async def test_signal_from_closed_connection_is_dropped(self, session_manager, connect):
        a = connect("A")
        b = connect("B")
        await session_manager.join(a, LOBBY, player_id=1, client_id=100)
        await session_manager.join(b, LOBBY, player_id=2, client_id=100)

        await session_manager.signal(b, to="A", data="x")

        assert a.events_named("signal") == []

    async def test_send_failure_does_not_reach_sender(self, session_manager, connect):
        a = connect("A")
        b = connect("B")
        await b.close()

        await session_manager.signal(a, to="B", data="x")

        assert not a.closed
