"""Join handling: snapshots, broadcasts and the duplicate client id guard."""

import asyncio

from relay.session.models import NO_CLIENT_ID, ClientIdentity, ConnectionState
from relay.tests.helpers import LOBBY


class TestJoin:
    async def test_first_joiner_receives_empty_snapshot(self, session_manager, connect):
        a = connect("A")

        await session_manager.join(a, LOBBY, player_id=1, client_id=100)

        assert a.events_named("setClients") == [[{}]]
        assert session_manager.lobby_members(LOBBY) == ["A"]
        assert session_manager.get_identity("A") == ClientIdentity(player_id=1, client_id=100)
        assert session_manager.get_session("A").state == ConnectionState.IN_LOBBY

    async def test_two_player_scenario(self, session_manager, connect):
        a = connect("A")
        b = connect("B")

        await session_manager.join(a, LOBBY, player_id=1, client_id=100)
        await session_manager.join(b, LOBBY, player_id=2, client_id=200)

        assert a.events_named("setClients") == [[{}]]
        assert b.events_named("setClients") == [[{"A": {"playerId": 1, "clientId": 100}}]]
        assert a.events_named("join") == [["B", {"playerId": 2, "clientId": 200}]]
        assert b.events_named("join") == []

    async def test_join_broadcasts_to_every_existing_member(self, session_manager, connect):
        members = [connect(f"P{i}") for i in range(4)]
        for i, conn in enumerate(members[:3]):
            await session_manager.join(conn, LOBBY, player_id=i, client_id=1000 + i)

        await session_manager.join(members[3], LOBBY, player_id=3, client_id=1003)

        for conn in members[:3]:
            assert ["P3", {"playerId": 3, "clientId": 1003}] in conn.events_named("join")
        snapshot = members[3].events_named("setClients")[0][0]
        assert set(snapshot) == {"P0", "P1", "P2"}

    async def test_joiner_snapshot_is_scoped_to_its_lobby(self, session_manager, connect):
        a = connect("A")
        b = connect("B")
        await session_manager.join(a, "GHIJKL", player_id=1, client_id=100)

        await session_manager.join(b, LOBBY, player_id=2, client_id=200)

        assert b.events_named("setClients") == [[{}]]
        assert a.events_named("join") == []

    async def test_duplicate_client_id_is_spoofing(self, session_manager, connect):
        a = connect("A")
        b = connect("B")
        c = connect("C")
        await session_manager.join(a, LOBBY, player_id=1, client_id=100)
        await session_manager.join(b, LOBBY, player_id=2, client_id=200)
        a_frames = list(a.sent_frames)
        b_frames = list(b.sent_frames)

        await session_manager.join(c, LOBBY, player_id=3, client_id=100)

        assert c.closed
        assert c.close_code == 4003
        assert c.close_reason == "spoof_attempt"
        assert c.sent_frames == []
        assert session_manager.lobby_members(LOBBY) == ["A", "B"]
        assert session_manager.get_identity("C") is None
        assert session_manager.get_identity("A") == ClientIdentity(player_id=1, client_id=100)
        assert a.sent_frames == a_frames
        assert b.sent_frames == b_frames

    async def test_spoof_attempt_is_logged_with_raw_inputs(self, session_manager, connect, caplog):
        a = connect("A")
        c = connect("C")
        await session_manager.join(a, LOBBY, player_id=1, client_id=100)

        await session_manager.join(c, LOBBY, player_id=9, client_id=100)

        assert "forcing disconnect" in caplog.text
        assert "spoof_attempt" in caplog.text
        assert "'connection_id': 'C'" in caplog.text
        assert "'trigger_event': 'join'" in caplog.text
        assert "'held_by': 'A'" in caplog.text

    async def test_same_client_id_in_other_lobby_is_allowed(self, session_manager, connect):
        a = connect("A")
        b = connect("B")
        await session_manager.join(a, LOBBY, player_id=1, client_id=100)

        await session_manager.join(b, "GHIJKL", player_id=1, client_id=100)

        assert not b.closed
        assert session_manager.lobby_members("GHIJKL") == ["B"]

    async def test_sentinel_client_id_is_normalized_to_none(self, session_manager, connect):
        a = connect("A")
        b = connect("B")

        await session_manager.join(a, LOBBY, player_id=1, client_id=NO_CLIENT_ID)
        await session_manager.join(b, LOBBY, player_id=2, client_id=NO_CLIENT_ID)

        assert not b.closed
        assert session_manager.get_identity("A").client_id is None
        assert session_manager.get_identity("B").client_id is None
        assert b.events_named("setClients") == [[{"A": {"playerId": 1, "clientId": None}}]]
        assert a.events_named("join") == [["B", {"playerId": 2, "clientId": None}]]

    async def test_joining_another_lobby_leaves_the_first(self, session_manager, connect):
        a = connect("A")
        await session_manager.join(a, LOBBY, player_id=1, client_id=100)

        await session_manager.join(a, "GHIJKL", player_id=1, client_id=100)

        assert session_manager.lobby_members(LOBBY) == []
        assert session_manager.lobby_members("GHIJKL") == ["A"]
        assert session_manager.get_session("A").lobby_code == "GHIJKL"

    async def test_rejoining_same_lobby_is_not_spoofing_itself(self, session_manager, connect):
        a = connect("A")
        b = connect("B")
        await session_manager.join(a, LOBBY, player_id=1, client_id=100)
        await session_manager.join(b, LOBBY, player_id=2, client_id=200)

        await session_manager.join(a, LOBBY, player_id=1, client_id=100)

        assert not a.closed
        assert session_manager.lobby_members(LOBBY) == ["B", "A"]
        assert a.events_named("setClients")[-1] == [{"B": {"playerId": 2, "clientId": 200}}]
        assert b.events_named("join")[-1] == ["A", {"playerId": 1, "clientId": 100}]

    async def test_concurrent_joins_with_same_client_id_admit_exactly_one(self, session_manager, connect):
        first = connect("first")
        second = connect("second")

        await asyncio.gather(
            session_manager.join(first, LOBBY, player_id=1, client_id=100),
            session_manager.join(second, LOBBY, player_id=2, client_id=100),
        )

        assert [first.closed, second.closed].count(True) == 1
        assert len(session_manager.lobby_members(LOBBY)) == 1

    async def test_join_after_forced_disconnect_is_ignored(self, session_manager, connect):
        a = connect("A")
        c = connect("C")
        await session_manager.join(a, LOBBY, player_id=1, client_id=100)
        await session_manager.join(c, LOBBY, player_id=2, client_id=100)

        await session_manager.join(c, LOBBY, player_id=2, client_id=300)

        assert session_manager.lobby_members(LOBBY) == ["A"]
        assert not session_manager.is_open("C")
