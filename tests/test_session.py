"""Tests for the room protocol dispatcher, driven without a network."""

import asyncio
import json
import random

from connectfour.rooms import RoomRegistry
from connectfour.session import SessionHandler


class FakeConnection:
    def __init__(self):
        self.sent = []

    async def send_text(self, data):
        self.sent.append(json.loads(data))

    def pop(self):
        messages, self.sent = self.sent, []
        return messages


class BrokenConnection:
    async def send_text(self, data):
        raise RuntimeError("socket closed")


def make_handler():
    return SessionHandler(RoomRegistry(rng=random.Random(11)))


def send(handler, client, message):
    raw = message if isinstance(message, str) else json.dumps(message)
    asyncio.run(handler.handle(client, raw))


def open_room(handler):
    host_conn, guest_conn = FakeConnection(), FakeConnection()
    host, guest = handler.connect(host_conn), handler.connect(guest_conn)
    send(handler, host, {"type": "create_room"})
    code = host_conn.pop()[0]["roomCode"]
    send(handler, guest, {"type": "join_room", "roomCode": code})
    host_conn.pop()
    guest_conn.pop()
    return code, (host, host_conn), (guest, guest_conn)


def test_create_room_replies_then_broadcasts():
    handler = make_handler()
    conn = FakeConnection()
    client = handler.connect(conn)
    send(handler, client, {"type": "create_room"})

    created, state = conn.pop()
    assert created["type"] == "room_created"
    assert created["you"] == {"playerId": "P1"}
    assert state["type"] == "state"
    assert state["roomCode"] == created["roomCode"]
    assert state["state"]["status"] == "waiting"
    assert state["state"]["players"]["P1"] == {"connected": True}


def test_join_flow_starts_game_and_third_player_is_rejected():
    handler = make_handler()
    host_conn, guest_conn, third_conn = FakeConnection(), FakeConnection(), FakeConnection()
    host = handler.connect(host_conn)
    send(handler, host, {"type": "create_room"})
    code = host_conn.pop()[0]["roomCode"]

    guest = handler.connect(guest_conn)
    send(handler, guest, {"type": "join_room", "roomCode": code.lower()})
    joined, state = guest_conn.pop()
    assert joined["type"] == "room_joined"
    assert joined["you"] == {"playerId": "P2"}
    assert joined["state"]["status"] == "playing"
    assert joined["state"]["nextTurn"] == "P1"
    assert state["state"] == joined["state"]
    assert host_conn.pop()[0]["state"]["status"] == "playing"

    third = handler.connect(third_conn)
    send(handler, third, {"type": "join_room", "roomCode": code})
    [error] = third_conn.pop()
    assert error["code"] == "ROOM_FULL"
    assert host_conn.pop() == [] and guest_conn.pop() == []


def test_join_errors():
    handler = make_handler()
    conn = FakeConnection()
    client = handler.connect(conn)
    send(handler, client, {"type": "join_room", "roomCode": "ZZZZZZ"})
    assert conn.pop()[0]["code"] == "ROOM_NOT_FOUND"

    send(handler, client, {"type": "create_room"})
    code = conn.pop()[0]["roomCode"]
    send(handler, client, {"type": "join_room", "roomCode": code})
    [error] = conn.pop()
    assert error["code"] == "ALREADY_IN_ROOM"
    assert error["roomCode"] == code


def test_moves_are_broadcast_to_both_players():
    handler = make_handler()
    code, (host, host_conn), (guest, guest_conn) = open_room(handler)

    send(handler, host, {"type": "make_move", "roomCode": code, "column": 3})
    [host_state] = host_conn.pop()
    [guest_state] = guest_conn.pop()
    assert host_state == guest_state
    assert host_state["state"]["board"][5][3] == 1
    assert host_state["state"]["nextTurn"] == "P2"
    assert host_state["state"]["lastMove"] == {"column": 3, "row": 5, "player": "P1"}

    # Older clients send ``col``.
    send(handler, guest, {"type": "make_move", "roomCode": code, "col": 3})
    assert guest_conn.pop()[0]["state"]["board"][4][3] == 2


def test_out_of_turn_move_is_rejected_without_broadcast():
    handler = make_handler()
    code, (host, host_conn), (guest, guest_conn) = open_room(handler)
    room = handler.registry.get(code)

    send(handler, guest, {"type": "make_move", "roomCode": code, "column": 0})
    [error] = guest_conn.pop()
    assert error["type"] == "error"
    assert error["code"] == "INVALID_MOVE"
    assert error["message"] == "Not your turn"
    assert host_conn.pop() == []
    assert room.game.board.move_count() == 0


def test_move_from_outsider_rejected():
    handler = make_handler()
    code, _, _ = open_room(handler)
    conn = FakeConnection()
    outsider = handler.connect(conn)
    send(handler, outsider, {"type": "make_move", "roomCode": code, "column": 0})
    assert conn.pop()[0]["code"] == "NOT_IN_ROOM"


def test_winning_move_reports_winner():
    handler = make_handler()
    code, (host, host_conn), (guest, guest_conn) = open_room(handler)
    for col in range(3):
        send(handler, host, {"type": "make_move", "roomCode": code, "column": col})
        send(handler, guest, {"type": "make_move", "roomCode": code, "column": col})
    send(handler, host, {"type": "make_move", "roomCode": code, "column": 3})
    final = guest_conn.pop()[-1]["state"]
    assert final["status"] == "won"
    assert final["winner"] == "P1"
    assert final["winningCells"] == [[5, 0], [5, 1], [5, 2], [5, 3]]


def test_malformed_messages_get_invalid_message():
    handler = make_handler()
    conn = FakeConnection()
    client = handler.connect(conn)
    for raw in [
        "not json",
        "[]",
        json.dumps({"type": "dance"}),
        json.dumps({"type": "join_room"}),
        json.dumps({"type": "join_room", "roomCode": "AB"}),
        json.dumps({"type": "join_room", "roomCode": "ABC10I"}),
        json.dumps({"type": "make_move", "roomCode": "ABCDEF", "column": 7}),
        json.dumps({"type": "make_move", "roomCode": "ABCDEF", "column": "3"}),
    ]:
        send(handler, client, raw)
        [error] = conn.pop()
        assert error == {
            "type": "error",
            "code": "INVALID_MESSAGE",
            "message": "Invalid message",
        }


def test_leave_frees_seat_and_broadcasts():
    handler = make_handler()
    code, (host, host_conn), (guest, guest_conn) = open_room(handler)

    send(handler, guest, {"type": "leave", "roomCode": code})
    assert guest_conn.pop() == []
    [state] = host_conn.pop()
    assert state["state"]["players"]["P2"] == {"connected": False}
    assert state["state"]["status"] == "playing"
    assert guest.room_code is None

    # Leaving again is a no-op.
    send(handler, guest, {"type": "leave", "roomCode": code})
    assert host_conn.pop() == []


def test_disconnect_runs_cleanup_once():
    handler = make_handler()
    code, (host, host_conn), (guest, guest_conn) = open_room(handler)

    asyncio.run(handler.disconnect(host))
    asyncio.run(handler.disconnect(host))
    states = guest_conn.pop()
    assert len(states) == 1
    assert states[0]["state"]["players"]["P1"] == {"connected": False}
    assert handler.registry.get(code).clients == [guest]


def test_failed_delivery_does_not_stop_broadcast():
    handler = make_handler()
    code, (host, host_conn), (guest, guest_conn) = open_room(handler)
    guest.connection = BrokenConnection()

    send(handler, host, {"type": "make_move", "roomCode": code, "column": 6})
    assert host_conn.pop()[0]["state"]["board"][5][6] == 1
    assert handler.registry.get(code).game.next_turn == "P2"


def test_room_allocation_failure_is_reported():
    class Stuck(random.Random):
        def choice(self, seq):
            return seq[0]

    handler = SessionHandler(RoomRegistry(rng=Stuck()))
    first_conn, second_conn = FakeConnection(), FakeConnection()
    send(handler, handler.connect(first_conn), {"type": "create_room"})
    assert first_conn.pop()[0]["type"] == "room_created"

    second = handler.connect(second_conn)
    send(handler, second, {"type": "create_room"})
    [error] = second_conn.pop()
    assert error["type"] == "error"
    assert error["code"] == "ROOM_FULL"
    assert second.room_code is None
