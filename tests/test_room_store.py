from __future__ import annotations

import random
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from hexsync.codes import CodeGenerator
from hexsync.errors import CodeGenerationExhausted, RoomNotFound, StaleRoomMutation
from hexsync.room_store import RoomStore


def test_create_room_registers_owner(store: RoomStore) -> None:
    code = store.create_room("owner")

    assert code in store
    assert len(store) == 1
    room = store.get_room(code)
    assert room is not None
    assert room.members == frozenset({"owner"})
    assert room.snapshot() == {}


def test_live_codes_are_unique(store: RoomStore) -> None:
    codes = [store.create_room(f"c{i}") for i in range(300)]
    assert len(set(codes)) == len(codes)
    assert len(store) == 300


def test_small_code_space_reuses_only_dead_codes() -> None:
    store = RoomStore(CodeGenerator(length=1, alphabet="AB", max_attempts=50, rng=random.Random(0)))
    first = store.create_room("a")
    second = store.create_room("b")
    assert {first, second} == {"A", "B"}

    with pytest.raises(CodeGenerationExhausted):
        store.create_room("c")

    # Freeing a code makes it available again.
    store.leave_room(first, "a")
    assert store.create_room("c") == first


def test_join_unknown_room_raises(store: RoomStore) -> None:
    with pytest.raises(RoomNotFound) as e:
        store.join_room("ZZZZZ", "someone")
    assert e.value.code == "ZZZZZ"


def test_join_returns_accumulated_state(store: RoomStore) -> None:
    code = store.create_room("a")
    assert store.join_room(code, "b") == {}

    assert store.update_hex_state(code, "0,0", {"color": "#FF0000", "height": 1.0})
    assert store.update_hex_state(code, "0,0", {"height": 2.0})

    assert store.join_room(code, "c") == {"0,0": {"color": "#FF0000", "height": 2.0}}


def test_update_missing_room_returns_false(store: RoomStore) -> None:
    assert store.update_hex_state("NOPE1", "0,0", {"height": 1}) is False


def test_update_is_idempotent_for_same_partial(store: RoomStore) -> None:
    code = store.create_room("a")
    store.update_hex_state(code, "0,0", {"color": "#123456"})
    store.update_hex_state(code, "0,0", {"color": "#123456"})
    room = store.get_room(code)
    assert room is not None
    assert room.snapshot() == {"0,0": {"color": "#123456"}}


def test_final_cell_state_is_left_to_right_merge(store: RoomStore) -> None:
    code = store.create_room("a")
    store.join_room(code, "b")
    partials = [
        {"color": "#FF0000"},
        {"height": 1.5},
        {"color": "#00FF00", "model": {"name": "tree"}},
        {"model": {"name": "rock", "rotation": 90}},
        {"height": 0.25},
    ]
    expected: dict = {}
    for partial in partials:
        expected.update(partial)
        store.update_hex_state(code, "3,-1", partial)

    room = store.get_room(code)
    assert room is not None
    assert room.snapshot()["3,-1"] == expected


def test_room_with_zero_members_is_gone(store: RoomStore) -> None:
    code = store.create_room("a")
    store.join_room(code, "b")
    store.update_hex_state(code, "0,0", {"height": 1})

    store.leave_room(code, "a")
    assert code in store

    departure = store.leave_room(code, "b")
    assert departure is not None and departure.destroyed is True
    assert code not in store

    with pytest.raises(RoomNotFound):
        store.join_room(code, "c")
    assert store.update_hex_state(code, "0,0", {"height": 2}) is False


def test_remove_connection_leaves_every_room(store: RoomStore) -> None:
    room_a = store.create_room("x")
    store.join_room(room_a, "y")
    room_b = store.create_room("x")
    store.join_room(room_b, "z")
    solo = store.create_room("x")

    notified: list[tuple[str, frozenset[str]]] = []
    departures = store.remove_connection("x", [room_a, room_b, solo], notify=lambda c, m: notified.append((c, m)))

    assert sorted(d.code for d in departures) == sorted([room_a, room_b, solo])
    assert store.get_room(room_a).members == frozenset({"y"})  # type: ignore[union-attr]
    assert store.get_room(room_b).members == frozenset({"z"})  # type: ignore[union-attr]
    assert solo not in store
    assert sorted(notified) == sorted([(room_a, frozenset({"y"})), (room_b, frozenset({"z"}))])


def test_remove_connection_without_codes_scans_all_rooms(store: RoomStore) -> None:
    a = store.create_room("x")
    b = store.create_room("y")
    store.join_room(b, "x")

    departures = store.remove_connection("x")

    assert {d.code for d in departures} == {a, b}
    assert a not in store
    assert store.get_room(b).members == frozenset({"y"})  # type: ignore[union-attr]


def test_remove_connection_ignores_unknown_rooms(store: RoomStore) -> None:
    assert store.remove_connection("x", ["GONE1"]) == []


def test_concurrent_updates_to_one_cell_all_land(store: RoomStore) -> None:
    code = store.create_room("a")
    workers = 8
    per_worker = 200

    def _work(worker: int) -> None:
        for i in range(per_worker):
            store.update_hex_state(code, "0,0", {f"w{worker}": i})

    with ThreadPoolExecutor(max_workers=workers) as pool:
        list(pool.map(_work, range(workers)))

    room = store.get_room(code)
    assert room is not None
    assert room.snapshot()["0,0"] == {f"w{w}": per_worker - 1 for w in range(workers)}


def test_notifications_follow_apply_order(store: RoomStore) -> None:
    code = store.create_room("a")
    observed: list[int] = []

    def _work(worker: int) -> None:
        for i in range(100):
            value = worker * 1000 + i

            def _record(members: frozenset[str], value: int = value) -> None:
                observed.append(value)

            store.update_hex_state(code, "0,0", {"n": value}, notify=_record)

    with ThreadPoolExecutor(max_workers=4) as pool:
        list(pool.map(_work, range(4)))

    room = store.get_room(code)
    assert room is not None
    # The last notification describes the state that actually won.
    assert room.snapshot()["0,0"]["n"] == observed[-1]
    assert len(observed) == 400


def test_busy_room_does_not_block_other_rooms(store: RoomStore) -> None:
    busy = store.create_room("a")
    idle = store.create_room("b")
    busy_room = store.get_room(busy)
    assert busy_room is not None

    done = threading.Event()

    def _touch_idle_room() -> None:
        store.update_hex_state(idle, "0,0", {"height": 1})
        store.join_room(idle, "c")
        store.create_room("d")
        done.set()

    with busy_room._lock:
        t = threading.Thread(target=_touch_idle_room)
        t.start()
        assert done.wait(timeout=5), "operations on an unrelated room were blocked"
    t.join()


def test_join_racing_last_leave_never_resurrects_room(store: RoomStore) -> None:
    for _ in range(50):
        code = store.create_room("a")
        barrier = threading.Barrier(2)
        outcome: dict[str, object] = {}

        def _leave() -> None:
            barrier.wait()
            store.leave_room(code, "a")

        def _join() -> None:
            barrier.wait()
            try:
                store.join_room(code, "b")
                outcome["joined"] = True
            except RoomNotFound:
                outcome["joined"] = False

        threads = [threading.Thread(target=_leave), threading.Thread(target=_join)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        if outcome["joined"]:
            # b got in before a left: room lives on with b.
            assert store.get_room(code).members == frozenset({"b"})  # type: ignore[union-attr]
            store.leave_room(code, "b")
        assert code not in store


def test_strict_mode_raises_for_stale_rooms(store: RoomStore) -> None:
    code = store.create_room("owner")
    store.leave_room(code, "owner")

    with pytest.raises(StaleRoomMutation) as exc:
        store.update_hex_state(code, "0,0", {"height": 1}, strict=True)
    assert exc.value.code == code

    with pytest.raises(StaleRoomMutation):
        store.publish(code, lambda members: None, strict=True)

    assert store.update_hex_state(code, "0,0", {"height": 1}) is False
    assert store.publish("NOPE1", lambda members: None) is False
