from __future__ import annotations

import itertools

import pytest

from writingresearch.errors import ValidationError
from writingresearch.identity import (
    ai_session_id,
    pair_room_id,
    peer_session_id,
    session_key,
    solo_room_id,
)


def test_session_key_normalizes_group_and_trims_identifier() -> None:
    assert session_key("a", "  S1 ") == "A|S1"
    assert session_key(" b ", "42") == "B|42"


@pytest.mark.parametrize(("group", "participant_id"), [("", "S1"), ("A", ""), ("A", "   "), (None, "S1")])
def test_session_key_rejects_missing_parts(group: str | None, participant_id: str) -> None:
    with pytest.raises(ValidationError):
        session_key(group, participant_id)


def test_session_key_is_stable_and_distinct() -> None:
    pairs = [(group, participant) for group in ("A", "B", "C") for participant in ("S1", "S2", "s1")]
    keys = [session_key(group, participant) for group, participant in pairs]
    assert keys == [session_key(group, participant) for group, participant in pairs]
    assert len(set(keys)) == len(keys)


def test_solo_room_id_is_deterministic_and_prefixed() -> None:
    room = solo_room_id("a", "S1")
    assert room == solo_room_id("A", " S1 ")
    assert room.startswith("solo_")
    assert len(room) == len("solo_") + 12
    assert room != solo_room_id("A", "S2")


def test_pair_room_id_is_order_independent() -> None:
    keys = ["A|S1", "A|S2", "B|7", "C|x y"]
    for left, right in itertools.permutations(keys, 2):
        assert pair_room_id(left, right) == pair_room_id(right, left)
        assert pair_room_id(left, right).startswith("r_")
    assert pair_room_id("A|S1", "A|S2") != pair_room_id("A|S1", "A|S3")


def test_pair_and_solo_rooms_never_collide_by_prefix() -> None:
    assert not solo_room_id("A", "S1").startswith("r_")
    assert not pair_room_id("A|S1", "A|S2").startswith("solo_")


def test_chat_identifiers() -> None:
    assert ai_session_id("A|S1") == "ai:A|S1"
    assert peer_session_id("r_abc") == "peer:r_abc"
    assert peer_session_id("") == ""
