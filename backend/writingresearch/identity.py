from __future__ import annotations

import hashlib

from writingresearch.errors import ValidationError

SESSION_KEY_SEPARATOR = "|"
SOLO_ROOM_PREFIX = "solo_"
PAIR_ROOM_PREFIX = "r_"
ROOM_HASH_LENGTH = 12


def normalize_group(group: str | None) -> str:
    return str(group or "").strip().upper()


def normalize_participant_id(participant_id: str | None) -> str:
    return str(participant_id or "").strip()


def _short_hash(text: str) -> str:
    return hashlib.md5(text.encode("utf-8")).hexdigest()[:ROOM_HASH_LENGTH]


def session_key(group: str | None, participant_id: str | None) -> str:
    normalized_group = normalize_group(group)
    normalized_id = normalize_participant_id(participant_id)
    if not normalized_group or not normalized_id:
        raise ValidationError("Both group and participant id are required.")
    return f"{normalized_group}{SESSION_KEY_SEPARATOR}{normalized_id}"


def solo_room_id(group: str | None, participant_id: str | None) -> str:
    key = session_key(group, participant_id)
    return f"{SOLO_ROOM_PREFIX}{_short_hash(key)}"


def pair_room_id(key_a: str, key_b: str) -> str:
    left, right = sorted((str(key_a or "").strip(), str(key_b or "").strip()))
    return f"{PAIR_ROOM_PREFIX}{_short_hash(f'{left}{SESSION_KEY_SEPARATOR}{right}')}"


def ai_session_id(key: str) -> str:
    return f"ai:{key}"


def peer_session_id(room_id: str) -> str:
    return f"peer:{room_id}" if room_id else ""
