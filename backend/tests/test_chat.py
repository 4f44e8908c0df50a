from __future__ import annotations

from pathlib import Path

import pytest

from writingresearch.chat import TranscriptStore, channel_for_conversation, normalize_channel
from writingresearch.errors import ValidationError
from writingresearch.storage import LocalJsonStore


@pytest.fixture()
def transcripts(tmp_path: Path) -> TranscriptStore:
    return TranscriptStore(LocalJsonStore(tmp_path), history_limit=3)


def test_append_and_list_messages(transcripts: TranscriptStore) -> None:
    message = transcripts.append(
        "AI",
        "ai:A|S1",
        text="How do I start?",
        sender_id="S1",
        sender_name="Kim",
        metadata={"stage": 1},
    )
    assert message["channel"] == "ai"
    assert message["role"] == "user"
    assert message["ts"] > 0

    history = transcripts.messages("ai", "ai:A|S1")
    assert history == [message]
    assert transcripts.messages("peer", "ai:A|S1") == []


def test_messages_since_filters_older_entries(transcripts: TranscriptStore, monkeypatch: pytest.MonkeyPatch) -> None:
    stamps = iter([100, 200, 300])
    monkeypatch.setattr("writingresearch.chat.now_ms", lambda: next(stamps))
    for text in ("one", "two", "three"):
        transcripts.append("peer", "peer:r_room", text=text)
    assert [item["text"] for item in transcripts.messages("peer", "peer:r_room", since=150)] == ["two", "three"]
    assert len(transcripts.messages("peer", "peer:r_room")) == 3


def test_history_is_bounded(transcripts: TranscriptStore) -> None:
    for index in range(5):
        transcripts.append("peer", "peer:r_room", text=f"message {index}")
    assert [item["text"] for item in transcripts.messages("peer", "peer:r_room")] == [
        "message 2",
        "message 3",
        "message 4",
    ]


def test_append_validates_input(transcripts: TranscriptStore) -> None:
    with pytest.raises(ValidationError):
        transcripts.append("email", "ai:A|S1", text="hi")
    with pytest.raises(ValidationError):
        transcripts.append("ai", " ", text="hi")
    with pytest.raises(ValidationError):
        transcripts.append("ai", "ai:A|S1", text="   ")


def test_purge_uses_conversation_prefix(transcripts: TranscriptStore) -> None:
    transcripts.append("ai", "ai:A|S1", text="hi")
    transcripts.append("peer", "peer:r_room", text="hello")

    transcripts.purge("ai:A|S1")
    transcripts.purge("unknown:thing")

    assert transcripts.messages("ai", "ai:A|S1") == []
    assert len(transcripts.messages("peer", "peer:r_room")) == 1


def test_channel_helpers() -> None:
    assert normalize_channel(" Peer ") == "peer"
    assert channel_for_conversation("ai:A|S1") == "ai"
    assert channel_for_conversation("peer:r_1") == "peer"
    assert channel_for_conversation("r_1") is None
