from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

from writingresearch.errors import ValidationError
from writingresearch.locks import KeyedLocks
from writingresearch.models import now_ms
from writingresearch.storage import JsonStore

logger = logging.getLogger("writingresearch.chat")

CHANNELS = ("ai", "peer")
DEFAULT_HISTORY_LIMIT = 5000


def normalize_channel(channel: str | None) -> str:
    normalized = str(channel or "").strip().lower()
    if normalized not in CHANNELS:
        raise ValidationError(f"Unknown chat channel '{channel}'. Use one of: {', '.join(CHANNELS)}.")
    return normalized


def channel_for_conversation(conversation_id: str) -> str | None:
    prefix = str(conversation_id or "").split(":", 1)[0]
    return prefix if prefix in CHANNELS else None


class TranscriptStore:
    """Per-conversation message history; `ai:<session_key>` and `peer:<room_id>` ids."""

    def __init__(self, backend: JsonStore, *, history_limit: int = DEFAULT_HISTORY_LIMIT) -> None:
        self._backend = backend
        self._locks = KeyedLocks()
        self.history_limit = max(1, history_limit)

    @staticmethod
    def _key(channel: str, conversation_id: str) -> str:
        return f"chats/{channel}/{quote(conversation_id, safe='')}.json"

    def _history(self, key: str) -> list[dict[str, Any]]:
        stored = self._backend.read(key)
        return [item for item in stored if isinstance(item, dict)] if isinstance(stored, list) else []

    def append(
        self,
        channel: str,
        conversation_id: str,
        *,
        text: str,
        sender_id: str = "",
        sender_name: str = "",
        role: str = "user",
        metadata: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        channel = normalize_channel(channel)
        conversation_id = str(conversation_id or "").strip()
        if not conversation_id:
            raise ValidationError("A conversation id is required.")
        if not str(text or "").strip():
            raise ValidationError("Message text is required.")
        key = self._key(channel, conversation_id)
        message = {
            "ts": now_ms(),
            "conversation_id": conversation_id,
            "channel": channel,
            "sender_id": sender_id,
            "sender_name": sender_name,
            "role": role or "user",
            "text": str(text),
            "metadata": dict(metadata or {}),
        }
        with self._locks.hold(key):
            history = self._history(key)
            history.append(message)
            self._backend.write(key, history[-self.history_limit :])
        return message

    def messages(self, channel: str, conversation_id: str, *, since: int = 0) -> list[dict[str, Any]]:
        channel = normalize_channel(channel)
        if not conversation_id:
            return []
        history = self._history(self._key(channel, conversation_id))
        selected = [item for item in history if int(item.get("ts") or 0) > since] if since else history
        return sorted(selected, key=lambda item: int(item.get("ts") or 0))

    def purge(self, conversation_id: str) -> None:
        channel = channel_for_conversation(conversation_id)
        if channel is None:
            return
        key = self._key(channel, conversation_id)
        with self._locks.hold(key):
            self._backend.delete(key)
        logger.info("transcript_purged", extra={"event": "transcript_purged", "channel": channel})
