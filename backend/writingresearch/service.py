from __future__ import annotations

import logging
from typing import Any, Iterable

from writingresearch.chat import TranscriptStore, normalize_channel
from writingresearch.config import Settings
from writingresearch.errors import NotFoundError, ValidationError
from writingresearch.identity import ai_session_id, peer_session_id
from writingresearch.matching import partner_key_of
from writingresearch.models import Session
from writingresearch.presence import PresenceTracker
from writingresearch.roster import RosterStore
from writingresearch.sessions import SessionStore
from writingresearch.stages import StageMachine, clamp_jump_target
from writingresearch.storage import JsonStore, build_json_store
from writingresearch.views import build_admin_detail, build_admin_summary, build_session_view

logger = logging.getLogger("writingresearch.service")


class WritingService:
    """Process-wide composition of the session core; built once per app lifespan."""

    def __init__(self, settings: Settings, *, backend: JsonStore | None = None) -> None:
        self.settings = settings
        self.backend = backend if backend is not None else build_json_store(settings)
        self.stages = StageMachine(settings.peer_groups_set)
        self.presence = PresenceTracker(ttl_seconds=settings.presence_ttl_seconds)
        self.roster = RosterStore(self.backend)
        self.transcripts = TranscriptStore(self.backend, history_limit=settings.chat_history_limit)
        self.sessions = SessionStore(
            self.backend,
            roster=self.roster,
            presence=self.presence,
            transcripts=self.transcripts,
            stages=self.stages,
        )
        self.matcher = self.sessions.matcher

    def close(self) -> None:
        self.presence.clear()

    def _require(self, key: str) -> Session:
        record = self.sessions.find(key)
        if record is None:
            raise NotFoundError(f"Session '{key}' was not found.")
        return record

    def _partner_of(self, record: Session) -> Session | None:
        linked_key = partner_key_of(record)
        return self.sessions.find(linked_key) if linked_key else None

    def view(self, record: Session) -> dict[str, object]:
        presence = self.presence.summary(record.room_id, record.participant_id, record.partner_participant_id)
        return build_session_view(
            record,
            partner=self._partner_of(record),
            presence=presence,
            peer_enabled=self.stages.is_peer_enabled(record.group),
        )

    def start_session(self, group: str, participant_id: str, participant_name: str) -> dict[str, object]:
        return self.view(self.sessions.ensure(group, participant_id, participant_name))

    def get_session(self, key: str) -> dict[str, object]:
        return self.view(self._require(key))

    def submit_prewriting(self, key: str, text: str) -> dict[str, object]:
        return self.view(self.sessions.mutate(key, lambda record: self.stages.submit_prewriting(record, text)))

    def save_draft(self, key: str, text: str) -> dict[str, object]:
        return self.view(self.sessions.mutate(key, lambda record: self.stages.save_draft(record, text)))

    def save_notes(self, key: str, text: str) -> dict[str, object]:
        return self.view(self.sessions.mutate(key, lambda record: self.stages.save_notes(record, text)))

    def submit_final(self, key: str, text: str) -> dict[str, object]:
        return self.view(self.sessions.mutate(key, lambda record: self.stages.submit_final(record, text)))

    def advance(self, key: str) -> dict[str, object]:
        return self.view(self.sessions.mutate(key, self.stages.advance_to_peer))

    def advance_final(self, key: str) -> dict[str, object]:
        return self.view(self.sessions.mutate(key, self.stages.advance_to_final))

    def jump(self, key: str, requested_stage: Any) -> dict[str, object]:
        desired = clamp_jump_target(requested_stage, self.settings.jump_stage_ceiling)
        return self.view(self.sessions.mutate(key, lambda record: self.stages.jump_to(record, desired)))

    def regress(self, key: str) -> dict[str, object]:
        return self.view(self.sessions.mutate(key, self.stages.regress))

    def touch_presence(self, key: str) -> dict[str, object]:
        record = self._require(key)
        return self.presence.touch(record.room_id, record.participant_id)

    def leave_presence(self, key: str) -> dict[str, object]:
        record = self.sessions.find(key)
        if record is not None:
            self.presence.leave(record.room_id, record.participant_id)
        return {"ok": True}

    def send_message(self, channel: str, conversation_id: str, **fields: Any) -> dict[str, Any]:
        return self.transcripts.append(channel, conversation_id, **fields)

    def list_messages(self, channel: str, conversation_id: str, *, since: int = 0) -> list[dict[str, Any]]:
        return self.transcripts.messages(channel, conversation_id, since=since)

    # Admin operations

    def list_admin_sessions(self) -> list[dict[str, object]]:
        records = self.sessions.list_sessions()
        by_key = {record.session_key: record for record in records}
        return [build_admin_summary(record, by_key.get(partner_key_of(record) or "")) for record in records]

    def admin_detail(self, key: str) -> dict[str, object]:
        record = self._require(key)
        return build_admin_detail(record, self._partner_of(record))

    def admin_transcript(self, key: str, channel: str) -> list[dict[str, Any]]:
        record = self._require(key)
        channel = normalize_channel(channel)
        if channel == "ai":
            return self.transcripts.messages("ai", ai_session_id(record.session_key))
        conversation_id = peer_session_id(record.room_id)
        return self.transcripts.messages("peer", conversation_id) if conversation_id else []

    def assign_partner(
        self,
        key: str,
        *,
        partner_session_key: str | None = None,
        partner_id: str | None = None,
        partner_name: str | None = None,
    ) -> dict[str, object]:
        record = self.matcher.assign(
            key,
            partner_session_key=partner_session_key,
            partner_id=partner_id,
            partner_name=partner_name,
        )
        return build_admin_detail(record, self._partner_of(record))

    def clear_partner(self, key: str) -> dict[str, object]:
        record = self.matcher.clear(key)
        return build_admin_detail(record, None)

    def delete_sessions(self, keys: Iterable[str]) -> dict[str, int]:
        cleaned = [str(key or "").strip() for key in keys]
        if not any(cleaned):
            raise ValidationError("No session keys were given for deletion.")
        return self.sessions.delete(cleaned)
