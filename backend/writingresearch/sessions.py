from __future__ import annotations

import logging
from typing import Callable, Iterable
from urllib.parse import quote

from writingresearch.chat import TranscriptStore
from writingresearch.errors import NotFoundError
from writingresearch.identity import (
    ai_session_id,
    normalize_group,
    normalize_participant_id,
    pair_room_id,
    peer_session_id,
    session_key,
    solo_room_id,
)
from writingresearch.locks import KeyedLocks
from writingresearch.matching import PartnerMatcher
from writingresearch.models import PartnerHint, Session, now_ms
from writingresearch.presence import PresenceTracker
from writingresearch.roster import RosterStore
from writingresearch.stages import StageMachine
from writingresearch.storage import JsonStore

logger = logging.getLogger("writingresearch.sessions")

SESSIONS_PREFIX = "sessions"


def _record_key(key: str) -> str:
    return f"{SESSIONS_PREFIX}/{quote(key, safe='')}.json"


def _accepts(candidate: Session, participant_id: str, *, declared: bool) -> bool:
    # A declared partner may still be unlinked; otherwise the candidate must already point here.
    if candidate.participant_id == participant_id:
        return False
    if declared and not candidate.partner_participant_id:
        return True
    return candidate.partner_participant_id == participant_id


class SessionStore:
    """Owns session records; every load-modify-persist runs under the record's key lock."""

    def __init__(
        self,
        backend: JsonStore,
        *,
        roster: RosterStore,
        presence: PresenceTracker,
        transcripts: TranscriptStore,
        stages: StageMachine,
    ) -> None:
        self._backend = backend
        self.locks = KeyedLocks()
        self.presence = presence
        self.transcripts = transcripts
        self.stages = stages
        self.matcher = PartnerMatcher(roster, self)

    def find(self, key: str) -> Session | None:
        if not key:
            return None
        payload = self._backend.read(_record_key(key))
        if not isinstance(payload, dict):
            return None
        return Session.from_dict(payload)

    def find_participant(self, group: str, participant_id: str) -> Session | None:
        if not normalize_group(group) or not normalize_participant_id(participant_id):
            return None
        return self.find(session_key(group, participant_id))

    def save(self, session: Session) -> Session:
        self._backend.write(_record_key(session.session_key), session.to_dict())
        return session

    def list_sessions(self) -> list[Session]:
        sessions: list[Session] = []
        for record_key in self._backend.list_keys(SESSIONS_PREFIX):
            payload = self._backend.read(record_key)
            if isinstance(payload, dict):
                sessions.append(Session.from_dict(payload))
        return sorted(sessions, key=lambda item: (item.created_at, item.session_key))

    def ensure(self, group: str, participant_id: str, participant_name: str = "") -> Session:
        key = session_key(group, participant_id)
        normalized_group = normalize_group(group)
        normalized_id = normalize_participant_id(participant_id)
        name = str(participant_name or "").strip()
        hint = (
            self.matcher.lookup(normalized_group, normalized_id, name)
            if self.stages.is_peer_enabled(normalized_group)
            else None
        )

        waiting = None
        if self.find(key) is None:
            waiting = self._waiting_partner(key, normalized_group, normalized_id, hint)

        with self.locks.hold(key, waiting.session_key if waiting else ""):
            record = self.find(key)
            if record is None:
                return self._create(key, normalized_group, normalized_id, name, hint, waiting)

            changed = False
            if name and name != record.participant_name:
                record.participant_name = name
                changed = True
            if not record.room_id:
                record.room_id = hint.room_id if hint else solo_room_id(normalized_group, normalized_id)
                changed = True
            if hint is not None:
                if not record.partner_participant_id:
                    record.set_partner(hint.partner_id, hint.partner_name)
                    changed = True
                elif record.partner_participant_id == hint.partner_id and not record.partner_name and hint.partner_name:
                    record.partner_name = hint.partner_name
                    changed = True
            if changed:
                record.updated_at = now_ms()
                self.save(record)
            return record

    def _waiting_partner(
        self, key: str, group: str, participant_id: str, hint: PartnerHint | None
    ) -> Session | None:
        """Existing session a newcomer should join: its declared partner, or one holding an admin hint for it."""
        if hint is not None:
            candidate = self.find_participant(group, hint.partner_id)
            if candidate is not None and _accepts(candidate, participant_id, declared=True):
                return candidate
            return None
        for candidate in self.list_sessions():
            if candidate.session_key != key and candidate.group == group and _accepts(
                candidate, participant_id, declared=False
            ):
                return candidate
        return None

    def _create(
        self,
        key: str,
        group: str,
        participant_id: str,
        name: str,
        hint: PartnerHint | None,
        waiting: Session | None,
    ) -> Session:
        stamp = now_ms()
        # Re-read under the lock; the partner may have changed since the scan.
        partner = self.find(waiting.session_key) if waiting is not None else None
        if partner is not None and not _accepts(partner, participant_id, declared=hint is not None):
            partner = None

        if partner is not None:
            room_id = partner.room_id or pair_room_id(key, partner.session_key)
            partner_id = partner.participant_id
            partner_name = partner.participant_name or (hint.partner_name if hint else "")
        elif hint is not None:
            room_id, partner_id, partner_name = hint.room_id, hint.partner_id, hint.partner_name
        else:
            room_id, partner_id, partner_name = solo_room_id(group, participant_id), "", ""

        record = Session(
            session_key=key,
            group=group,
            participant_id=participant_id,
            participant_name=name,
            room_id=room_id,
            partner_participant_id=partner_id,
            partner_name=partner_name,
            created_at=stamp,
            updated_at=stamp,
        )
        self.save(record)

        if partner is not None:
            partner.room_id = room_id
            partner.set_partner(participant_id, name)
            partner.updated_at = stamp
            self.save(partner)
            logger.info(
                "partner_resolved",
                extra={"event": "partner_resolved", "session_key": key, "partner_session_key": partner.session_key},
            )

        logger.info(
            "session_created",
            extra={
                "event": "session_created",
                "session_key": key,
                "room_id": room_id,
                "paired": bool(partner_id),
            },
        )
        return record

    def mutate(self, key: str, fn: Callable[[Session], Session | None]) -> Session:
        with self.locks.hold(key):
            record = self.find(key)
            if record is None:
                raise NotFoundError(f"Session '{key}' was not found.")
            updated = fn(record) or record
            updated.updated_at = now_ms()
            return self.save(updated)

    def delete(self, keys: Iterable[str]) -> dict[str, int]:
        key_set = {str(key or "").strip() for key in keys}
        key_set.discard("")
        if not key_set:
            return {"deleted": 0}

        removed: list[Session] = []
        with self.locks.hold(*key_set):
            for key in sorted(key_set):
                record = self.find(key)
                if record is None:
                    continue
                self._backend.delete(_record_key(key))
                self.presence.purge(record.room_id, record.participant_id)
                self.transcripts.purge(ai_session_id(key))
                if record.room_id:
                    self.transcripts.purge(peer_session_id(record.room_id))
                removed.append(record)

        removed_participants = {(record.group, record.participant_id) for record in removed}
        repaired = 0
        for remaining in self.list_sessions():
            if (remaining.group, remaining.partner_participant_id) not in removed_participants:
                continue
            with self.locks.hold(remaining.session_key):
                current = self.find(remaining.session_key)
                if current is None or (current.group, current.partner_participant_id) not in removed_participants:
                    continue
                current.clear_partner()
                current.updated_at = now_ms()
                self.save(current)
                repaired += 1

        logger.info(
            "sessions_deleted",
            extra={"event": "sessions_deleted", "deleted": len(removed), "partners_repaired": repaired},
        )
        return {"deleted": len(removed)}
