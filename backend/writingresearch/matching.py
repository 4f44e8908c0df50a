from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from writingresearch.errors import ConflictError, NotFoundError, ValidationError
from writingresearch.identity import normalize_group, normalize_participant_id, pair_room_id, session_key
from writingresearch.models import PairingDeclaration, PartnerHint, RosterEntry, Session, now_ms
from writingresearch.roster import RosterStore

if TYPE_CHECKING:
    from writingresearch.sessions import SessionStore

logger = logging.getLogger("writingresearch.matching")

_MAX_LINK_ATTEMPTS = 5


def _hint_for(group: str, own: RosterEntry, other: RosterEntry) -> PartnerHint:
    room_id = pair_room_id(session_key(group, own.id), session_key(group, other.id))
    return PartnerHint(room_id=room_id, partner_id=other.id, partner_name=other.name)


def find_declared_partner(
    declarations: list[PairingDeclaration], group: str, participant_id: str, participant_name: str
) -> PartnerHint | None:
    """Identifier matches win over display-name matches; on name collisions the first declaration wins."""
    normalized_group = normalize_group(group)
    participant_id = normalize_participant_id(participant_id)
    participant_name = str(participant_name or "").strip()
    candidates = [item for item in declarations if not item.group or item.group == normalized_group]

    if participant_id:
        for item in candidates:
            if item.primary.id == participant_id:
                return _hint_for(normalized_group, item.primary, item.partner)
            if item.partner.id == participant_id:
                return _hint_for(normalized_group, item.partner, item.primary)
    if participant_name:
        for item in candidates:
            if item.primary.name and item.primary.name == participant_name:
                return _hint_for(normalized_group, item.primary, item.partner)
            if item.partner.name and item.partner.name == participant_name:
                return _hint_for(normalized_group, item.partner, item.primary)
    return None


def partner_key_of(session: Session | None) -> str | None:
    if session is None or not session.partner_participant_id:
        return None
    return session_key(session.group, session.partner_participant_id)


class PartnerMatcher:
    def __init__(self, roster: RosterStore, sessions: SessionStore) -> None:
        self._roster = roster
        self._sessions = sessions

    def lookup(self, group: str, participant_id: str, participant_name: str = "") -> PartnerHint | None:
        return find_declared_partner(self._roster.pairings(), group, participant_id, participant_name)

    def _require(self, key: str) -> Session:
        record = self._sessions.find(key)
        if record is None:
            raise NotFoundError(f"Session '{key}' was not found.")
        return record

    def _detach_previous(self, session: Session, keep_participant_id: str, stamp: int) -> None:
        previous_id = session.partner_participant_id
        if not previous_id or previous_id == keep_participant_id:
            return
        previous = self._sessions.find(session_key(session.group, previous_id))
        if previous is not None and previous.partner_participant_id == session.participant_id:
            previous.clear_partner()
            previous.updated_at = stamp
            self._sessions.save(previous)
            logger.info(
                "partner_detached",
                extra={"event": "partner_detached", "session_key": previous.session_key},
            )

    def assign(
        self,
        key: str,
        *,
        partner_session_key: str | None = None,
        partner_id: str | None = None,
        partner_name: str | None = None,
    ) -> Session:
        partner_session_key = str(partner_session_key or "").strip()
        partner_id = normalize_participant_id(partner_id)
        partner_name = str(partner_name or "").strip()
        if not partner_session_key and not partner_id:
            raise ValidationError("A partner session key or partner id is required.")

        for _ in range(_MAX_LINK_ATTEMPTS):
            record = self._require(key)
            target_key = ""
            if partner_session_key and self._sessions.find(partner_session_key) is not None:
                target_key = partner_session_key
            elif partner_id:
                target_key = session_key(record.group, partner_id)
            elif partner_session_key:
                raise NotFoundError(f"Partner session '{partner_session_key}' was not found.")
            if target_key == record.session_key:
                raise ValidationError("A session cannot be paired with itself.")

            target = self._sessions.find(target_key)
            involved = {record.session_key, target_key}
            for linked in (partner_key_of(record), partner_key_of(target)):
                if linked:
                    involved.add(linked)

            with self._sessions.locks.hold(*involved):
                record = self._require(key)
                target = self._sessions.find(target_key)
                if partner_key_of(record) not in involved | {None}:
                    continue
                if target is not None and partner_key_of(target) not in involved | {None}:
                    continue
                return self._link(record, target, partner_id=partner_id, partner_name=partner_name)

        raise ConflictError("Partner linkage changed while assigning; retry the request.")

    def _link(self, record: Session, target: Session | None, *, partner_id: str, partner_name: str) -> Session:
        stamp = now_ms()
        if target is None:
            self._detach_previous(record, partner_id, stamp)
            record.set_partner(partner_id, partner_name)
            record.updated_at = stamp
            self._sessions.save(record)
            logger.info(
                "partner_hint_stored",
                extra={"event": "partner_hint_stored", "session_key": record.session_key},
            )
            return record

        if target.group != record.group:
            raise ValidationError("Partners must belong to the same group.")
        self._detach_previous(record, target.participant_id, stamp)
        self._detach_previous(target, record.participant_id, stamp)

        room_id = record.room_id or target.room_id or pair_room_id(record.session_key, target.session_key)
        record.room_id = room_id
        target.room_id = room_id
        record.set_partner(target.participant_id, target.participant_name)
        target.set_partner(record.participant_id, record.participant_name)
        record.updated_at = stamp
        target.updated_at = stamp
        self._sessions.save(record)
        self._sessions.save(target)
        logger.info(
            "partner_assigned",
            extra={
                "event": "partner_assigned",
                "session_key": record.session_key,
                "partner_session_key": target.session_key,
                "room_id": room_id,
            },
        )
        return record

    def clear(self, key: str) -> Session:
        for _ in range(_MAX_LINK_ATTEMPTS):
            linked_key = partner_key_of(self._require(key))
            with self._sessions.locks.hold(key, linked_key or ""):
                record = self._require(key)
                if partner_key_of(record) != linked_key:
                    continue
                stamp = now_ms()
                if linked_key:
                    partner = self._sessions.find(linked_key)
                    if partner is not None and partner.partner_participant_id == record.participant_id:
                        partner.clear_partner()
                        partner.updated_at = stamp
                        self._sessions.save(partner)
                record.clear_partner()
                record.updated_at = stamp
                self._sessions.save(record)
                logger.info("partner_cleared", extra={"event": "partner_cleared", "session_key": key})
                return record
        raise ConflictError("Partner linkage changed while clearing; retry the request.")
