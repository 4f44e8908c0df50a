"""Stage transitions for a writing session.

Stages run 1 (prewriting) -> 2 (draft) -> 3 (peer notes) -> 4 (final). Stage 3
exists only for peer-enabled groups; every other group moves 2 -> 4 directly.
All functions mutate the session in place and raise on guard failures; the
caller persists the result.
"""

from __future__ import annotations

from typing import Iterable

from writingresearch.errors import ConflictError, PreconditionError, ValidationError
from writingresearch.models import (
    STAGE_DRAFT,
    STAGE_FINAL,
    STAGE_PEER,
    STAGE_PREWRITING,
    Session,
    now_ms,
)

DEFAULT_PEER_GROUPS = frozenset({"A", "B"})
DEFAULT_JUMP_CEILING = STAGE_FINAL + 1


def clamp_jump_target(raw: object, ceiling: int = DEFAULT_JUMP_CEILING) -> int:
    """Coerce a requested jump target into [1, ceiling]; unparsable input becomes 1."""
    try:
        desired = int(raw)  # type: ignore[call-overload]
    except (TypeError, ValueError):
        desired = 0
    return min(ceiling, max(STAGE_PREWRITING, desired or STAGE_PREWRITING))


def _require_prewriting(session: Session) -> None:
    if not session.prewriting.text:
        raise PreconditionError("Submit the prewriting before moving to the draft stage.", missing="prewriting")


def _require_draft(session: Session) -> None:
    if not session.draft.text:
        raise PreconditionError("Save the draft before moving on.", missing="draft")


def _require_notes(session: Session) -> None:
    if not session.notes.text:
        raise PreconditionError("Save the peer notes before moving on.", missing="notes")


def _clean_text(text: str | None, block: str) -> str:
    cleaned = str(text or "").strip()
    if not cleaned:
        raise ValidationError(f"Text for '{block}' must not be empty.")
    return cleaned


class StageMachine:
    def __init__(self, peer_groups: Iterable[str] = DEFAULT_PEER_GROUPS) -> None:
        self.peer_groups = frozenset(group.strip().upper() for group in peer_groups if group.strip())

    def is_peer_enabled(self, group: str) -> bool:
        return str(group or "").strip().upper() in self.peer_groups

    def final_predecessor(self, group: str) -> int:
        return STAGE_PEER if self.is_peer_enabled(group) else STAGE_DRAFT

    def advance_to_peer(self, session: Session) -> Session:
        stage = session.stage
        if stage < STAGE_DRAFT:
            session.stage = STAGE_DRAFT
        elif stage == STAGE_DRAFT:
            _require_draft(session)
            session.stage = STAGE_PEER if self.is_peer_enabled(session.group) else STAGE_FINAL
        elif stage == STAGE_PEER:
            _require_notes(session)
            session.stage = STAGE_FINAL
        return session

    def advance_to_final(self, session: Session) -> Session:
        _require_draft(session)
        if self.is_peer_enabled(session.group):
            _require_notes(session)
            if session.stage < STAGE_PEER:
                raise PreconditionError("Finish the peer stage before the final stage.", missing="peer_stage")
        session.stage = STAGE_FINAL
        return session

    def _check_entry(self, session: Session, target: int) -> None:
        if target == STAGE_DRAFT:
            _require_prewriting(session)
        elif target == STAGE_PEER:
            _require_draft(session)
        elif target == STAGE_FINAL:
            if self.is_peer_enabled(session.group):
                _require_notes(session)
            else:
                _require_draft(session)

    def jump_to(self, session: Session, desired: int) -> Session:
        if desired == STAGE_PEER and not self.is_peer_enabled(session.group):
            raise ValidationError(f"Group {session.group} has no peer stage.")
        if desired < STAGE_PREWRITING or desired > STAGE_FINAL:
            # Targets in the headroom slot above the final stage are refused rather than stored.
            raise ValidationError(f"Stage {desired} is outside 1..{STAGE_FINAL}.")
        if desired == session.stage:
            return session
        if desired > session.stage or desired in (STAGE_DRAFT, STAGE_PEER):
            self._check_entry(session, desired)
        session.stage = desired
        return session

    def regress(self, session: Session) -> Session:
        stage = session.stage
        if stage >= STAGE_FINAL:
            session.stage = self.final_predecessor(session.group)
        elif stage > STAGE_PREWRITING:
            session.stage = stage - 1
        return session

    def submit_prewriting(self, session: Session, text: str | None) -> Session:
        if session.prewriting.text:
            raise ConflictError("Prewriting has already been submitted.")
        session.prewriting.write(_clean_text(text, "prewriting"), now_ms())
        if session.stage < STAGE_DRAFT:
            session.stage = STAGE_DRAFT
        return session

    def save_draft(self, session: Session, text: str | None) -> Session:
        session.draft.write(_clean_text(text, "draft"), now_ms())
        if session.stage < STAGE_DRAFT:
            session.stage = STAGE_DRAFT
        return session

    def save_notes(self, session: Session, text: str | None) -> Session:
        session.notes.write(_clean_text(text, "notes"), now_ms())
        if session.stage < STAGE_PEER and self.is_peer_enabled(session.group):
            session.stage = STAGE_PEER
        return session

    def submit_final(self, session: Session, text: str | None) -> Session:
        if session.final.text:
            raise ConflictError("The final text has already been submitted.")
        session.final.write(_clean_text(text, "final"), now_ms())
        session.stage = STAGE_FINAL
        return session
