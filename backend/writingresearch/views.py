"""Read-only projections of sessions handed to the HTTP layer and admin tools."""

from __future__ import annotations

from typing import Any

from writingresearch.identity import ai_session_id, peer_session_id
from writingresearch.models import CONTENT_BLOCKS, STAGE_PEER, Session


def _blocks(session: Session) -> dict[str, dict[str, object]]:
    return {
        name: {"text": getattr(session, name).text, "timestamp": getattr(session, name).timestamp}
        for name in CONTENT_BLOCKS
    }


def build_steps(session: Session, *, peer_enabled: bool) -> dict[str, dict[str, object]]:
    return {
        "prewriting": {"completed": bool(session.prewriting.text), "timestamp": session.prewriting.timestamp},
        "draft": {"saved": bool(session.draft.text), "timestamp": session.draft.timestamp},
        "peer": {"enabled": peer_enabled, "completed": peer_enabled and session.stage >= STAGE_PEER},
        "final": {"submitted": bool(session.final.text), "timestamp": session.final.timestamp},
    }


def build_partner_snapshot(session: Session, partner: Session | None) -> dict[str, object] | None:
    if partner is not None:
        return {"id": partner.participant_id, "name": partner.participant_name, "session_key": partner.session_key}
    if session.partner_participant_id or session.partner_name:
        return {"id": session.partner_participant_id, "name": session.partner_name, "session_key": ""}
    return None


def build_session_view(
    session: Session,
    *,
    partner: Session | None,
    presence: dict[str, Any],
    peer_enabled: bool,
) -> dict[str, object]:
    partner_view: dict[str, object] | None = None
    if partner is not None:
        partner_view = {
            "id": partner.participant_id,
            "name": partner.participant_name,
            "stage": partner.stage,
            **_blocks(partner),
            "presence": presence.get("partner"),
        }
    return {
        "session_key": session.session_key,
        "group": session.group,
        "participant": {"id": session.participant_id, "name": session.participant_name},
        "room_id": session.room_id,
        "stage": session.stage,
        "created_at": session.created_at,
        "updated_at": session.updated_at,
        **_blocks(session),
        "steps": build_steps(session, peer_enabled=peer_enabled),
        "ai_session_id": ai_session_id(session.session_key),
        "peer_session_id": peer_session_id(session.room_id) if peer_enabled else "",
        "partner": partner_view,
        "presence": presence,
    }


def build_admin_summary(session: Session, partner: Session | None) -> dict[str, object]:
    return {
        "session_key": session.session_key,
        "group": session.group,
        "stage": session.stage,
        "room_id": session.room_id,
        "created_at": session.created_at,
        "updated_at": session.updated_at,
        "participant": {"id": session.participant_id, "name": session.participant_name},
        "partner": build_partner_snapshot(session, partner),
    }


def build_admin_detail(session: Session, partner: Session | None) -> dict[str, object]:
    return {
        **build_admin_summary(session, partner),
        "ai_session_id": ai_session_id(session.session_key),
        "peer_session_id": peer_session_id(session.room_id),
        "writing": _blocks(session),
    }
