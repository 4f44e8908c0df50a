from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from writingresearch.api.contracts import ChatSendRequest, JumpRequest, SessionStartRequest, TextSubmission
from writingresearch.api.services.runtime import get_service
from writingresearch.auth import require_api_key
from writingresearch.service import WritingService


router = APIRouter(dependencies=[Depends(require_api_key)])


@router.post("/session/start")
def start_session(payload: SessionStartRequest, service: WritingService = Depends(get_service)) -> dict[str, object]:
    return service.start_session(payload.group, payload.participant_id, payload.participant_name)


@router.get("/session/{session_key}")
def get_session(session_key: str, service: WritingService = Depends(get_service)) -> dict[str, object]:
    return service.get_session(session_key)


@router.post("/session/{session_key}/prewriting")
def submit_prewriting(
    session_key: str, payload: TextSubmission, service: WritingService = Depends(get_service)
) -> dict[str, object]:
    return service.submit_prewriting(session_key, payload.text)


@router.post("/session/{session_key}/draft")
def save_draft(
    session_key: str, payload: TextSubmission, service: WritingService = Depends(get_service)
) -> dict[str, object]:
    return service.save_draft(session_key, payload.text)


@router.post("/session/{session_key}/notes")
def save_notes(
    session_key: str, payload: TextSubmission, service: WritingService = Depends(get_service)
) -> dict[str, object]:
    return service.save_notes(session_key, payload.text)


@router.post("/session/{session_key}/final")
def submit_final(
    session_key: str, payload: TextSubmission, service: WritingService = Depends(get_service)
) -> dict[str, object]:
    return service.submit_final(session_key, payload.text)


@router.post("/session/{session_key}/advance")
def advance(session_key: str, service: WritingService = Depends(get_service)) -> dict[str, object]:
    return service.advance(session_key)


@router.post("/session/{session_key}/advance-final")
def advance_final(session_key: str, service: WritingService = Depends(get_service)) -> dict[str, object]:
    return service.advance_final(session_key)


@router.post("/session/{session_key}/jump")
def jump(session_key: str, payload: JumpRequest, service: WritingService = Depends(get_service)) -> dict[str, object]:
    return service.jump(session_key, payload.stage)


@router.post("/session/{session_key}/regress")
def regress(session_key: str, service: WritingService = Depends(get_service)) -> dict[str, object]:
    return service.regress(session_key)


@router.post("/session/{session_key}/presence/touch")
def touch_presence(session_key: str, service: WritingService = Depends(get_service)) -> dict[str, object]:
    return service.touch_presence(session_key)


@router.post("/session/{session_key}/presence/leave")
def leave_presence(session_key: str, service: WritingService = Depends(get_service)) -> dict[str, object]:
    return service.leave_presence(session_key)


@router.get("/chat/{channel}/messages")
def list_messages(
    channel: str,
    session_id: str = Query(..., min_length=1),
    since: int = Query(default=0, ge=0),
    service: WritingService = Depends(get_service),
) -> list[dict[str, object]]:
    return service.list_messages(channel, session_id, since=since)


@router.post("/chat/{channel}/send")
def send_message(
    channel: str, payload: ChatSendRequest, service: WritingService = Depends(get_service)
) -> dict[str, object]:
    message = service.send_message(
        channel,
        payload.session_id,
        text=payload.text,
        sender_id=payload.user_id,
        sender_name=payload.user_name,
        role=payload.role,
        metadata=payload.metadata,
    )
    return {"ok": True, "ts": message["ts"]}
