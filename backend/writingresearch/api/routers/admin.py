from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from writingresearch.api.contracts import AdminLoginRequest, BulkDeleteRequest, PartnerAssignRequest, RosterPayload
from writingresearch.api.services.runtime import get_service
from writingresearch.auth import AdminAuthenticator, get_admin_authenticator, require_admin
from writingresearch.service import WritingService


router = APIRouter()
protected = APIRouter(dependencies=[Depends(require_admin)])


@router.post("/login")
def login(
    payload: AdminLoginRequest, authenticator: AdminAuthenticator = Depends(get_admin_authenticator)
) -> dict[str, Any]:
    return authenticator.login(payload.password)


@router.post("/logout")
def logout(
    claims: dict[str, Any] = Depends(require_admin),
    authenticator: AdminAuthenticator = Depends(get_admin_authenticator),
) -> dict[str, bool]:
    authenticator.revoke(claims)
    return {"ok": True}


@protected.get("/sessions")
def list_sessions(service: WritingService = Depends(get_service)) -> dict[str, object]:
    return {"sessions": service.list_admin_sessions()}


@protected.post("/sessions/bulk-delete")
def bulk_delete(payload: BulkDeleteRequest, service: WritingService = Depends(get_service)) -> dict[str, int]:
    return service.delete_sessions(payload.session_keys)


@protected.get("/sessions/{session_key}")
def session_detail(session_key: str, service: WritingService = Depends(get_service)) -> dict[str, object]:
    return {"session": service.admin_detail(session_key)}


@protected.get("/sessions/{session_key}/chats/{channel}")
def session_transcript(
    session_key: str, channel: str, service: WritingService = Depends(get_service)
) -> dict[str, object]:
    return {"messages": service.admin_transcript(session_key, channel)}


@protected.post("/sessions/{session_key}/partner")
def assign_partner(
    session_key: str, payload: PartnerAssignRequest, service: WritingService = Depends(get_service)
) -> dict[str, object]:
    session = service.assign_partner(
        session_key,
        partner_session_key=payload.partner_session_key,
        partner_id=payload.partner_id,
        partner_name=payload.partner_name,
    )
    return {"session": session}


@protected.delete("/sessions/{session_key}/partner")
def clear_partner(session_key: str, service: WritingService = Depends(get_service)) -> dict[str, object]:
    return {"session": service.clear_partner(session_key)}


@protected.get("/roster")
def get_roster(service: WritingService = Depends(get_service)) -> dict[str, Any]:
    return service.roster.get()


@protected.post("/roster")
def replace_roster(payload: RosterPayload, service: WritingService = Depends(get_service)) -> dict[str, Any]:
    return service.roster.replace(payload.model_dump())


router.include_router(protected)
