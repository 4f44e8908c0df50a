from __future__ import annotations

from fastapi import Request

from writingresearch.service import WritingService


def get_service(request: Request) -> WritingService:
    return request.app.state.service
