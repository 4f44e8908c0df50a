from __future__ import annotations

from dataclasses import asdict, dataclass, field
import time
from typing import Any

STAGE_PREWRITING = 1
STAGE_DRAFT = 2
STAGE_PEER = 3
STAGE_FINAL = 4

CONTENT_BLOCKS = ("prewriting", "draft", "notes", "final")


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class ContentBlock:
    text: str = ""
    timestamp: int = 0

    def write(self, text: str, timestamp: int) -> None:
        self.text = text
        self.timestamp = timestamp

    @classmethod
    def from_dict(cls, payload: Any) -> ContentBlock:
        if not isinstance(payload, dict):
            return cls()
        return cls(text=str(payload.get("text") or ""), timestamp=int(payload.get("timestamp") or 0))


@dataclass
class Session:
    session_key: str
    group: str
    participant_id: str
    participant_name: str
    room_id: str
    stage: int = STAGE_PREWRITING
    prewriting: ContentBlock = field(default_factory=ContentBlock)
    draft: ContentBlock = field(default_factory=ContentBlock)
    notes: ContentBlock = field(default_factory=ContentBlock)
    final: ContentBlock = field(default_factory=ContentBlock)
    partner_participant_id: str = ""
    partner_name: str = ""
    created_at: int = 0
    updated_at: int = 0

    @property
    def has_partner(self) -> bool:
        return bool(self.partner_participant_id)

    def set_partner(self, participant_id: str, name: str) -> None:
        self.partner_participant_id = participant_id
        self.partner_name = name

    def clear_partner(self) -> None:
        self.set_partner("", "")

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> Session:
        return cls(
            session_key=str(payload.get("session_key") or ""),
            group=str(payload.get("group") or ""),
            participant_id=str(payload.get("participant_id") or ""),
            participant_name=str(payload.get("participant_name") or ""),
            room_id=str(payload.get("room_id") or ""),
            stage=int(payload.get("stage") or STAGE_PREWRITING),
            prewriting=ContentBlock.from_dict(payload.get("prewriting")),
            draft=ContentBlock.from_dict(payload.get("draft")),
            notes=ContentBlock.from_dict(payload.get("notes")),
            final=ContentBlock.from_dict(payload.get("final")),
            partner_participant_id=str(payload.get("partner_participant_id") or ""),
            partner_name=str(payload.get("partner_name") or ""),
            created_at=int(payload.get("created_at") or 0),
            updated_at=int(payload.get("updated_at") or 0),
        )


@dataclass(frozen=True)
class RosterEntry:
    id: str
    name: str = ""


@dataclass(frozen=True)
class PairingDeclaration:
    primary: RosterEntry
    partner: RosterEntry
    group: str = ""

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "primary": {"id": self.primary.id, "name": self.primary.name},
            "partner": {"id": self.partner.id, "name": self.partner.name},
        }
        if self.group:
            payload["group"] = self.group
        return payload


@dataclass(frozen=True)
class PartnerHint:
    room_id: str
    partner_id: str
    partner_name: str
