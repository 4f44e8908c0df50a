"""Roster collaborator: participant lists and pre-declared pairings.

Rows arrive from spreadsheets and older admin clients in several shapes.
Everything is normalized here, once, into `RosterEntry` and
`PairingDeclaration`; the rest of the service only sees the canonical form.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping

from writingresearch.identity import normalize_group
from writingresearch.models import PairingDeclaration, RosterEntry
from writingresearch.storage import JsonStore

logger = logging.getLogger("writingresearch.roster")

ROSTER_KEY = "settings/roster.json"

_PRIMARY_SOURCE_FIELDS = ("primary", "a", "studentA", "source", "left")
_PARTNER_SOURCE_FIELDS = ("partner", "b", "studentB", "target", "right")
_PRIMARY_ID_FIELDS = ("primaryId", "idA", "student_id_a", "student_id", "leftId")
_PARTNER_ID_FIELDS = ("partnerId", "idB", "student_id_b", "partner_student_id", "rightId")


def _clean(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _first_mapping(entry: Mapping[str, Any], fields: Iterable[str]) -> Mapping[str, Any]:
    for name in fields:
        value = entry.get(name)
        if isinstance(value, Mapping):
            return value
    return {}


def _first_value(entry: Mapping[str, Any], fields: Iterable[str]) -> str:
    for name in fields:
        value = _clean(entry.get(name))
        if value:
            return value
    return ""


def normalize_students(entries: Any) -> list[RosterEntry]:
    if not isinstance(entries, list):
        return []
    seen: set[str] = set()
    normalized: list[RosterEntry] = []
    for entry in entries:
        if not isinstance(entry, Mapping):
            continue
        student_id = _clean(entry.get("id"))
        name = _clean(entry.get("name"))
        if not student_id and not name:
            continue
        dedupe_key = f"{student_id.lower()}|{name}"
        if dedupe_key in seen:
            continue
        seen.add(dedupe_key)
        normalized.append(RosterEntry(id=student_id, name=name))
    return normalized


def normalize_pairings(entries: Any, students: Iterable[RosterEntry] = ()) -> list[PairingDeclaration]:
    if not isinstance(entries, list):
        return []
    names_by_id = {student.id.lower(): student.name for student in students if student.id}
    seen: set[tuple[str, str]] = set()
    normalized: list[PairingDeclaration] = []
    skipped = 0
    for entry in entries:
        if not isinstance(entry, Mapping):
            skipped += 1
            continue
        primary_source = _first_mapping(entry, _PRIMARY_SOURCE_FIELDS)
        partner_source = _first_mapping(entry, _PARTNER_SOURCE_FIELDS)
        primary_id = _clean(primary_source.get("id")) or _first_value(entry, _PRIMARY_ID_FIELDS)
        partner_id = _clean(partner_source.get("id")) or _first_value(entry, _PARTNER_ID_FIELDS)
        if not primary_id or not partner_id:
            skipped += 1
            continue
        primary_key, partner_key = primary_id.lower(), partner_id.lower()
        if primary_key == partner_key:
            skipped += 1
            continue
        dedupe_key = tuple(sorted((primary_key, partner_key)))
        if dedupe_key in seen:
            continue
        seen.add(dedupe_key)
        normalized.append(
            PairingDeclaration(
                primary=RosterEntry(
                    id=primary_id,
                    name=_clean(primary_source.get("name")) or names_by_id.get(primary_key, ""),
                ),
                partner=RosterEntry(
                    id=partner_id,
                    name=_clean(partner_source.get("name")) or names_by_id.get(partner_key, ""),
                ),
                group=normalize_group(entry.get("group")),
            )
        )
    if skipped:
        logger.warning("roster_pairings_skipped", extra={"event": "roster_pairings_skipped", "skipped": skipped})
    return normalized


class RosterStore:
    """Read-mostly view over the roster document held in the JSON store."""

    def __init__(self, backend: JsonStore) -> None:
        self._backend = backend

    def _load(self) -> tuple[list[RosterEntry], list[PairingDeclaration]]:
        stored = self._backend.read(ROSTER_KEY)
        if not isinstance(stored, Mapping):
            return [], []
        students = normalize_students(stored.get("students"))
        return students, normalize_pairings(stored.get("pairings"), students)

    def students(self) -> list[RosterEntry]:
        return self._load()[0]

    def pairings(self) -> list[PairingDeclaration]:
        return self._load()[1]

    def get(self) -> dict[str, Any]:
        students, pairings = self._load()
        return {
            "students": [{"id": student.id, "name": student.name} for student in students],
            "pairings": [pairing.to_dict() for pairing in pairings],
        }

    def replace(self, payload: Any) -> dict[str, Any]:
        if isinstance(payload, list):
            raw_students, raw_pairings = payload, []
        elif isinstance(payload, Mapping):
            raw_students, raw_pairings = payload.get("students"), payload.get("pairings")
        else:
            raw_students, raw_pairings = [], []
        students = normalize_students(raw_students)
        pairings = normalize_pairings(raw_pairings, students)
        document = {
            "students": [{"id": student.id, "name": student.name} for student in students],
            "pairings": [pairing.to_dict() for pairing in pairings],
        }
        self._backend.write(ROSTER_KEY, document)
        logger.info(
            "roster_replaced",
            extra={"event": "roster_replaced", "students": len(students), "pairings": len(pairings)},
        )
        return document
