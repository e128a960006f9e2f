"""Identitäts-Auflösung: stabile Session-IDs und Ziel-Referenzen.

Eine stabile Session-ID hängt nur von Kurs, Session-Nummer, Standort,
Funktionsbereich und Teilnummer ab, niemals von Uhrzeiten. Ziel-Referenzen
(aus Drag & Drop oder Auto-Zuweisung) werden hier wieder auf eine konkrete
Session plus Zuweisungs-Metadaten abgebildet.
"""

import logging
import re
from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from engine.errors import TargetNotFound
from models.assignment import course_group_identifier
from models.session import Session, parse_part_number

logger = logging.getLogger(__name__)

UNKNOWN_LOCATION = "Unknown Location"
DEFAULT_FUNCTIONAL_AREA = "General"

# Platzhalter in der stabilen ID, wenn Standort/Bereich fehlen
_ID_LOCATION_FALLBACK = "default"
_ID_AREA_FALLBACK = "general"

# Angehängter Standort-Suffix: "NorthTrainingCentre"
_LOCATION_SUFFIX_PATTERN = re.compile(r"[A-Z][a-zA-Z]+")
_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z])(?=[A-Z])")
_WHITESPACE = re.compile(r"\s+")
# Hinweise, dass ein Teil eines "A|B"-Schlüssels der Standort ist
_LOCATION_HINTS = ("Training", "Centre", "Center")


class AssignmentData(BaseModel):
    """Aus einer aufgelösten Session abgeleitete Zuweisungs-Metadaten."""

    course_id: str
    course_name: str
    group_number: int
    group_identifier: str
    session_identifier: str
    training_location: str
    functional_area: str


class ResolvedTarget(BaseModel):
    assignment_data: AssignmentData
    session: Session


# ─── Normalisierung ───────────────────────────────────────────────────────────

def normalize_token(value: str) -> str:
    """Kleinschreibung, Leerraum → Bindestrich ('North Site' → 'north-site')."""
    return _WHITESPACE.sub("-", value.strip().lower())


def compact_location(location: str) -> str:
    """Standort ohne Leerraum ('North Training Centre' → 'NorthTrainingCentre')."""
    return _WHITESPACE.sub("", location)


def _split_compound(group_name: str) -> tuple[Optional[str], Optional[str]]:
    """Zerlegt Legacy-Schlüssel 'Standort|Bereich' bzw. 'Standort-...'."""
    if "|" in group_name:
        parts = [p.strip() for p in group_name.split("|")]
        first = parts[0] or None
        second = parts[1] if len(parts) > 1 and parts[1] else None
        # Reihenfolge ist nicht garantiert; Standort erkennt man am Namen
        if (second and any(h in second for h in _LOCATION_HINTS)
                and not (first and any(h in first for h in _LOCATION_HINTS))):
            first, second = second, first
        return first, second
    if "-" in group_name:
        return group_name.split("-")[0].strip() or None, None
    return group_name.strip() or None, None


def raw_location_and_area(session: Session) -> tuple[Optional[str], Optional[str]]:
    """Standort und Bereich einer Session in fester Priorität, ohne Defaults.

    1. direkte Felder der Session
    2. Herkunft im verschachtelten Katalog
    3. Legacy-Schlüssel group_name ("Standort|Bereich", "Standort-...")
    """
    location = session.training_location or session.catalog_location
    area = session.functional_area or session.catalog_functional_area
    if (not location or not area) and session.group_name:
        legacy_location, legacy_area = _split_compound(session.group_name)
        location = location or legacy_location
        area = area or legacy_area
    return location, area


def resolve_location(session: Session,
                     unknown_location: str = UNKNOWN_LOCATION,
                     default_area: str = DEFAULT_FUNCTIONAL_AREA) -> tuple[str, str]:
    """Standort und Bereich einer Session, mit Defaults aufgefüllt."""
    location, area = raw_location_and_area(session)
    return location or unknown_location, area or default_area


# ─── Stabile IDs ──────────────────────────────────────────────────────────────

def stable_session_id(session: Session) -> str:
    """Deterministische ID: '{kurs}-session{n}-{standort}-{bereich}[-part{p}]'."""
    location, area = raw_location_and_area(session)
    loc_token = normalize_token(location) if location else _ID_LOCATION_FALLBACK
    area_token = normalize_token(area) if area else _ID_AREA_FALLBACK
    part = session.part_number
    if part is None:
        part = parse_part_number(session.title)
    sid = f"{session.course_id}-session{session.session_number}-{loc_token}-{area_token}"
    if part is not None:
        sid += f"-part{part}"
    return sid


def _ms(ts: Optional[datetime]) -> int:
    return int(ts.timestamp() * 1000) if ts else 0


def legacy_session_id(session: Session) -> str:
    """Rückwärtskompatible ID älterer gespeicherter Referenzen."""
    if session.event_id:
        return session.event_id
    if session.id:
        return session.id
    return f"{session.title or 'untitled'}-{_ms(session.start)}-{_ms(session.end)}"


def location_qualified_ref(session: Session) -> str:
    """Ziel-Referenz mit angehängtem Standort, wie sie die Auto-Zuweisung erzeugt."""
    sid = stable_session_id(session)
    location, _ = raw_location_and_area(session)
    if not location:
        return sid
    suffix = compact_location(location)
    if not _is_location_suffix(suffix):
        return sid
    return f"{sid}-{suffix}"


# ─── Ziel-Auflösung ───────────────────────────────────────────────────────────

def _is_location_suffix(segment: str) -> bool:
    return (bool(_LOCATION_SUFFIX_PATTERN.fullmatch(segment))
            and len(segment) > 3 and segment != "Unknown")


def split_location_suffix(ref: str) -> tuple[str, Optional[str]]:
    """Trennt einen angehängten Standort ab: ('A-session1-...', 'NorthTrainingCentre')."""
    if "-" not in ref:
        return ref, None
    base, last = ref.rsplit("-", 1)
    if base and _is_location_suffix(last):
        return base, last
    return ref, None


def spaced_location(suffix: str) -> str:
    """'NorthTrainingCentre' → 'North Training Centre'."""
    return _CAMEL_BOUNDARY.sub(" ", suffix)


def _matching_sessions(sessions: list[Session], ref: str) -> list[Session]:
    return [s for s in sessions
            if stable_session_id(s) == ref or legacy_session_id(s) == ref]


def resolve_target(sessions: list[Session], ref: str,
                   learner_location: Optional[str] = None,
                   unknown_location: str = UNKNOWN_LOCATION,
                   default_area: str = DEFAULT_FUNCTIONAL_AREA) -> ResolvedTarget:
    """Bildet eine Ziel-Referenz auf Session + Zuweisungs-Metadaten ab.

    Ein angehängter Standort-Suffix ist maßgeblich; sonst entscheidet der
    Heimat-Standort der Person, sonst der erste Treffer.

    Raises:
        TargetNotFound: keine (passende) Session zur Referenz.
    """
    base, suffix = split_location_suffix(ref)
    candidates: list[Session] = []
    authoritative: Optional[str] = None
    if suffix is not None:
        candidates = _matching_sessions(sessions, base)
        if candidates:
            authoritative = suffix
        else:
            logger.debug(f"Suffix '{suffix}' ergibt keinen Treffer – prüfe volle Referenz")
    if not candidates:
        candidates = _matching_sessions(sessions, ref)
    if not candidates:
        raise TargetNotFound(ref, [stable_session_id(s) for s in sessions])

    if authoritative is not None:
        chosen = next(
            (s for s in candidates
             if compact_location(resolve_location(s, unknown_location)[0]) == authoritative),
            None,
        )
        if chosen is None:
            logger.warning(
                f"Referenz '{ref}': kein Treffer am Standort '{spaced_location(authoritative)}'"
            )
            raise TargetNotFound(ref, [stable_session_id(s) for s in candidates])
    elif learner_location and len(candidates) > 1:
        chosen = next(
            (s for s in candidates
             if resolve_location(s, unknown_location)[0] == learner_location),
            candidates[0],
        )
    else:
        chosen = candidates[0]

    location, area = resolve_location(chosen, unknown_location, default_area)
    group_number = chosen.effective_group_number
    data = AssignmentData(
        course_id=chosen.course_id,
        course_name=chosen.course_name or chosen.course_id,
        group_number=group_number,
        group_identifier=course_group_identifier(chosen.course_id, group_number),
        session_identifier=stable_session_id(chosen),
        training_location=location,
        functional_area=area,
    )
    return ResolvedTarget(assignment_data=data, session=chosen)
