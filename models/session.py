"""Datenmodell für eine Schulungs-Session (Pydantic v2)."""

import re
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator

# "Group 2" im Titel → Gruppennummer 2
GROUP_TITLE_PATTERN = re.compile(r"Group\s+(\d+)")
# "Part 3" im Titel → Teil 3 eines mehrteiligen Kurses
PART_TITLE_PATTERN = re.compile(r"Part\s+(\d+)")


def parse_group_number(title: Optional[str]) -> Optional[int]:
    """Liest die Gruppennummer aus einem Titel wie 'Safety - Group 2'."""
    if not title:
        return None
    m = GROUP_TITLE_PATTERN.search(title)
    return int(m.group(1)) if m else None


def parse_part_number(title: Optional[str]) -> Optional[int]:
    """Liest die Teilnummer aus einem Titel wie 'Safety (Part 2)'."""
    if not title:
        return None
    m = PART_TITLE_PATTERN.search(title)
    return int(m.group(1)) if m else None


class Session(BaseModel):
    """Ein geplanter Termin eines Kurses an einem Standort.

    Gruppen- und Teilnummer werden einmalig beim Flachklopfen des Katalogs
    aus dem Titel abgeleitet und danach nur noch als Felder gelesen.
    """

    model_config = ConfigDict(extra="ignore")

    course_id: str
    course_name: str = ""
    title: str = ""
    session_number: int = 1
    training_location: Optional[str] = None
    functional_area: Optional[str] = None
    classroom: Optional[str] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None

    # Legacy-Felder älterer Kataloge
    event_id: Optional[str] = None       # Früherer Kalender-Schlüssel
    id: Optional[str] = None             # Datenbank-Zeilen-ID
    group_name: Optional[str] = None     # "Standort|Bereich" oder "Standort-..."

    # Herkunft im verschachtelten Katalog (Bereich → Standort → Raum)
    catalog_location: Optional[str] = None
    catalog_functional_area: Optional[str] = None
    catalog_classroom: Optional[str] = None

    # Abgeleitete Felder (gesetzt beim Flachklopfen)
    group_number: Optional[int] = None
    part_number: Optional[int] = None

    @field_validator("session_number", mode="before")
    @classmethod
    def _default_session_number(cls, v):
        # Fehlende oder 0-Werte zählen als erste Session
        return v or 1

    @property
    def effective_group_number(self) -> int:
        """Gruppennummer; Sessions ohne Angabe gehören zu Gruppe 1."""
        return self.group_number or 1

    @property
    def is_multi_part(self) -> bool:
        return self.part_number is not None

    def with_derived_fields(self, **annotations) -> "Session":
        """Kopie mit Herkunfts-Annotationen und abgeleiteter Gruppe/Teil."""
        update = dict(annotations)
        if self.group_number is None:
            update["group_number"] = parse_group_number(self.title)
        if self.part_number is None:
            update["part_number"] = parse_part_number(self.title)
        return self.model_copy(update=update)
