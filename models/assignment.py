"""Datenmodell für eine Kurszuweisung (Pydantic v2)."""

import re
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

# Erkennt "Group 2", "Group2" und "-group-2" (letzter Treffer zählt)
_GROUP_ID_PATTERN = re.compile(r"group[\s_-]*(\d+)", re.IGNORECASE)


class AssignmentLevel(str, Enum):
    TRAINING_LOCATION = "training_location"
    COURSE = "course"
    GROUP = "group"
    SESSION = "session"


class AssignmentSource(str, Enum):
    MANUAL = "manual"
    AUTOMATIC = "automatic"


def group_number_from_identifier(identifier: Optional[str]) -> Optional[int]:
    """Gruppennummer aus einer Gruppenkennung beider Formate lesen.

    'North Training Centre-Operations-Group2' → 2
    'C101-group-3'                            → 3
    """
    if not identifier:
        return None
    found = _GROUP_ID_PATTERN.findall(identifier)
    return int(found[-1]) if found else None


def location_group_identifier(location: str, functional_area: str, group_number: int) -> str:
    """Kennung einer ganzen Gruppe: '{Standort}-{Bereich}-Group{N}'."""
    return f"{location}-{functional_area}-Group{group_number}"


def course_group_identifier(course_id: str, group_number: int) -> str:
    """Kennung einer Kursgruppe: '{Kurs}-group-{N}'."""
    return f"{course_id}-group-{group_number}"


class Assignment(BaseModel):
    """Ein persistierter Eintrag: Person X besucht Session Y."""

    id: Optional[str] = None
    learner_id: str
    schedule_id: str
    project_id: Optional[str] = None
    course_id: str
    session_identifier: str                  # Stabile Session-ID, nie die DB-Zeilen-ID
    session_id: Optional[str] = None         # Optionale DB-Referenz
    group_identifier: str
    training_location: str
    functional_area: str
    assignment_level: AssignmentLevel = AssignmentLevel.SESSION
    assignment_source: AssignmentSource = AssignmentSource.MANUAL
    assignment_type: str = "standard"
    assignment_status: str = "enrolled"
    completion_status: str = "pending"
    attendance_status: str = "not_attended"
    assigned_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    assigned_by: Optional[str] = None
    notes: Optional[str] = None

    @property
    def group_number(self) -> Optional[int]:
        return group_number_from_identifier(self.group_identifier)

    @property
    def key(self) -> tuple[str, str]:
        """Eindeutigkeits-Schlüssel (Person, Session)."""
        return (self.learner_id, self.session_identifier)
