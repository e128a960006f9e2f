"""Datenmodelle für Teilnehmende und Rollen-Kurs-Zuordnungen (Pydantic v2)."""

from typing import Optional

from pydantic import BaseModel, field_validator


class Learner(BaseModel):
    """Eine teilnehmende Person im Projekt."""

    id: str
    name: str
    role: Optional[str] = None               # Projektrolle, z.B. "Operator"
    training_location: Optional[str] = None  # Heimat-Standort
    email: Optional[str] = None
    project_id: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_str(cls, v) -> str:
        return str(v)


class RoleCourseMapping(BaseModel):
    """Eine Rolle verlangt einen bestimmten Kurs."""

    role: str
    course_id: str
    project_id: Optional[str] = None


def mapped_roles(mappings: list[RoleCourseMapping]) -> list[str]:
    """Alle Rollen mit mindestens einer Kurszuordnung (Reihenfolge stabil)."""
    return list(dict.fromkeys(m.role for m in mappings))


def required_courses_for_role(mappings: list[RoleCourseMapping], role: Optional[str],
                              course_ids: list[str]) -> list[str]:
    """Kurse des Zeitplans, die die Rolle verlangt (in Zeitplan-Reihenfolge)."""
    if not role:
        return []
    mapped = {m.course_id for m in mappings if m.role == role}
    return [c for c in course_ids if c in mapped]
