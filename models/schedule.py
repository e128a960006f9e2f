"""Zeitplan und vollständiger Schulungsdatensatz (Pydantic v2)."""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, Union

from pydantic import BaseModel, Field

from models.learner import Learner, RoleCourseMapping
from models.session import Session

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTENDEES = 25


class Schedule(BaseModel):
    """Ein Schulungs-Zeitplan mit Kriterien und Session-Katalog.

    Der Katalog ist entweder eine flache Liste oder verschachtelt:
    Funktionsbereich → Standort → Schulungsraum → [Sessions].
    """

    id: str
    project_id: Optional[str] = None
    name: str = ""
    # Kriterien als dict oder JSON-String, z.B. {"default": {"max_attendees": 20}}
    criteria: Union[dict[str, Any], str, None] = None
    catalog: Union[list[Any], dict[str, Any]] = Field(default_factory=list)

    def sessions(self) -> list[Session]:
        """Flacher, annotierter Session-Katalog."""
        from engine.catalog import flatten_catalog
        return flatten_catalog(self.catalog)

    def courses(self) -> dict[str, str]:
        """Alle Kurse des Zeitplans: course_id → Kursname (Katalog-Reihenfolge)."""
        result: dict[str, str] = {}
        for s in self.sessions():
            if s.course_id not in result:
                result[s.course_id] = s.course_name or s.course_id
        return result

    def parsed_criteria(self) -> dict[str, Any]:
        """Kriterien als dict; ungültiges JSON ergibt leere Kriterien."""
        raw = self.criteria
        if raw is None:
            return {}
        if isinstance(raw, str):
            try:
                raw = json.loads(raw)
            except json.JSONDecodeError:
                logger.warning(f"Zeitplan {self.id}: Kriterien sind kein gültiges JSON")
                return {}
        if not isinstance(raw, dict):
            return {}
        # Kriterien können unter "default" verschachtelt sein
        nested = raw.get("default")
        return nested if isinstance(nested, dict) else raw

    def max_attendees(self, default: int = DEFAULT_MAX_ATTENDEES) -> int:
        """Maximale Teilnehmerzahl pro Gruppe aus den Kriterien."""
        value = self.parsed_criteria().get("max_attendees")
        try:
            value = int(value)
        except (TypeError, ValueError):
            return default
        return value if value > 0 else default


class TrainingDataset(BaseModel):
    """Vollständiger Datensatz: Zeitplan, Teilnehmende, Rollen-Zuordnungen."""

    schedule: Schedule
    roster: list[Learner]
    role_mappings: list[RoleCourseMapping]
    created_at: Optional[str] = None

    def learner(self, learner_id: str) -> Optional[Learner]:
        return next((l for l in self.roster if l.id == learner_id), None)

    def summary(self) -> dict:
        """Kompakte Kennzahlen für die CLI-Ausgabe."""
        sessions = self.schedule.sessions()
        return {
            "Zeitplan": self.schedule.name or self.schedule.id,
            "Sessions": len(sessions),
            "Kurse": len(self.schedule.courses()),
            "Standorte": len({s.training_location or s.catalog_location for s in sessions}),
            "Teilnehmende": len(self.roster),
            "Rollen-Zuordnungen": len(self.role_mappings),
        }

    # ─── JSON-Persistenz ───

    def save_json(self, path: Path) -> None:
        """Speichert den Datensatz als JSON."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        stamped = self.model_copy(update={
            "created_at": self.created_at or datetime.now(timezone.utc).isoformat(),
        })
        path.write_text(stamped.model_dump_json(indent=2), encoding="utf-8")

    @classmethod
    def load_json(cls, path: Path) -> "TrainingDataset":
        """Lädt einen Datensatz aus JSON."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Datensatz nicht gefunden: {path}")
        return cls.model_validate_json(path.read_text(encoding="utf-8"))
