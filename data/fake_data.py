"""Testdaten-Generator für die Schulungs-Zuweisung.

Erzeugt einen Zeitplan mit verschachteltem Katalog (Bereich → Standort → Raum),
ein Roster und Rollen-Kurs-Zuordnungen.

Absichtliche Engpässe:
  1. Letzter Standort: der letzten Gruppe fehlt der letzte Kurs
     → diese Gruppe ist für Ganze-Gruppe-Zuweisungen unvollständig
  2. Rolle "Auditor" verlangt nur einen Kurs außerhalb des Zeitplans
     → Personen landen in "ohne Kursbedarf im Zeitplan"
  3. Rolle "Planner" hat keine Zuordnung → nicht relevant
"""

import json
import random
from datetime import datetime, timedelta
from typing import Optional

from config.defaults import (
    COURSE_METADATA,
    FUNCTIONAL_AREAS,
    ROLE_REQUIREMENTS,
    TRAINING_LOCATIONS,
)
from models.learner import Learner, RoleCourseMapping
from models.schedule import Schedule, TrainingDataset

# ─── Namens-Listen ────────────────────────────────────────────────────────────

_FIRST_NAMES = [
    "Anna", "Birgit", "Christian", "Dieter", "Eva", "Franz", "Gabi", "Hans",
    "Iris", "Jürgen", "Kathrin", "Lena", "Markus", "Norbert", "Olga", "Peter",
    "Renate", "Stefan", "Tanja", "Ulrich", "Vera", "Werner", "Yusuf", "Zoe",
]

_LAST_NAMES = [
    "Müller", "Schmidt", "Schneider", "Fischer", "Weber", "Meyer", "Wagner",
    "Becker", "Schulz", "Hoffmann", "Koch", "Richter", "Klein", "Wolf",
    "Neumann", "Schwarz", "Zimmermann", "Braun", "Krüger", "Hartmann",
]

# Rollen-Gewichte für das Roster
_ROLE_WEIGHTS = {
    "Operator": 8,
    "Shift Lead": 2,
    "Technician": 5,
    "Quality Inspector": 2,
    "Auditor": 1,
    "Planner": 1,
}

# Erster Schulungstag
_FIRST_DAY = datetime(2026, 11, 2, 9, 0)


class FakeDataGenerator:
    """Generiert einen vollständigen Schulungsdatensatz."""

    def __init__(self, seed: Optional[int] = None, num_learners: int = 60,
                 groups_per_location: int = 3, max_attendees: int = 12,
                 project_id: str = "P-DEMO") -> None:
        self.rng = random.Random(seed)
        self.num_learners = num_learners
        self.groups_per_location = groups_per_location
        self.max_attendees = max_attendees
        self.project_id = project_id

    # ─── Katalog ──────────────────────────────────────────────────────────────

    def _session_row(self, course_id: str, location: str, area: str,
                     group: int, part: Optional[int], day_offset: int) -> dict:
        name = COURSE_METADATA[course_id][0]
        title = f"{name} - Group {group}"
        if part is not None:
            title += f" (Part {part})"
        start = _FIRST_DAY + timedelta(days=day_offset)
        return {
            "course_id": course_id,
            "course_name": name,
            "title": title,
            "session_number": group,
            "training_location": location,
            "functional_area": area,
            "start": start.isoformat(),
            "end": (start + timedelta(hours=4)).isoformat(),
        }

    def _generate_catalog(self) -> dict:
        """Bereich → Standort → Raum → [Session-Zeilen]."""
        catalog: dict = {area: {} for area in FUNCTIONAL_AREAS}
        courses = list(COURSE_METADATA)
        last_location = TRAINING_LOCATIONS[-1]
        for loc_idx, location in enumerate(TRAINING_LOCATIONS):
            for group in range(1, self.groups_per_location + 1):
                day = (group - 1) * 3
                for course_id in courses:
                    # Engpass 1: unvollständige letzte Gruppe am letzten Standort
                    if (location == last_location and group == self.groups_per_location
                            and course_id == courses[-1]):
                        continue
                    _, parts, area = COURSE_METADATA[course_id]
                    room = f"Raum {loc_idx + 1}.{courses.index(course_id) + 1}"
                    rows = catalog[area].setdefault(location, {}).setdefault(room, [])
                    if parts == 1:
                        rows.append(self._session_row(course_id, location, area,
                                                      group, None, day))
                    else:
                        for p in range(1, parts + 1):
                            rows.append(self._session_row(course_id, location, area,
                                                          group, p, day + p - 1))
        return catalog

    # ─── Roster & Rollen ──────────────────────────────────────────────────────

    def _generate_roster(self) -> list[Learner]:
        roles = list(_ROLE_WEIGHTS)
        weights = [_ROLE_WEIGHTS[r] for r in roles]
        learners = []
        for n in range(1, self.num_learners + 1):
            first = self.rng.choice(_FIRST_NAMES)
            last = self.rng.choice(_LAST_NAMES)
            learners.append(Learner(
                id=f"L{n:04d}",
                name=f"{first} {last}",
                role=self.rng.choices(roles, weights=weights)[0],
                training_location=self.rng.choice(TRAINING_LOCATIONS),
                email=f"{first.lower()}.{last.lower()}{n}@example.org",
                project_id=self.project_id,
            ))
        return learners

    def _generate_mappings(self) -> list[RoleCourseMapping]:
        mappings = [
            RoleCourseMapping(role=role, course_id=c, project_id=self.project_id)
            for role, course_ids in ROLE_REQUIREMENTS.items()
            for c in course_ids
        ]
        # Engpass 2: Kurs ohne Session im Zeitplan
        mappings.append(RoleCourseMapping(role="Auditor", course_id="AUD900",
                                          project_id=self.project_id))
        return mappings

    # ─── Gesamt ───────────────────────────────────────────────────────────────

    def generate(self) -> TrainingDataset:
        schedule = Schedule(
            id="S-DEMO-1",
            project_id=self.project_id,
            name="Demo-Schulungsplan",
            criteria=json.dumps({"default": {"max_attendees": self.max_attendees}}),
            catalog=self._generate_catalog(),
        )
        return TrainingDataset(
            schedule=schedule,
            roster=self._generate_roster(),
            role_mappings=self._generate_mappings(),
        )

    def print_summary(self, data: TrainingDataset) -> None:
        """Gibt eine Rich-Tabelle mit Übersicht der erzeugten Daten aus."""
        from rich.console import Console
        from rich.table import Table
        from rich import box

        console = Console()
        table = Table(title="Erzeugte Testdaten", box=box.ROUNDED)
        table.add_column("Kategorie", style="bold cyan")
        table.add_column("Anzahl", justify="right")

        for label, value in data.summary().items():
            table.add_row(label, str(value))
        table.add_row("Max. pro Gruppe", str(data.schedule.max_attendees()))

        console.print(table)
