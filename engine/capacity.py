"""Kapazitäts-Tracker für Gruppen und Kursgruppen.

Belegung = Anzahl unterschiedlicher Personen, nicht Zuweisungszeilen. Ein
Tracker lebt genau eine Batch-Operation lang: optional einmal vorgeladen,
danach nach jeder Platzierung lokal fortgeschrieben.
"""

import logging
from typing import Optional

from engine.errors import StorageFailure
from engine.ports import AssignmentFilter, AssignmentStore
from models.assignment import Assignment

logger = logging.getLogger(__name__)


class CapacityTracker:
    """Belegung pro (Standort, Gruppe) und (Standort, Kurs, Gruppe)."""

    def __init__(self, store: AssignmentStore, schedule_id: str):
        self._store = store
        self._schedule_id = schedule_id
        # Standort → Gruppennummer → Personen
        self._groups: dict[str, dict[int, set[str]]] = {}
        # (Standort, Kurs) → Gruppennummer → Personen
        self._course_groups: dict[tuple[str, str], dict[int, set[str]]] = {}
        self.preloaded = False

    # ─── Vorladen ───

    async def preload(self, rows: Optional[list[Assignment]] = None) -> bool:
        """Lädt alle Zuweisungen des Zeitplans in einem Aufruf.

        Bereits abgefragte Zeilen können direkt übergeben werden. Bei
        Speicherfehlern bleibt der Tracker im Einzelabfrage-Modus.
        """
        if rows is None:
            try:
                rows = await self._store.query_assignments(self._schedule_id)
            except StorageFailure as e:
                logger.warning(f"Kapazitäts-Vorladen fehlgeschlagen, nutze Einzelabfragen: {e}")
                return False
        for a in rows:
            self._add_row(a)
        self.preloaded = True
        logger.info(
            f"Kapazität vorgeladen: {len(rows)} Zuweisungen, "
            f"{len(self._groups)} Standort(e)"
        )
        return True

    def _add_row(self, a: Assignment) -> None:
        gn = a.group_number
        if gn is None:
            return
        self.record(a.training_location, gn, a.learner_id, a.course_id)

    # ─── Abfragen ───

    async def _fetch(self, location: str, group_number: int,
                     course_id: Optional[str]) -> set[str]:
        rows = await self._store.query_assignments(
            self._schedule_id,
            AssignmentFilter(
                schedule_id=self._schedule_id,
                training_location=location,
                group_number=group_number,
                course_id=course_id,
            ),
        )
        return {a.learner_id for a in rows}

    async def occupants(self, location: str, group_number: int,
                        course_id: Optional[str] = None) -> set[str]:
        """Personen in der Gruppe (optional nur für einen Kurs)."""
        if course_id is None:
            local = self._groups.get(location, {}).get(group_number, set())
        else:
            local = self._course_groups.get((location, course_id), {}).get(group_number, set())
        if self.preloaded:
            return set(local)
        return await self._fetch(location, group_number, course_id) | local

    async def current_occupancy(self, location: str, group_number: int) -> int:
        return len(await self.occupants(location, group_number))

    async def course_occupancy(self, location: str, course_id: str, group_number: int) -> int:
        return len(await self.occupants(location, group_number, course_id))

    async def has_capacity(self, location: str, group_number: int, max_capacity: int,
                           learner_id: Optional[str] = None,
                           course_id: Optional[str] = None) -> bool:
        """True, wenn noch ein Platz frei ist.

        Eine Person, die bereits in der Gruppe zählt, belegt keinen weiteren Platz.
        """
        occ = await self.occupants(location, group_number, course_id)
        if learner_id is not None and learner_id in occ:
            return True
        return len(occ) < max_capacity

    # ─── Fortschreiben ───

    def record(self, location: str, group_number: int, learner_id: str,
               course_id: Optional[str] = None) -> None:
        """Vermerkt eine erfolgreiche Platzierung."""
        self._groups.setdefault(location, {}).setdefault(group_number, set()).add(learner_id)
        if course_id is not None:
            (self._course_groups
                .setdefault((location, course_id), {})
                .setdefault(group_number, set())
                .add(learner_id))
