"""Datenspeicher für Roster, Rollen-Zuordnungen und Zuweisungen.

InMemoryTrainingStore hält alles im Speicher; JsonTrainingStore schreibt die
Zuweisungen nach jeder Änderung in eine JSON-Datei.
"""

import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, ValidationError

from engine.errors import DuplicateAssignment, StorageFailure
from engine.ports import AssignmentFilter, RosterFilter
from models.assignment import Assignment
from models.learner import Learner, RoleCourseMapping

logger = logging.getLogger(__name__)


class AssignmentLedger(BaseModel):
    """Persistierte Zuweisungen (JSON)."""

    assignments: list[Assignment] = Field(default_factory=list)
    saved_at: Optional[str] = None


class InMemoryTrainingStore:
    """Speicher im Arbeitsspeicher; erfüllt die AssignmentStore-Schnittstelle."""

    def __init__(self, roster: Optional[list[Learner]] = None,
                 role_mappings: Optional[list[RoleCourseMapping]] = None,
                 assignments: Optional[list[Assignment]] = None):
        self.roster = list(roster or [])
        self.role_mappings = list(role_mappings or [])
        self.assignments: list[Assignment] = list(assignments or [])

    # ─── Zuweisungen ───

    async def query_assignments(self, schedule_id: str,
                                filters: Optional[AssignmentFilter] = None
                                ) -> list[Assignment]:
        flt = filters or AssignmentFilter(schedule_id=schedule_id)
        return [a.model_copy() for a in self.assignments if flt.matches(a)]

    async def insert_assignment(self, record: Assignment) -> Assignment:
        for a in self.assignments:
            if a.schedule_id == record.schedule_id and a.key == record.key:
                raise DuplicateAssignment(record.learner_id, record.session_identifier)
        stored = record.model_copy(update={"id": record.id or uuid.uuid4().hex})
        self.assignments.append(stored)
        try:
            self._persist("insert_assignment")
        except StorageFailure:
            self.assignments.pop()
            raise
        return stored.model_copy()

    async def delete_assignments(self, filters: AssignmentFilter) -> int:
        previous = self.assignments
        self.assignments = [a for a in previous if not filters.matches(a)]
        removed = len(previous) - len(self.assignments)
        if removed:
            try:
                self._persist("delete_assignments")
            except StorageFailure:
                self.assignments = previous
                raise
        return removed

    # ─── Roster & Rollen ───

    async def query_role_mappings(self, project_id: Optional[str]) -> list[RoleCourseMapping]:
        return [m for m in self.role_mappings
                if project_id is None or m.project_id in (None, project_id)]

    async def query_roster(self, project_id: Optional[str],
                           filters: Optional[RosterFilter] = None) -> list[Learner]:
        result = []
        for learner in self.roster:
            if project_id is not None and learner.project_id not in (None, project_id):
                continue
            if filters is not None and not filters.matches(learner):
                continue
            result.append(learner)
        return result

    def _persist(self, operation: str) -> None:
        """Im Speicher nichts zu tun."""


class JsonTrainingStore(InMemoryTrainingStore):
    """Wie InMemoryTrainingStore, Zuweisungen zusätzlich als JSON-Datei."""

    def __init__(self, path: Path, roster: Optional[list[Learner]] = None,
                 role_mappings: Optional[list[RoleCourseMapping]] = None):
        self.path = Path(path)
        super().__init__(roster, role_mappings, self._load())

    def _load(self) -> list[Assignment]:
        if not self.path.exists():
            return []
        try:
            ledger = AssignmentLedger.model_validate_json(
                self.path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as e:
            logger.error(f"Zuweisungsdatei nicht lesbar: {self.path}")
            raise StorageFailure(f"laden {self.path}", e) from e
        logger.info(f"{len(ledger.assignments)} Zuweisungen geladen: {self.path}")
        return ledger.assignments

    def _persist(self, operation: str) -> None:
        ledger = AssignmentLedger(
            assignments=self.assignments,
            saved_at=datetime.now(timezone.utc).isoformat(),
        )
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(ledger.model_dump_json(indent=2), encoding="utf-8")
        except OSError as e:
            logger.error(f"Zuweisungen konnten nicht gespeichert werden: {self.path}")
            raise StorageFailure(operation, e) from e
