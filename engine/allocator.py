"""Zuweisungs-Allokator: Platzierung einzelner und mehrerer Teilnehmender.

Alle Schreibzugriffe laufen über die AssignmentStore-Schnittstelle. Vor jedem
Schreiben werden Standort-Konsistenz und Autorisierung geprüft; doppelte
(Person, Session)-Paare gelten als bereits erfüllt.
"""

import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

from pydantic import BaseModel, Field

from config.schema import AllocationConfig
from engine.capacity import CapacityTracker
from engine.catalog import SessionsByLocation, organize_by_location
from engine.categorizer import LearnerCategories, LearnerStatus, categorize
from engine.errors import (
    AssignmentEngineError,
    AuthorizationDenied,
    DuplicateAssignment,
    LearnerNotFound,
    LocationMismatch,
    NoCapacity,
)
from engine.identity import ResolvedTarget, resolve_location, resolve_target, stable_session_id
from engine.ports import AssignmentFilter, AssignmentStore, Authorizer, RosterFilter
from models.assignment import (
    Assignment,
    AssignmentLevel,
    AssignmentSource,
    course_group_identifier,
    location_group_identifier,
)
from models.learner import Learner, RoleCourseMapping, mapped_roles
from models.schedule import Schedule
from models.session import Session

logger = logging.getLogger(__name__)


# ─── Ergebnis-Modelle ─────────────────────────────────────────────────────────

class PlacementResult(BaseModel):
    """Ergebnis einer Platzierung einer Person."""

    learner_id: str
    level: AssignmentLevel
    group_number: int
    created: list[Assignment] = Field(default_factory=list)
    skipped_duplicates: int = 0
    removed: int = 0     # Bei Umbuchung gelöschte Zeilen desselben Kurses


class FailedPlacement(BaseModel):
    learner_id: str
    reason: str
    error: str                        # Name der Fehlerklasse
    course_id: Optional[str] = None


class BulkResult(BaseModel):
    successful: list[str] = Field(default_factory=list)
    failed: list[FailedPlacement] = Field(default_factory=list)
    placements: list[PlacementResult] = Field(default_factory=list)


@dataclass
class PlacementBatch:
    """Zustand einer Batch-Operation: Kapazität, vorhandene Paare, Einteilung."""

    tracker: CapacityTracker
    rows: list[Assignment]
    categories: LearnerCategories
    source: AssignmentSource = AssignmentSource.MANUAL
    existing_keys: set[tuple[str, str]] = field(default_factory=set)
    # Läuft erst im ersten Schreibvorgang, nachdem eine Gruppe mit Platz feststeht
    pending_removal: Optional[Callable[[], Awaitable[int]]] = None
    removed: int = 0


# ─── Allokator ────────────────────────────────────────────────────────────────

class AssignmentAllocator:
    """Platziert Teilnehmende eines Zeitplans in Gruppen und Sessions."""

    def __init__(self, store: AssignmentStore, authorizer: Authorizer,
                 schedule: Schedule, roster: list[Learner],
                 mappings: list[RoleCourseMapping],
                 config: Optional[AllocationConfig] = None,
                 assigned_by: Optional[str] = None):
        self.store = store
        self.authorizer = authorizer
        self.schedule = schedule
        self.config = config or AllocationConfig()
        self.assigned_by = assigned_by
        self.roster = list(roster)
        self.mappings = list(mappings)
        self._learners = {l.id: l for l in self.roster}
        self.sessions = schedule.sessions()
        self.sessions_by_location = organize_by_location(
            self.sessions, self.config.unknown_location)
        self.course_names = schedule.courses()
        self.max_capacity = schedule.max_attendees(self.config.default_max_attendees)

    @classmethod
    async def from_store(cls, store: AssignmentStore, authorizer: Authorizer,
                         schedule: Schedule,
                         config: Optional[AllocationConfig] = None,
                         assigned_by: Optional[str] = None) -> "AssignmentAllocator":
        """Lädt Rollen-Zuordnungen und das vorgefilterte Roster aus dem Speicher."""
        mappings = await store.query_role_mappings(schedule.project_id)
        roles = mapped_roles(mappings)
        roster = await store.query_roster(schedule.project_id, RosterFilter(roles=roles))
        logger.info(
            f"Allokator für '{schedule.id}': {len(roster)} Teilnehmende, "
            f"{len(roles)} Rollen mit Kurszuordnung"
        )
        return cls(store, authorizer, schedule, roster, mappings, config, assigned_by)

    # ─── Hilfen ───

    def learner(self, learner_id: str) -> Learner:
        learner = self._learners.get(str(learner_id))
        if learner is None:
            raise LearnerNotFound(str(learner_id))
        return learner

    def categorize(self, rows: list[Assignment]) -> LearnerCategories:
        return categorize(self.roster, self.mappings, rows,
                          list(self.course_names), self.course_names)

    async def open_batch(self, source: AssignmentSource = AssignmentSource.MANUAL,
                         exclude: Optional[set[tuple[str, str]]] = None) -> PlacementBatch:
        """Frischer Batch-Zustand aus einer einzigen Abfrage aller Zuweisungen.

        Die Einteilung braucht alle Zeilen des Zeitplans, die Abfrage läuft daher
        immer; ein StorageFailure bricht die Operation ab. Mit preload_capacity
        zählt der Tracker aus denselben Zeilen, sonst fragt er je Gruppe nach.
        Zeilen, deren Schlüssel in exclude steht, gelten als schon entfernt.
        """
        rows = await self.store.query_assignments(self.schedule.id)
        if exclude:
            rows = [a for a in rows if a.key not in exclude]
        tracker = CapacityTracker(self.store, self.schedule.id)
        if self.config.preload_capacity:
            await tracker.preload(rows)
        return PlacementBatch(
            tracker=tracker,
            rows=rows,
            categories=self.categorize(rows),
            source=source,
            existing_keys={a.key for a in rows},
        )

    def _location_of(self, session: Session) -> tuple[str, str]:
        return resolve_location(session, self.config.unknown_location,
                                self.config.default_functional_area)

    def _check_location(self, learner: Learner, location: str) -> None:
        if not learner.training_location or learner.training_location != location:
            raise LocationMismatch(learner.id, learner.training_location, location)

    async def _authorize_assign(self, learner: Learner, session: Session) -> None:
        decision = await self.authorizer.can_assign(learner, session)
        if not decision.allowed:
            raise AuthorizationDenied(decision.reason or "Zuweisung nicht erlaubt")

    async def _authorize_remove(self, learner: Optional[Learner],
                                session: Optional[Session]) -> None:
        decision = await self.authorizer.can_remove(learner, session)
        if not decision.allowed:
            raise AuthorizationDenied(decision.reason or "Entfernen nicht erlaubt")

    def _build_record(self, learner: Learner, session: Session, group_identifier: str,
                      level: AssignmentLevel, source: AssignmentSource) -> Assignment:
        location, area = self._location_of(session)
        return Assignment(
            learner_id=learner.id,
            schedule_id=self.schedule.id,
            project_id=self.schedule.project_id,
            course_id=session.course_id,
            session_identifier=stable_session_id(session),
            session_id=session.id,
            group_identifier=group_identifier,
            training_location=location,
            functional_area=area,
            assignment_level=level,
            assignment_source=source,
            assigned_by=self.assigned_by,
        )

    async def _insert(self, record: Assignment, batch: PlacementBatch) -> bool:
        """Schreibt einen Eintrag; False, wenn das Paar schon existiert."""
        if record.key in batch.existing_keys:
            logger.debug(f"Zuweisung bereits vorhanden: {record.key}")
            return False
        try:
            stored = await self.store.insert_assignment(record)
        except DuplicateAssignment:
            logger.debug(f"Speicher meldet Duplikat: {record.key}")
            batch.existing_keys.add(record.key)
            return False
        batch.existing_keys.add(record.key)
        batch.rows.append(stored)
        return True

    async def _write(self, learner: Learner, group_number: int, level: AssignmentLevel,
                     items: list[tuple[Session, str]],
                     batch: PlacementBatch) -> PlacementResult:
        """Autorisiert alle Sessions und schreibt danach die Einträge."""
        for session, _ in items:
            await self._authorize_assign(learner, session)
        if batch.pending_removal is not None:
            removal, batch.pending_removal = batch.pending_removal, None
            batch.removed += await removal()
        result = PlacementResult(learner_id=learner.id, level=level, group_number=group_number)
        for session, group_identifier in items:
            record = self._build_record(learner, session, group_identifier, level, batch.source)
            if await self._insert(record, batch):
                result.created.append(record)
            else:
                result.skipped_duplicates += 1
            batch.tracker.record(record.training_location, group_number,
                                 learner.id, record.course_id)
        return result

    def _courses_at(self, location: str, sessions_by_location: SessionsByLocation,
                    functional_area: Optional[str]) -> dict[str, dict[int, list[Session]]]:
        """Kurse am Standort, optional auf einen Funktionsbereich eingeschränkt."""
        courses = sessions_by_location.get(location, {})
        if functional_area is None:
            return courses
        filtered: dict[str, dict[int, list[Session]]] = {}
        for course_id, groups in courses.items():
            for g, sessions in groups.items():
                kept = [s for s in sessions if self._location_of(s)[1] == functional_area]
                if kept:
                    filtered.setdefault(course_id, {})[g] = kept
        return filtered

    # ─── Ganze Gruppe ───

    async def assign_whole_group(self, learner: Learner,
                                 sessions_by_location: Optional[SessionsByLocation] = None,
                                 max_capacity: Optional[int] = None,
                                 batch: Optional[PlacementBatch] = None,
                                 group_number: Optional[int] = None,
                                 functional_area: Optional[str] = None) -> PlacementResult:
        """Platziert die Person in der niedrigsten vollständigen Gruppe mit Platz.

        Vollständig heißt: die Gruppe hat für jeden Kurs am Standort eine Session.

        Raises:
            LocationMismatch: Person ohne Heimat-Standort.
            NoCapacity: keine Gruppe erfüllt beide Bedingungen.
        """
        sbl = sessions_by_location if sessions_by_location is not None else self.sessions_by_location
        max_cap = max_capacity if max_capacity is not None else self.max_capacity
        batch = batch or await self.open_batch()
        location = learner.training_location
        if not location:
            raise LocationMismatch(learner.id, None, None)

        courses = self._courses_at(location, sbl, functional_area)
        if not courses:
            raise NoCapacity(f"Keine Sessions am Standort '{location}'")

        candidates = sorted({g for groups in courses.values() for g in groups})
        if group_number is not None:
            candidates = [g for g in candidates if g == group_number]

        for g in candidates:
            if not all(groups.get(g) for groups in courses.values()):
                logger.debug(f"Gruppe {g} an '{location}' nicht vollständig")
                continue
            if not await batch.tracker.has_capacity(location, g, max_cap, learner.id):
                logger.debug(f"Gruppe {g} an '{location}' voll")
                continue
            items: list[tuple[Session, str]] = []
            for groups in courses.values():
                sessions = groups[g]
                if not self.config.whole_group_all_parts:
                    sessions = sessions[:1]
                for s in sessions:
                    _, area = self._location_of(s)
                    items.append((s, location_group_identifier(location, area, g)))
            result = await self._write(learner, g, AssignmentLevel.GROUP, items, batch)
            logger.info(f"{learner.name} → Gruppe {g} an '{location}' "
                        f"({len(result.created)} neu)")
            return result

        raise NoCapacity(
            f"Keine vollständige Gruppe mit freien Plätzen am Standort '{location}'"
        )

    # ─── Einzelner Kurs ───

    async def assign_single_course(self, learner: Learner, course_id: str,
                                   sessions_by_location: Optional[SessionsByLocation] = None,
                                   max_capacity: Optional[int] = None,
                                   batch: Optional[PlacementBatch] = None,
                                   group_number: Optional[int] = None,
                                   functional_area: Optional[str] = None) -> PlacementResult:
        """Platziert die Person in allen Sessions/Teilen eines Kurses einer Gruppe.

        Raises:
            LocationMismatch: Person ohne Heimat-Standort.
            NoCapacity: Kurs nicht angeboten oder alle Gruppen voll.
        """
        sbl = sessions_by_location if sessions_by_location is not None else self.sessions_by_location
        max_cap = max_capacity if max_capacity is not None else self.max_capacity
        batch = batch or await self.open_batch()
        location = learner.training_location
        if not location:
            raise LocationMismatch(learner.id, None, None)

        groups = self._courses_at(location, sbl, functional_area).get(course_id)
        if not groups:
            raise NoCapacity(f"Kurs '{course_id}' wird am Standort '{location}' nicht angeboten")

        candidates = sorted(groups)
        if group_number is not None:
            candidates = [g for g in candidates if g == group_number]

        for g in candidates:
            sessions = groups[g]
            if not sessions:
                continue
            if not await batch.tracker.has_capacity(location, g, max_cap,
                                                    learner.id, course_id):
                logger.debug(f"Kurs '{course_id}' Gruppe {g} an '{location}' voll")
                continue
            identifier = course_group_identifier(course_id, g)
            items = [(s, identifier) for s in sessions]
            result = await self._write(learner, g, AssignmentLevel.COURSE, items, batch)
            logger.info(f"{learner.name} → Kurs '{course_id}' Gruppe {g} "
                        f"({len(result.created)} neu)")
            return result

        raise NoCapacity(
            f"Kurs '{course_id}' hat am Standort '{location}' keine Gruppe mit freien Plätzen"
        )

    # ─── Einzelne Session ───

    async def _assign_session(self, learner: Learner, target: ResolvedTarget,
                              batch: PlacementBatch) -> PlacementResult:
        data = target.assignment_data
        if not await batch.tracker.has_capacity(data.training_location, data.group_number,
                                                self.max_capacity, learner.id, data.course_id):
            raise NoCapacity(
                f"Kurs '{data.course_id}' Gruppe {data.group_number} ist voll"
            )
        return await self._write(
            learner, data.group_number, AssignmentLevel.SESSION,
            [(target.session, data.group_identifier)], batch,
        )

    async def _route(self, learner: Learner, target: ResolvedTarget,
                     batch: PlacementBatch) -> PlacementResult:
        """Wählt je nach Einteilung Ganze-Gruppe, Einzelkurs oder Einzelsession."""
        data = target.assignment_data
        status = batch.categories.status_of(learner.id)
        if status in (LearnerStatus.NEEDS_ALL, LearnerStatus.UNASSIGNED_ELIGIBLE):
            return await self.assign_whole_group(
                learner, batch=batch, group_number=data.group_number,
                functional_area=data.functional_area)
        if batch.categories.needs_course(learner.id, data.course_id):
            return await self.assign_single_course(
                learner, data.course_id, batch=batch, group_number=data.group_number,
                functional_area=data.functional_area)
        return await self._assign_session(learner, target, batch)

    @staticmethod
    def _same_course_conflicts(learner: Learner, target: ResolvedTarget,
                               rows: list[Assignment]) -> list[Assignment]:
        """Einträge desselben Kurses, mit denen die Person in einer anderen Gruppe sitzt."""
        data = target.assignment_data
        return [
            a for a in rows
            if a.learner_id == learner.id and a.course_id == data.course_id
            and a.group_number != data.group_number
        ]

    async def _delete_same_course(self, learner: Learner, course_id: str,
                                  session_identifiers: list[str]) -> int:
        removed = 0
        for identifier in session_identifiers:
            removed += await self.store.delete_assignments(AssignmentFilter(
                schedule_id=self.schedule.id,
                learner_id=learner.id,
                course_id=course_id,
                session_identifier=identifier,
            ))
        logger.info(f"Umbuchung {learner.name}: {removed} Einträge von '{course_id}' entfernt")
        return removed

    # ─── Öffentliche Operationen ───

    async def assign_single(self, learner_id: str, target_ref: str) -> PlacementResult:
        """Weist eine Person einem Ziel (Drop-Referenz) zu.

        Raises:
            LearnerNotFound, TargetNotFound, LocationMismatch,
            AuthorizationDenied, NoCapacity, StorageFailure
        """
        learner = self.learner(learner_id)
        target = resolve_target(self.sessions, target_ref, learner.training_location,
                                self.config.unknown_location,
                                self.config.default_functional_area)
        self._check_location(learner, target.assignment_data.training_location)
        await self._authorize_assign(learner, target.session)

        batch = await self.open_batch()
        conflicting = self._same_course_conflicts(learner, target, batch.rows)
        if conflicting:
            # Umbuchung: Platz wird ohne die alten Einträge gesucht, gelöscht
            # wird erst, wenn die neue Gruppe feststeht
            await self._authorize_remove(learner, target.session)
            batch = await self.open_batch(exclude={a.key for a in conflicting})
            course_id = target.assignment_data.course_id
            identifiers = list(dict.fromkeys(a.session_identifier for a in conflicting))
            batch.pending_removal = lambda: self._delete_same_course(
                learner, course_id, identifiers)
        result = await self._route(learner, target, batch)
        result.removed = batch.removed
        return result

    async def assign_bulk(self, learner_ids: list[str], target_ref: str) -> BulkResult:
        """Weist mehrere Personen demselben Ziel zu, nacheinander.

        Einzelfehler landen in failed und brechen den Batch nicht ab.
        """
        target = resolve_target(self.sessions, target_ref,
                                unknown_location=self.config.unknown_location,
                                default_area=self.config.default_functional_area)
        batch = await self.open_batch()
        result = BulkResult()

        for lid in self._bulk_order(list(dict.fromkeys(learner_ids)), batch.categories):
            try:
                learner = self.learner(lid)
                self._check_location(learner, target.assignment_data.training_location)
                await self._authorize_assign(learner, target.session)
                placement = await self._route(learner, target, batch)
            except AssignmentEngineError as e:
                logger.warning(f"Bulk-Zuweisung {lid} fehlgeschlagen: {e.reason}")
                result.failed.append(FailedPlacement(
                    learner_id=lid, reason=e.reason, error=type(e).__name__,
                    course_id=target.assignment_data.course_id,
                ))
                continue
            result.successful.append(lid)
            result.placements.append(placement)

        logger.info(f"Bulk-Zuweisung: {len(result.successful)} erfolgreich, "
                    f"{len(result.failed)} fehlgeschlagen")
        return result

    @staticmethod
    def _bulk_order(learner_ids: list[str], categories: LearnerCategories) -> list[str]:
        """Ganze-Gruppe zuerst, dann Einzelkurse, dann Einzelsessions."""
        rank = {
            LearnerStatus.NEEDS_ALL: 0,
            LearnerStatus.UNASSIGNED_ELIGIBLE: 0,
            LearnerStatus.NEEDS_SOME: 1,
            LearnerStatus.PARTIALLY_ASSIGNED: 1,
        }
        return sorted(learner_ids, key=lambda lid: rank.get(categories.status_of(lid), 2))

    def _representative_session(self, location: str, course_id: Optional[str] = None,
                                group_number: Optional[int] = None) -> Session:
        """Eine Session des Löschbereichs für die Autorisierungsprüfung."""
        for course, groups in self.sessions_by_location.get(location, {}).items():
            if course_id is not None and course != course_id:
                continue
            for g, sessions in groups.items():
                if group_number is not None and g != group_number:
                    continue
                if sessions:
                    return sessions[0]
        # Katalog kennt den Bereich nicht mehr (z.B. gelöschte Session)
        return Session(course_id=course_id or "", training_location=location,
                       group_number=group_number)

    async def remove_from_group(self, learner_id: str, location: str,
                                group_number: int) -> int:
        """Löscht alle Einträge der Person in einer Gruppe an einem Standort."""
        learner = self._learners.get(str(learner_id))
        await self._authorize_remove(
            learner, self._representative_session(location, group_number=group_number))
        removed = await self.store.delete_assignments(AssignmentFilter(
            schedule_id=self.schedule.id,
            learner_id=str(learner_id),
            training_location=location,
            group_number=group_number,
        ))
        logger.info(f"{learner_id}: {removed} Einträge aus Gruppe {group_number} entfernt")
        return removed

    async def remove_from_course(self, learner_id: str, course_id: str,
                                 location: str) -> int:
        """Löscht alle Einträge der Person für einen Kurs an einem Standort."""
        learner = self._learners.get(str(learner_id))
        await self._authorize_remove(
            learner, self._representative_session(location, course_id=course_id))
        removed = await self.store.delete_assignments(AssignmentFilter(
            schedule_id=self.schedule.id,
            learner_id=str(learner_id),
            course_id=course_id,
            training_location=location,
        ))
        logger.info(f"{learner_id}: {removed} Einträge aus Kurs '{course_id}' entfernt")
        return removed

    async def remove_all(self) -> int:
        """Löscht alle Zuweisungen des Zeitplans."""
        await self._authorize_remove(None, None)
        removed = await self.store.delete_assignments(
            AssignmentFilter(schedule_id=self.schedule.id))
        logger.info(f"Zeitplan '{self.schedule.id}': alle {removed} Zuweisungen entfernt")
        return removed
