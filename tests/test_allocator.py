"""Tests für den Zuweisungs-Allokator (Einzel-, Bulk-, Gruppen- und Kurszuweisung)."""

import asyncio
from typing import Optional

import pytest

from config.schema import AllocationConfig, PermissionPolicy
from data.assignment_store import InMemoryTrainingStore
from engine.allocator import AssignmentAllocator
from engine.authorization import AllowAllAuthorizer, PolicyAuthorizer
from engine.errors import (
    AuthorizationDenied,
    LearnerNotFound,
    LocationMismatch,
    NoCapacity,
    TargetNotFound,
)
from engine.identity import stable_session_id
from engine.ports import AuthDecision
from models.assignment import Assignment, AssignmentLevel
from models.learner import Learner, RoleCourseMapping
from models.schedule import Schedule
from models.session import Session


# ─── Hilfsfunktionen ──────────────────────────────────────────────────────────

def make_row(course_id: str, group: int, part: Optional[int] = None,
             location: str = "North") -> dict:
    title = f"Kurs {course_id} - Group {group}"
    if part is not None:
        title += f" (Part {part})"
    return {
        "course_id": course_id, "course_name": f"Kurs {course_id}",
        "title": title, "session_number": group,
        "training_location": location, "functional_area": "Ops",
    }


def make_schedule(max_attendees: int = 10) -> Schedule:
    """North: Kurs A (Gruppe 1+2), Kurs B (Gruppe 1 zweiteilig, Gruppe 2); South: Kurs A."""
    return Schedule(
        id="S1", project_id="P1",
        criteria={"max_attendees": max_attendees},
        catalog=[
            make_row("A", 1), make_row("A", 2),
            make_row("B", 1, part=1), make_row("B", 1, part=2), make_row("B", 2),
            make_row("A", 1, location="South"),
        ],
    )


def make_roster() -> list[Learner]:
    learners = [Learner(id=f"u{i}", name=f"Person {i}", role="Operator",
                        training_location="North", project_id="P1") for i in range(1, 6)]
    learners.append(Learner(id="u6", name="Person 6", role="Lead",
                            training_location="North", project_id="P1"))
    learners.append(Learner(id="u9", name="Person 9", role="Operator",
                            training_location="South", project_id="P1"))
    learners.append(Learner(id="u0", name="Ohne Standort", role="Operator", project_id="P1"))
    return learners


def make_mappings() -> list[RoleCourseMapping]:
    return [
        RoleCourseMapping(role="Operator", course_id="A", project_id="P1"),
        RoleCourseMapping(role="Operator", course_id="B", project_id="P1"),
        RoleCourseMapping(role="Lead", course_id="B", project_id="P1"),
    ]


def make_allocator(store=None, authorizer=None, max_attendees: int = 10,
                   config: Optional[AllocationConfig] = None):
    store = store if store is not None else InMemoryTrainingStore()
    allocator = AssignmentAllocator(
        store, authorizer or AllowAllAuthorizer(), make_schedule(max_attendees),
        make_roster(), make_mappings(), config,
    )
    return allocator, store


def ref(allocator: AssignmentAllocator, course_id: str, group: int,
        part: Optional[int] = None, location: str = "North") -> str:
    """Stabile Session-ID der passenden Katalog-Session."""
    for s in allocator.sessions:
        if (s.course_id == course_id and s.group_number == group
                and s.part_number == part and s.training_location == location):
            return stable_session_id(s)
    raise AssertionError(f"Session {course_id}/{group}/{part} nicht im Katalog")


class DenyLearner(AllowAllAuthorizer):
    """Lehnt Zuweisungen für eine bestimmte Person ab."""

    def __init__(self, learner_id: str):
        self.learner_id = learner_id

    async def can_assign(self, learner: Learner, session: Session) -> AuthDecision:
        if learner.id == self.learner_id:
            return AuthDecision(allowed=False, reason="gesperrt")
        return AuthDecision(allowed=True)


class HiddenRowsStore(InMemoryTrainingStore):
    """Abfragen sehen keine Zeilen; Einfügen prüft trotzdem auf Duplikate."""

    async def query_assignments(self, schedule_id, filters=None):
        return []


class CountingStore(InMemoryTrainingStore):
    """Merkt sich die Filter aller Abfragen."""

    def __init__(self):
        super().__init__()
        self.queries = []

    async def query_assignments(self, schedule_id, filters=None):
        self.queries.append(filters)
        return await super().query_assignments(schedule_id, filters)


# ─── EINZELZUWEISUNG ──────────────────────────────────────────────────────────

class TestAssignSingle:
    def test_needs_all_goes_to_whole_group(self):
        """Person ohne Zuweisungen → ganze Gruppe, erster Teil je Kurs."""
        allocator, store = make_allocator()
        result = asyncio.run(allocator.assign_single("u1", ref(allocator, "A", 1)))
        assert result.level == AssignmentLevel.GROUP
        assert result.group_number == 1
        assert sorted(a.course_id for a in store.assignments) == ["A", "B"]
        assert {a.group_identifier for a in store.assignments} == {"North-Ops-Group1"}
        assert all(a.assignment_level == AssignmentLevel.GROUP for a in store.assignments)

    def test_whole_group_all_parts(self):
        config = AllocationConfig(whole_group_all_parts=True)
        allocator, store = make_allocator(config=config)
        asyncio.run(allocator.assign_single("u1", ref(allocator, "A", 1)))
        assert len(store.assignments) == 3

    def test_idempotent(self):
        """Zweimal dieselbe Zuweisung → keine zusätzlichen Einträge."""
        allocator, store = make_allocator()
        target = ref(allocator, "A", 1)
        asyncio.run(allocator.assign_single("u1", target))
        before = len(store.assignments)
        result = asyncio.run(allocator.assign_single("u1", target))
        assert len(store.assignments) == before
        assert result.created == []
        assert result.skipped_duplicates == 1

    def test_single_course_all_parts(self):
        """Person braucht nur Kurs B → alle Teile von B in Gruppe 1."""
        allocator, store = make_allocator()
        result = asyncio.run(allocator.assign_single("u6", ref(allocator, "B", 1, part=1)))
        assert result.level == AssignmentLevel.COURSE
        assert len(store.assignments) == 2
        assert {a.group_identifier for a in store.assignments} == {"B-group-1"}
        assert all(a.assignment_level == AssignmentLevel.COURSE for a in store.assignments)

    def test_session_level_when_course_already_met(self):
        """Kurs bereits erfüllt → nur die eine Session wird ergänzt."""
        allocator, store = make_allocator()
        asyncio.run(allocator.assign_single("u6", ref(allocator, "B", 1, part=1)))
        store.assignments = [a for a in store.assignments
                             if not a.session_identifier.endswith("part2")]
        result = asyncio.run(allocator.assign_single("u6", ref(allocator, "B", 1, part=2)))
        assert result.level == AssignmentLevel.SESSION
        assert len(result.created) == 1
        assert result.created[0].session_identifier.endswith("part2")

    def test_reassignment_replaces_same_course_only(self):
        """Umbuchung in andere Gruppe löscht nur Einträge desselben Kurses."""
        allocator, store = make_allocator()
        asyncio.run(allocator.assign_single("u1", ref(allocator, "A", 2)))
        assert {a.group_number for a in store.assignments} == {2}

        result = asyncio.run(allocator.assign_single("u1", ref(allocator, "A", 1)))
        assert result.removed == 1
        by_course = {a.course_id: a for a in store.assignments}
        assert len(store.assignments) == 2
        assert by_course["A"].group_identifier == "A-group-1"
        assert by_course["B"].group_number == 2

    def test_reassignment_into_full_group_keeps_rows(self):
        """Zielgruppe voll → NoCapacity, die bisherige Gruppe bleibt erhalten."""
        allocator, store = make_allocator(max_attendees=1)
        asyncio.run(allocator.assign_single("u1", ref(allocator, "A", 2)))
        asyncio.run(allocator.assign_single("u2", ref(allocator, "A", 1)))
        before = list(store.assignments)

        with pytest.raises(NoCapacity):
            asyncio.run(allocator.assign_single("u1", ref(allocator, "A", 1)))
        assert store.assignments == before
        u1_rows = {(a.course_id, a.group_number) for a in store.assignments
                   if a.learner_id == "u1"}
        assert u1_rows == {("A", 2), ("B", 2)}

    def test_reassignment_denied_keeps_rows(self):
        """Ohne Entfernen-Recht wird weder gelöscht noch geschrieben."""
        allocator, store = make_allocator()
        asyncio.run(allocator.assign_single("u1", ref(allocator, "A", 2)))
        before = list(store.assignments)

        class NoRemove(AllowAllAuthorizer):
            async def can_remove(self, learner, session):
                return AuthDecision(allowed=False, reason="nur lesen")

        allocator.authorizer = NoRemove()
        with pytest.raises(AuthorizationDenied):
            asyncio.run(allocator.assign_single("u1", ref(allocator, "A", 1)))
        assert store.assignments == before

    def test_location_mismatch(self):
        """Person aus South kann nicht in North landen; nichts wird geschrieben."""
        allocator, store = make_allocator()
        with pytest.raises(LocationMismatch) as exc_info:
            asyncio.run(allocator.assign_single("u9", ref(allocator, "A", 1)))
        assert exc_info.value.learner_location == "South"
        assert exc_info.value.session_location == "North"
        assert store.assignments == []

    def test_learner_without_location(self):
        allocator, _ = make_allocator()
        with pytest.raises(LocationMismatch):
            asyncio.run(allocator.assign_single("u0", ref(allocator, "A", 1)))

    def test_authorization_denied(self):
        policy = PermissionPolicy(training_location_names=["South"])
        allocator, store = make_allocator(authorizer=PolicyAuthorizer(policy))
        with pytest.raises(AuthorizationDenied) as exc_info:
            asyncio.run(allocator.assign_single("u1", ref(allocator, "A", 1)))
        assert "South" in exc_info.value.reason
        assert store.assignments == []

    def test_unknown_learner_and_target(self):
        allocator, _ = make_allocator()
        with pytest.raises(LearnerNotFound):
            asyncio.run(allocator.assign_single("nobody", ref(allocator, "A", 1)))
        with pytest.raises(TargetNotFound):
            asyncio.run(allocator.assign_single("u1", "gibt-es-nicht"))

    def test_full_group_raises_no_capacity(self):
        """Volle Zielgruppe → NoCapacity, kein Systemfehler."""
        allocator, store = make_allocator(max_attendees=2)
        target = ref(allocator, "A", 1)
        asyncio.run(allocator.assign_single("u1", target))
        asyncio.run(allocator.assign_single("u2", target))
        with pytest.raises(NoCapacity) as exc_info:
            asyncio.run(allocator.assign_single("u3", target))
        assert exc_info.value.is_fault is False
        assert {a.learner_id for a in store.assignments} == {"u1", "u2"}

    def test_capacity_counted_per_group_without_preload(self):
        """preload_capacity=False → Belegung wird je Gruppe beim Speicher erfragt."""
        store = CountingStore()
        allocator, _ = make_allocator(store=store,
                                      config=AllocationConfig(preload_capacity=False))
        asyncio.run(allocator.assign_single("u1", ref(allocator, "A", 1)))
        group_queries = [f for f in store.queries if f is not None]
        assert group_queries
        assert {(f.training_location, f.group_number) for f in group_queries} == {("North", 1)}

    def test_preload_uses_single_query(self):
        store = CountingStore()
        allocator, _ = make_allocator(store=store)
        asyncio.run(allocator.assign_single("u1", ref(allocator, "A", 1)))
        assert store.queries == [None]

    def test_store_duplicate_is_no_op(self):
        """Meldet der Speicher ein Duplikat, gilt die Zuweisung als erfüllt."""
        allocator, _ = make_allocator()
        store = HiddenRowsStore()
        allocator.store = store
        a1 = next(s for s in allocator.sessions
                  if s.course_id == "A" and s.group_number == 1)
        store.assignments.append(Assignment(
            learner_id="u1", schedule_id="S1", course_id="A",
            session_identifier=stable_session_id(a1),
            group_identifier="North-Ops-Group1",
            training_location="North", functional_area="Ops",
        ))
        result = asyncio.run(allocator.assign_single("u1", stable_session_id(a1)))
        assert result.skipped_duplicates == 1
        assert [a.course_id for a in result.created] == ["B"]
        assert len(store.assignments) == 2


# ─── GANZE GRUPPE / EINZELKURS DIREKT ─────────────────────────────────────────

class TestGroupPlacement:
    def test_lowest_group_with_space(self):
        """Gruppe 1 voll → nächste vollständige Gruppe."""
        allocator, store = make_allocator(max_attendees=1)
        first = asyncio.run(allocator.assign_whole_group(allocator.learner("u1")))
        second = asyncio.run(allocator.assign_whole_group(allocator.learner("u2")))
        assert (first.group_number, second.group_number) == (1, 2)
        with pytest.raises(NoCapacity):
            asyncio.run(allocator.assign_whole_group(allocator.learner("u3")))

    def test_explicit_zero_capacity(self):
        """max_capacity=0 ist eine echte Grenze."""
        allocator, store = make_allocator()
        with pytest.raises(NoCapacity):
            asyncio.run(allocator.assign_whole_group(allocator.learner("u1"), max_capacity=0))
        with pytest.raises(NoCapacity):
            asyncio.run(allocator.assign_single_course(allocator.learner("u1"), "A",
                                                       max_capacity=0))
        assert store.assignments == []

    def test_incomplete_group_skipped(self):
        """Gruppe ohne Session für jeden Kurs wird übersprungen."""
        schedule = Schedule(id="S1", criteria={"max_attendees": 5}, catalog=[
            make_row("A", 1), make_row("A", 2), make_row("B", 2),
        ])
        allocator = AssignmentAllocator(InMemoryTrainingStore(), AllowAllAuthorizer(),
                                        schedule, make_roster(), make_mappings())
        result = asyncio.run(allocator.assign_whole_group(allocator.learner("u1")))
        assert result.group_number == 2

    def test_location_without_sessions(self):
        schedule = Schedule(id="S1", catalog=[make_row("A", 1, location="South")])
        allocator = AssignmentAllocator(InMemoryTrainingStore(), AllowAllAuthorizer(),
                                        schedule, make_roster(), make_mappings())
        with pytest.raises(NoCapacity):
            asyncio.run(allocator.assign_whole_group(allocator.learner("u1")))

    def test_single_course_capacity_per_course(self):
        """Kurs-Belegung zählt pro Kurs und Gruppe."""
        allocator, store = make_allocator(max_attendees=1)
        a = asyncio.run(allocator.assign_single_course(allocator.learner("u1"), "A"))
        b = asyncio.run(allocator.assign_single_course(allocator.learner("u2"), "A"))
        c = asyncio.run(allocator.assign_single_course(allocator.learner("u3"), "B"))
        assert (a.group_number, b.group_number, c.group_number) == (1, 2, 1)
        assert [x.group_identifier for x in b.created] == ["A-group-2"]

    def test_single_course_not_offered(self):
        allocator, _ = make_allocator()
        with pytest.raises(NoCapacity):
            asyncio.run(allocator.assign_single_course(allocator.learner("u9"), "B"))


# ─── BULK ─────────────────────────────────────────────────────────────────────

class TestAssignBulk:
    def test_failures_isolated(self):
        """Eine abgelehnte Person blockiert die anderen nicht."""
        allocator, store = make_allocator(authorizer=DenyLearner("u3"))
        result = asyncio.run(allocator.assign_bulk(
            ["u1", "u2", "u3", "u4", "u5"], ref(allocator, "A", 1)))
        assert result.successful == ["u1", "u2", "u4", "u5"]
        assert len(result.failed) == 1
        failure = result.failed[0]
        assert failure.learner_id == "u3"
        assert failure.error == "AuthorizationDenied"
        assert failure.course_id == "A"
        assert "u3" not in {a.learner_id for a in store.assignments}
        assert len(store.assignments) == 8

    def test_capacity_respected(self):
        """Bei max 2 wird die dritte Person abgewiesen."""
        allocator, store = make_allocator(max_attendees=2)
        result = asyncio.run(allocator.assign_bulk(["u1", "u2", "u3"], ref(allocator, "A", 1)))
        assert result.successful == ["u1", "u2"]
        assert [f.error for f in result.failed] == ["NoCapacity"]
        assert len({a.learner_id for a in store.assignments}) == 2

    def test_mixed_learners(self):
        """Unbekannte Person und falscher Standort landen in failed."""
        allocator, _ = make_allocator()
        result = asyncio.run(allocator.assign_bulk(
            ["u1", "u9", "nobody", "u1"], ref(allocator, "A", 1)))
        assert result.successful == ["u1"]
        assert {f.learner_id: f.error for f in result.failed} == {
            "u9": "LocationMismatch", "nobody": "LearnerNotFound"}

    def test_whole_group_before_single_course(self):
        """Ganze-Gruppe-Fälle werden vor Einzelkurs-Fällen verarbeitet."""
        allocator, _ = make_allocator()
        result = asyncio.run(allocator.assign_bulk(["u6", "u1"], ref(allocator, "B", 1, part=1)))
        assert result.successful == ["u1", "u6"]
        assert [p.level for p in result.placements] == [
            AssignmentLevel.GROUP, AssignmentLevel.COURSE]


# ─── ENTFERNEN ────────────────────────────────────────────────────────────────

class TestRemove:
    def _filled(self, authorizer=None):
        allocator, store = make_allocator()
        asyncio.run(allocator.assign_bulk(["u1", "u2"], ref(allocator, "A", 1)))
        if authorizer is not None:
            allocator.authorizer = authorizer
        return allocator, store

    def test_remove_from_course(self):
        allocator, store = self._filled()
        removed = asyncio.run(allocator.remove_from_course("u1", "A", "North"))
        assert removed == 1
        assert [a.course_id for a in store.assignments if a.learner_id == "u1"] == ["B"]

    def test_remove_from_group(self):
        allocator, store = self._filled()
        removed = asyncio.run(allocator.remove_from_group("u1", "North", 1))
        assert removed == 2
        assert {a.learner_id for a in store.assignments} == {"u2"}

    def test_remove_nothing(self):
        allocator, _ = self._filled()
        assert asyncio.run(allocator.remove_from_group("u1", "North", 2)) == 0

    def test_remove_all(self):
        allocator, store = self._filled()
        assert asyncio.run(allocator.remove_all()) == 4
        assert store.assignments == []

    def test_remove_denied_keeps_rows(self):
        policy = PermissionPolicy(functional_area_names=["Maintenance"])
        allocator, store = self._filled(PolicyAuthorizer(policy))
        with pytest.raises(AuthorizationDenied):
            asyncio.run(allocator.remove_from_course("u1", "A", "North"))
        with pytest.raises(AuthorizationDenied):
            asyncio.run(allocator.remove_all())
        assert len(store.assignments) == 4


# ─── AUFBAU AUS DEM SPEICHER ──────────────────────────────────────────────────

class TestFromStore:
    def test_roster_prefiltered_by_mapped_roles(self):
        roster = make_roster() + [
            Learner(id="g1", name="Gast", role="Gast", training_location="North", project_id="P1"),
        ]
        store = InMemoryTrainingStore(roster=roster, role_mappings=make_mappings())
        allocator = asyncio.run(AssignmentAllocator.from_store(
            store, AllowAllAuthorizer(), make_schedule()))
        ids = {l.id for l in allocator.roster}
        assert "g1" not in ids
        assert {"u1", "u6", "u9"} <= ids
        assert allocator.max_capacity == 10
