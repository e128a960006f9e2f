"""Tests für die Datenspeicher (Arbeitsspeicher und JSON)."""

import asyncio

import pytest

from data.assignment_store import InMemoryTrainingStore, JsonTrainingStore
from engine.errors import DuplicateAssignment, StorageFailure
from engine.ports import AssignmentFilter, RosterFilter
from models.assignment import Assignment
from models.learner import Learner, RoleCourseMapping


def make_assignment(lid: str, course_id: str = "A", group: int = 1,
                    location: str = "North", schedule_id: str = "S1") -> Assignment:
    return Assignment(
        learner_id=lid, schedule_id=schedule_id, course_id=course_id,
        session_identifier=f"{course_id}-session{group}-{location.lower()}-ops",
        group_identifier=f"{course_id}-group-{group}",
        training_location=location, functional_area="Ops",
    )


class TestInMemoryStore:
    def test_insert_assigns_id(self):
        store = InMemoryTrainingStore()
        stored = asyncio.run(store.insert_assignment(make_assignment("u1")))
        assert stored.id
        assert len(store.assignments) == 1

    def test_duplicate_pair_rejected(self):
        store = InMemoryTrainingStore()
        asyncio.run(store.insert_assignment(make_assignment("u1")))
        with pytest.raises(DuplicateAssignment):
            asyncio.run(store.insert_assignment(make_assignment("u1")))

    def test_same_pair_other_schedule_allowed(self):
        store = InMemoryTrainingStore()
        asyncio.run(store.insert_assignment(make_assignment("u1")))
        asyncio.run(store.insert_assignment(make_assignment("u1", schedule_id="S2")))
        assert len(store.assignments) == 2

    def test_query_filters(self):
        store = InMemoryTrainingStore(assignments=[
            make_assignment("u1", "A", 1), make_assignment("u1", "B", 2),
            make_assignment("u2", "A", 1), make_assignment("u3", "A", 1, schedule_id="S2"),
        ])
        all_rows = asyncio.run(store.query_assignments("S1"))
        group_one = asyncio.run(store.query_assignments(
            "S1", AssignmentFilter(schedule_id="S1", group_number=1)))
        assert len(all_rows) == 3
        assert {a.learner_id for a in group_one} == {"u1", "u2"}

    def test_delete_returns_count(self):
        store = InMemoryTrainingStore(assignments=[
            make_assignment("u1", "A"), make_assignment("u1", "B"), make_assignment("u2", "A"),
        ])
        removed = asyncio.run(store.delete_assignments(
            AssignmentFilter(schedule_id="S1", learner_id="u1")))
        assert removed == 2
        assert [a.learner_id for a in store.assignments] == ["u2"]

    def test_roster_filter(self):
        store = InMemoryTrainingStore(roster=[
            Learner(id="u1", name="A", role="Operator", training_location="North", project_id="P1"),
            Learner(id="u2", name="B", role="Planner", training_location="North", project_id="P1"),
            Learner(id="u3", name="C", role="Operator", training_location="South", project_id="P2"),
        ])
        result = asyncio.run(store.query_roster("P1", RosterFilter(roles=["Operator"])))
        assert [l.id for l in result] == ["u1"]
        south = asyncio.run(store.query_roster(None, RosterFilter(training_locations=["South"])))
        assert [l.id for l in south] == ["u3"]

    def test_role_mappings_by_project(self):
        store = InMemoryTrainingStore(role_mappings=[
            RoleCourseMapping(role="Operator", course_id="A", project_id="P1"),
            RoleCourseMapping(role="Operator", course_id="B", project_id="P2"),
        ])
        result = asyncio.run(store.query_role_mappings("P1"))
        assert [m.course_id for m in result] == ["A"]


class TestJsonStore:
    def test_persists_and_reloads(self, tmp_path):
        path = tmp_path / "out" / "assignments.json"
        store = JsonTrainingStore(path)
        asyncio.run(store.insert_assignment(make_assignment("u1")))
        asyncio.run(store.insert_assignment(make_assignment("u2")))
        assert path.exists()

        reloaded = JsonTrainingStore(path)
        assert {a.learner_id for a in reloaded.assignments} == {"u1", "u2"}

    def test_delete_persisted(self, tmp_path):
        path = tmp_path / "assignments.json"
        store = JsonTrainingStore(path)
        asyncio.run(store.insert_assignment(make_assignment("u1")))
        asyncio.run(store.delete_assignments(AssignmentFilter(schedule_id="S1")))
        assert JsonTrainingStore(path).assignments == []

    def test_corrupt_file_is_storage_failure(self, tmp_path):
        path = tmp_path / "assignments.json"
        path.write_text("{kein json", encoding="utf-8")
        with pytest.raises(StorageFailure):
            JsonTrainingStore(path)

    def test_failed_write_leaves_memory_unchanged(self, tmp_path):
        """Schlägt das Speichern fehl, bleibt der Stand im Speicher wie vorher."""
        path = tmp_path / "assignments.json"
        store = JsonTrainingStore(path)
        asyncio.run(store.insert_assignment(make_assignment("u1")))
        path.unlink()
        path.mkdir()

        with pytest.raises(StorageFailure):
            asyncio.run(store.insert_assignment(make_assignment("u2")))
        assert [a.learner_id for a in store.assignments] == ["u1"]
        # erneuter Versuch ist kein Duplikat
        with pytest.raises(StorageFailure):
            asyncio.run(store.insert_assignment(make_assignment("u2")))

        with pytest.raises(StorageFailure):
            asyncio.run(store.delete_assignments(AssignmentFilter(schedule_id="S1")))
        assert [a.learner_id for a in store.assignments] == ["u1"]
