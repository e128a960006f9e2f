"""Einteilung der Teilnehmenden nach Bedarf relativ zum Zeitplan.

Reine Funktion: gleiche Eingaben ergeben immer die gleiche Einteilung.
Jede Person erhält genau einen Status; teilweise zugewiesene Personen stehen
zusätzlich in den Kurs-Listen für jeden noch fehlenden Kurs.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from models.assignment import Assignment
from models.learner import Learner, RoleCourseMapping, required_courses_for_role


class LearnerStatus(str, Enum):
    NEEDS_ALL = "needs_all_courses"
    NEEDS_SOME = "needs_some_courses"
    PARTIALLY_ASSIGNED = "partially_assigned"
    UNASSIGNED_ELIGIBLE = "unassigned_eligible"
    FULLY_ASSIGNED = "fully_assigned"
    NOT_APPLICABLE = "not_applicable"


class LearnerCategories(BaseModel):
    """Ergebnis der Einteilung. Listen folgen der Roster-Reihenfolge."""

    all_courses_needed: list[Learner] = Field(default_factory=list)
    # course_id → Personen, denen genau dieser Kurs noch fehlt
    some_courses_needed: dict[str, list[Learner]] = Field(default_factory=dict)
    partially_assigned: list[Learner] = Field(default_factory=list)
    unassigned_eligible: list[Learner] = Field(default_factory=list)
    fully_assigned: list[Learner] = Field(default_factory=list)
    not_applicable: list[Learner] = Field(default_factory=list)
    # learner_id → Status
    status: dict[str, LearnerStatus] = Field(default_factory=dict)
    # learner_id → noch fehlende Kurse
    missing_courses: dict[str, list[str]] = Field(default_factory=dict)
    course_names: dict[str, str] = Field(default_factory=dict)

    def status_of(self, learner_id: str) -> LearnerStatus:
        return self.status.get(learner_id, LearnerStatus.NOT_APPLICABLE)

    def needs_course(self, learner_id: str, course_id: str) -> bool:
        return course_id in self.missing_courses.get(learner_id, [])

    @property
    def some_courses_count(self) -> int:
        return sum(len(v) for v in self.some_courses_needed.values())


def categorize(roster: list[Learner], mappings: list[RoleCourseMapping],
               assignments: list[Assignment], required_course_ids: list[str],
               course_names: Optional[dict[str, str]] = None) -> LearnerCategories:
    """Teilt das Roster anhand Rollen-Zuordnungen und Zuweisungen ein.

    required_course_ids ist die vollständige Kursmenge des Zeitplans
    (in Zeitplan-Reihenfolge).
    """
    result = LearnerCategories(course_names=dict(course_names or {}))
    schedule_courses = list(dict.fromkeys(required_course_ids))
    full_set = set(schedule_courses)
    mapped_roles = {m.role for m in mappings}

    assigned_by_learner: dict[str, set[str]] = {}
    for a in assignments:
        assigned_by_learner.setdefault(a.learner_id, set()).add(a.course_id)

    some: dict[str, list[Learner]] = {}

    for learner in roster:
        required = required_courses_for_role(mappings, learner.role, schedule_courses)
        assigned = assigned_by_learner.get(learner.id, set())

        if not required:
            if learner.role in mapped_roles:
                result.unassigned_eligible.append(learner)
                result.status[learner.id] = LearnerStatus.UNASSIGNED_ELIGIBLE
            else:
                result.not_applicable.append(learner)
                result.status[learner.id] = LearnerStatus.NOT_APPLICABLE
            continue

        missing = [c for c in required if c not in assigned]
        if not missing:
            result.fully_assigned.append(learner)
            result.status[learner.id] = LearnerStatus.FULLY_ASSIGNED
            continue

        result.missing_courses[learner.id] = missing
        none_met = len(missing) == len(required)

        if none_met and set(required) == full_set:
            result.all_courses_needed.append(learner)
            result.status[learner.id] = LearnerStatus.NEEDS_ALL
            continue

        if none_met:
            result.status[learner.id] = LearnerStatus.NEEDS_SOME
        else:
            result.partially_assigned.append(learner)
            result.status[learner.id] = LearnerStatus.PARTIALLY_ASSIGNED
        for course_id in missing:
            some.setdefault(course_id, []).append(learner)

    # Kurs-Listen in Zeitplan-Reihenfolge
    result.some_courses_needed = {c: some[c] for c in schedule_courses if c in some}
    return result
